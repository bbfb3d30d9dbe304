# contacthub/models/contact.py
"""
Canonical contact directory: contacts, owners and the ownership link.
"""

from __future__ import annotations

from sqlalchemy import Enum, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import BaseModel, db
from .enums import RelationshipType, SourceSystem


class Contact(BaseModel):
    """
    Deduplicated, authoritative contact record.

    ``(source_system, source_record_id)`` is the natural key used for upserts;
    it is independent from the name/phone key used by deduplication.
    """

    __tablename__ = "contacts"
    __table_args__ = (
        UniqueConstraint("source_system", "source_record_id", name="uq_contacts_natural_key"),
        Index("idx_contacts_name_mobile", "name", "mobile_e164"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(db.String(255), nullable=False, index=True)
    company_name: Mapped[str] = mapped_column(db.String(255), nullable=False, default="Unknown")
    email: Mapped[str | None] = mapped_column(db.String(255), nullable=True, index=True)
    mobile_e164: Mapped[str | None] = mapped_column(db.String(32), nullable=True, index=True)
    relationship_type: Mapped[RelationshipType | None] = mapped_column(
        Enum(RelationshipType, name="relationship_type_enum"),
        nullable=True,
    )
    source_system: Mapped[SourceSystem] = mapped_column(
        Enum(SourceSystem, name="source_system_enum"),
        nullable=False,
        index=True,
    )
    source_record_id: Mapped[str] = mapped_column(db.String(255), nullable=False)
    data_quality_score: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    is_whatsapp_reachable: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=True)

    owner_links = relationship(
        "ContactOwner",
        back_populates="contact",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Contact id={self.id} name={self.name!r} source={self.source_system}>"


class Owner(BaseModel):
    """Logical data-owning party such as "Gmail" or "Invoice System"."""

    __tablename__ = "owners"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(db.String(255), nullable=False, unique=True)
    is_active: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=True)

    contact_links = relationship(
        "ContactOwner",
        back_populates="owner",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class ContactOwner(BaseModel):
    __tablename__ = "contact_owners"
    __table_args__ = (UniqueConstraint("contact_id", "owner_id", name="uq_contact_owner"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    contact_id: Mapped[int] = mapped_column(ForeignKey("contacts.id", ondelete="CASCADE"), nullable=False, index=True)
    owner_id: Mapped[int] = mapped_column(ForeignKey("owners.id", ondelete="CASCADE"), nullable=False, index=True)

    contact = relationship("Contact", back_populates="owner_links")
    owner = relationship("Owner", back_populates="contact_links")
