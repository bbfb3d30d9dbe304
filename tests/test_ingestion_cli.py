import json
from pathlib import Path
from unittest.mock import Mock, patch

from sqlalchemy import func, select

from contacthub.models.base import db
from contacthub.models.ingestion import ImportRun, ImportRunStatus, MergeHistory, StagingContact


def _write_csv(tmp_path: Path) -> Path:
    csv_file = tmp_path / "phone_export.csv"
    csv_file.write_text(
        "id,name,mobile,email\n"
        "m-1,Ada Lovelace,98765 43210,ada@acme.co\n"
        "m-2,Grace Hopper,,grace@navy.example.com\n",
        encoding="utf-8",
    )
    return csv_file


def _json_payload(output: str):
    start = output.index("{")
    end = output.rindex("}") + 1
    return json.loads(output[start:end])


def _count(model) -> int:
    db.session.expire_all()
    return db.session.scalar(select(func.count()).select_from(model))


def test_ingest_cli_inline_with_csv_file(app, runner, tmp_path):
    csv_path = _write_csv(tmp_path)

    result = runner.invoke(
        args=["contacts", "ingest", "--source", "mobile", "--file", str(csv_path), "--owner", "Priya", "--inline"]
    )

    assert result.exit_code == 0, result.output
    payload = _json_payload(result.output)
    assert payload["success"] is True
    assert payload["sourceSystem"] == "MOBILE"
    assert payload["total"] == 2
    assert payload["message"] == "Staged 2 contacts from MOBILE"
    assert _count(StagingContact) == 2

    run = db.session.get(ImportRun, payload["importRunId"])
    assert run.status == ImportRunStatus.STAGED
    owners = set(db.session.scalars(select(StagingContact.data_owner_name)))
    assert owners == {"Priya"}


def test_ingest_cli_queues_by_default(app, runner, tmp_path):
    csv_path = _write_csv(tmp_path)

    async_result = Mock()
    async_result.id = "celery-task-123"
    celery_app = Mock()
    celery_app.send_task.return_value = async_result

    with patch("contacthub.ingestion.cli._resolve_celery", return_value=celery_app):
        result = runner.invoke(args=["contacts", "ingest", "--source", "gmail", "--file", str(csv_path)])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.output.strip())
    assert payload["status"] == "queued"
    assert payload["task_id"] == "celery-task-123"
    assert payload["task"] == "ingestion.run_source"
    assert payload["source_system"] == "GMAIL"
    assert payload["file_path"] == str(csv_path.resolve())

    celery_app.send_task.assert_called_once_with(
        "ingestion.run_source",
        kwargs={"source_system": "GMAIL", "file_path": str(csv_path.resolve())},
    )
    # Queued commands do not touch the pipeline tables.
    assert _count(ImportRun) == 0


def test_ingest_cli_rejects_unknown_source(app, runner):
    with patch("contacthub.ingestion.cli._resolve_celery") as mock_resolve:
        result = runner.invoke(args=["contacts", "ingest", "--source", "myspace"])

    assert result.exit_code == 2
    assert "myspace" in result.output
    mock_resolve.assert_not_called()


def test_ingest_cli_inline_without_registered_adapter(app, runner):
    result = runner.invoke(args=["contacts", "ingest", "--source", "zoho", "--inline"])

    assert result.exit_code == 1
    assert "No adapter registered for ZOHO" in result.output
    assert _count(ImportRun) == 0


def test_clean_merge_cli_inline(app, runner, tmp_path):
    csv_path = _write_csv(tmp_path)
    runner.invoke(args=["contacts", "ingest", "--source", "mobile", "--file", str(csv_path), "--inline"])

    result = runner.invoke(args=["contacts", "clean-merge", "--inline"])

    assert result.exit_code == 0, result.output
    payload = _json_payload(result.output)
    assert payload["success"] is True
    assert payload["inserted"] == 2
    assert payload["updated"] == 0
    assert payload["duplicates"] == 0
    assert "report" not in payload

    again = runner.invoke(args=["contacts", "clean-merge", "--inline", "--show-report"])
    again_payload = _json_payload(again.output)
    assert again_payload["updated"] == 2
    assert again_payload["report"] == []


def test_clean_merge_cli_queues_source_filter(app, runner):
    async_result = Mock()
    async_result.id = "celery-task-456"
    celery_app = Mock()
    celery_app.send_task.return_value = async_result

    with patch("contacthub.ingestion.cli._resolve_celery", return_value=celery_app):
        result = runner.invoke(args=["contacts", "clean-merge", "--source", "invoice"])

    assert result.exit_code == 0, result.output
    celery_app.send_task.assert_called_once_with("ingestion.clean_and_merge", kwargs={"source_system": "INVOICE"})


def test_clean_merge_cli_with_empty_staging(app, runner):
    result = runner.invoke(args=["contacts", "clean-merge", "--inline"])

    assert result.exit_code == 0, result.output
    payload = _json_payload(result.output)
    assert payload["message"] == "No staging contacts to process"
    assert payload["importRunId"] is None


def test_runs_latest_and_list(app, runner, tmp_path):
    empty = runner.invoke(args=["contacts", "runs", "latest"])
    assert empty.exit_code == 0
    assert "No import runs recorded." in empty.output

    csv_path = _write_csv(tmp_path)
    runner.invoke(args=["contacts", "ingest", "--source", "mobile", "--file", str(csv_path), "--inline"])

    latest = runner.invoke(args=["contacts", "runs", "latest", "--source", "mobile"])
    assert latest.exit_code == 0, latest.output
    summary = _json_payload(latest.output)
    assert summary["status"] == "staged"
    assert summary["total"] == 2

    listing = runner.invoke(args=["contacts", "runs", "list", "--status", "staged"])
    assert listing.exit_code == 0, listing.output
    assert "INGESTION" in listing.output
    assert "(1 runs)" in listing.output

    bad = runner.invoke(args=["contacts", "runs", "list", "--status", "bogus"])
    assert bad.exit_code == 2


def test_staging_list_and_clear(app, runner, tmp_path):
    csv_path = _write_csv(tmp_path)
    runner.invoke(args=["contacts", "ingest", "--source", "mobile", "--file", str(csv_path), "--inline"])

    listing = runner.invoke(args=["contacts", "staging", "list", "--source", "mobile"])
    assert listing.exit_code == 0, listing.output
    assert "Ada Lovelace" in listing.output
    assert "2 staged contact(s) for MOBILE." in listing.output

    refused = runner.invoke(args=["contacts", "staging", "clear", "--source", "mobile"])
    assert refused.exit_code == 1
    assert "--yes" in refused.output
    assert _count(StagingContact) == 2

    cleared = runner.invoke(args=["contacts", "staging", "clear", "--source", "mobile", "--yes"])
    assert cleared.exit_code == 0, cleared.output
    assert "Removed 2 staged contact(s) for MOBILE." in cleared.output
    assert _count(StagingContact) == 0


def test_merge_history_commands(app, runner, tmp_path):
    stats = runner.invoke(args=["contacts", "merge-history", "stats"])
    assert stats.exit_code == 0, stats.output
    assert _json_payload(stats.output)["totalMerges"] == 0

    csv_path = _write_csv(tmp_path)
    runner.invoke(args=["contacts", "ingest", "--source", "mobile", "--file", str(csv_path), "--inline"])
    runner.invoke(args=["contacts", "clean-merge", "--inline"])
    # A second export of the same person from another source is a duplicate.
    other = tmp_path / "gmail.csv"
    other.write_text("id,name,phone\ng-1,Ada Lovelace,+91 98765 43210\n", encoding="utf-8")
    runner.invoke(args=["contacts", "ingest", "--source", "gmail", "--file", str(other), "--inline"])
    merged = runner.invoke(args=["contacts", "clean-merge", "--source", "gmail", "--inline"])
    assert _json_payload(merged.output)["duplicates"] == 1

    assert _count(MergeHistory) == 1
    listing = runner.invoke(args=["contacts", "merge-history", "list", "--email-only"])
    assert listing.exit_code == 0, listing.output
    payload = _json_payload(listing.output)
    assert payload["total"] == 1
    assert payload["items"][0]["mergeDetails"]["newName"] == "Ada Lovelace (DUP #1)"

    primary_id = payload["items"][0]["primaryContactId"]
    by_contact = runner.invoke(args=["contacts", "merge-history", "contact", "--id", str(primary_id)])
    assert by_contact.exit_code == 0, by_contact.output
    assert '"mergeReason": "EXACT_MATCH"' in by_contact.output
