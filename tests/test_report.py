import csv
import json
from datetime import date

from camsync.ingest.models import ParseNote
from camsync.logic import export
from camsync.logic.report import AttentionEntry, CameraOutcome, OrphanEntry, RunReport, WriteFailure


def sample_report() -> RunReport:
    report = RunReport(effective_date=date(2024, 11, 5), rows_received=4, registry_size=4, matched=3, orphan=1, unseen=1)
    report.notes.append(ParseNote(location_id="002", field="links", raw="??", message="no digits found"))
    report.orphans.append(OrphanEntry(location_id="999", camera_name="Loaner", reason="not in registry"))
    report.attention.append(
        AttentionEntry(deployment_id=1, device_id="001", location_name="North Ridge", alert_reason="signal level critically low", seen=True)
    )
    report.failures.append(WriteFailure(deployment_id=4, device_id="004", error="database is locked"))
    report.outcomes.extend(
        [
            CameraOutcome(2, "002", "Creek", "reported", 0, False, False, None),
            CameraOutcome(1, "001", "North Ridge", "reported", 0, False, True, "signal level critically low"),
        ]
    )
    return report.finish(success=True)


def test_summary_and_counts():
    report = sample_report()
    assert report.write_failures == 1
    assert report.completeness_score == 75.0
    lines = report.summary_lines()
    assert lines[0] == "Camera sync SUCCESS"
    assert "Matched: 3; orphan: 1; unseen: 1 (0 newly missing)" in lines
    assert report.errors() == ["write failed for 004 (deployment 4): database is locked"]
    assert len(report.warnings()) == 3


def test_fatal_report_never_reads_as_success():
    report = RunReport().finish(success=False, fatal_error="fleet report unreachable", exit_code=2)
    assert report.summary().startswith("Camera sync FAILED")
    assert report.errors()[0] == "fleet report unreachable"
    assert report.completeness_score == 0.0


def test_as_dict_is_json_serialisable():
    payload = sample_report().as_dict()
    decoded = json.loads(json.dumps(payload))
    assert decoded["effective_date"] == "2024-11-05"
    assert decoded["notes"][0]["field"] == "links"
    assert decoded["write_failures"] == 1


def test_write_run_artifacts(tmp_path, monkeypatch):
    monkeypatch.delenv("AWS_S3_BUCKET", raising=False)
    paths = export.write_run_artifacts(sample_report(), tmp_path)
    assert sorted(p.name for p in paths) == ["camera-status-2024-11-05.csv", "sync-log.txt", "sync-results.json"]

    log_text = (tmp_path / "sync-log.txt").read_text()
    assert "ERRORS:" in log_text
    assert "orphan row 999 (Loaner): not in registry" in log_text

    with (tmp_path / "camera-status-2024-11-05.csv").open() as fh:
        rows = list(csv.DictReader(fh))
    assert [row["device_id"] for row in rows] == ["001", "002"]
    assert rows[0]["alert_reason"] == "signal level critically low"


def test_artifacts_uploaded_when_bucket_set(tmp_path, monkeypatch):
    uploaded = []

    class FakeClient:
        def upload_file(self, filename, bucket, key):
            uploaded.append((bucket, key))

    class FakeSession:
        def client(self, *args, **kwargs):
            return FakeClient()

    monkeypatch.setenv("AWS_S3_BUCKET", "camera-artifacts")
    monkeypatch.setattr(export.boto3.session, "Session", lambda: FakeSession())
    export.write_run_artifacts(sample_report(), tmp_path)
    assert ("camera-artifacts", "camera-sync/sync-results.json") in uploaded
    assert len(uploaded) == 3
