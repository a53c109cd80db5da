import json

import httpx
import pytest
import respx

from camsync.ingest.acquirer import (
    AcquisitionFailure,
    ConfigurationError,
    FileSnapshotAcquirer,
    HttpSnapshotAcquirer,
    acquirer_from_env,
    build_snapshot,
)

REPORT_URL = "https://fleet.example.com/api/report"

PAYLOAD = {
    "last_updated": "11/5/2024 6:15:00 AM",
    "rows": [
        {"sequence_number": 1, "location_id": "001", "camera_id": "North Ridge", "level": "85%", "battery": "OK"},
        ["2", "002", "Creek Bottom", "40%", "2", "Low", "12", "0", "3,501", "9800", "3", "8.3.1", "5.2.0"],
    ],
}


def test_build_snapshot_accepts_objects_and_cell_lists():
    snapshot = build_snapshot(PAYLOAD)
    assert snapshot.last_updated == "11/5/2024 6:15:00 AM"
    first, second = snapshot.rows
    assert first.sequence_number == "1"
    assert first.hw_version == ""
    assert second.location_id == "002"
    assert second.battery == "Low"
    assert second.cl_version == "5.2.0"
    assert second.extracted_at == snapshot.extracted_at


def test_build_snapshot_rejects_malformed_payload():
    with pytest.raises(AcquisitionFailure):
        build_snapshot({"last_updated": "today"})
    with pytest.raises(AcquisitionFailure):
        build_snapshot({"rows": ["not a row"]})


@pytest.mark.asyncio
async def test_http_acquirer_sends_token():
    async with respx.mock(assert_all_called=True) as router:
        route = router.get(REPORT_URL).mock(return_value=httpx.Response(200, json=PAYLOAD))
        async with httpx.AsyncClient() as session:
            acquirer = HttpSnapshotAcquirer(REPORT_URL, "secret", session=session, base_delay=0)
            snapshot = await acquirer.acquire()
    assert len(snapshot.rows) == 2
    assert route.calls.last.request.headers["Authorization"] == "Bearer secret"


@pytest.mark.asyncio
async def test_http_acquirer_retries_once():
    async with respx.mock(assert_all_called=True) as router:
        route = router.get(REPORT_URL).mock(
            side_effect=[httpx.ConnectError("connection refused"), httpx.Response(200, json=PAYLOAD)]
        )
        async with httpx.AsyncClient() as session:
            acquirer = HttpSnapshotAcquirer(REPORT_URL, session=session, base_delay=0)
            snapshot = await acquirer.acquire()
    assert route.call_count == 2
    assert len(snapshot.rows) == 2


@pytest.mark.asyncio
async def test_http_acquirer_gives_up_after_retry():
    async with respx.mock() as router:
        route = router.get(REPORT_URL).mock(return_value=httpx.Response(503))
        async with httpx.AsyncClient() as session:
            acquirer = HttpSnapshotAcquirer(REPORT_URL, session=session, base_delay=0)
            with pytest.raises(AcquisitionFailure):
                await acquirer.acquire()
    assert route.call_count == 2


@pytest.mark.asyncio
async def test_http_acquirer_does_not_retry_client_errors():
    async with respx.mock() as router:
        route = router.get(REPORT_URL).mock(return_value=httpx.Response(401))
        async with httpx.AsyncClient() as session:
            acquirer = HttpSnapshotAcquirer(REPORT_URL, session=session, base_delay=0)
            with pytest.raises(AcquisitionFailure):
                await acquirer.acquire()
    assert route.call_count == 1


@pytest.mark.asyncio
async def test_file_acquirer(tmp_path):
    path = tmp_path / "report.json"
    path.write_text(json.dumps(PAYLOAD))
    snapshot = await FileSnapshotAcquirer(path).acquire()
    assert [row.location_id for row in snapshot.rows] == ["001", "002"]


@pytest.mark.asyncio
async def test_file_acquirer_missing_file(tmp_path):
    with pytest.raises(AcquisitionFailure):
        await FileSnapshotAcquirer(tmp_path / "absent.json").acquire()


def test_acquirer_from_env(monkeypatch, tmp_path):
    monkeypatch.delenv("SNAPSHOT_FILE", raising=False)
    monkeypatch.delenv("SNAPSHOT_SOURCE_URL", raising=False)
    with pytest.raises(ConfigurationError):
        acquirer_from_env()

    monkeypatch.setenv("SNAPSHOT_SOURCE_URL", REPORT_URL)
    assert isinstance(acquirer_from_env(), HttpSnapshotAcquirer)

    monkeypatch.setenv("SNAPSHOT_FILE", str(tmp_path / "report.json"))
    assert isinstance(acquirer_from_env(), FileSnapshotAcquirer)
