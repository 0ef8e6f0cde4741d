from __future__ import annotations

import httpx
import pytest

from ramadan_clock.core.models import DateRangeRequest
from ramadan_clock.main import create_app
from tests.helpers import FakeAladhan, make_settings, sample_entries


def _client(app) -> httpx.AsyncClient:
    transport = httpx.ASGITransport(app=app)
    return httpx.AsyncClient(transport=transport, base_url="http://testserver")


def _app(tmp_path, upstream: FakeAladhan | None = None):
    return create_app(
        make_settings(str(tmp_path / "api.db")),
        transport=httpx.MockTransport(upstream or FakeAladhan()),
    )


@pytest.mark.asyncio
async def test_schedule_rejects_unknown_district(tmp_path) -> None:
    app = _app(tmp_path)

    async with _client(app) as client:
        response = await client.get("/v1/schedule", params={"location": "Atlantis"})
        today = await client.get("/v1/schedule/today", params={"location": "Atlantis"})

    assert response.status_code == 400
    assert today.status_code == 400


@pytest.mark.asyncio
async def test_schedule_lists_stored_entries(tmp_path) -> None:
    app = _app(tmp_path)
    app.state.repository.upsert_entries(sample_entries())

    async with _client(app) as client:
        response = await client.get(
            "/v1/schedule", params={"location": "Dhaka", "from": "2026-03-02", "to": "2026-03-31"}
        )
        locations = await client.get("/v1/locations")

    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 1
    assert body["items"][0]["sehri"] == "04:57"

    items = {item["name"]: item for item in locations.json()["items"]}
    assert len(items) == 64
    assert items["Sylhet"]["hasSchedule"] is True
    assert items["Rangpur"]["hasSchedule"] is False


@pytest.mark.asyncio
async def test_fetch_job_runs_to_completion(tmp_path) -> None:
    app = _app(tmp_path)

    async with _client(app) as client:
        response = await client.post(
            "/v1/prayer-times/fetch",
            json={
                "mode": "dateRange",
                "startDate": "2026-03-01",
                "endDate": "2026-03-03",
                "districts": ["Dhaka"],
                "rateLimitPreset": "turbo",
            },
        )
        assert response.status_code == 202
        body = response.json()
        assert body["mode"] == "dateRange"
        op_id = body["operationId"]

        await app.state.worker.wait(op_id)

        progress = await client.get(f"/v1/progress/{op_id}")
        schedule = await client.get("/v1/schedule", params={"location": "Dhaka"})
        runs = await client.get("/v1/prayer-times/runs")

    assert progress.json()["status"] == "completed"
    assert progress.json()["percentage"] == 100
    assert schedule.json()["count"] == 3
    assert runs.json()["items"][0]["entriesFetched"] == 3


@pytest.mark.asyncio
async def test_fetch_rejects_bad_requests(tmp_path) -> None:
    app = _app(tmp_path)

    async with _client(app) as client:
        bad_mode = await client.post("/v1/prayer-times/fetch", json={"mode": "weekly"})
        bad_preset = await client.post(
            "/v1/prayer-times/fetch",
            json={"mode": "multiMonth", "year": 2026, "months": [3], "rateLimitPreset": "reckless"},
        )
        bad_override = await client.post(
            "/v1/prayer-times/fetch",
            json={"mode": "multiMonth", "year": 2026, "months": [3], "rateLimitConfig": {"burst": 2}},
        )
        missing = await client.get("/v1/progress/does-not-exist")
        backwards = await client.post(
            "/v1/prayer-times/fetch",
            json={"mode": "dateRange", "startDate": "2026-03-05", "endDate": "2026-03-01"},
        )

    assert bad_mode.status_code == 422
    assert bad_preset.status_code == 422
    assert bad_override.status_code == 422
    assert missing.status_code == 404
    assert backwards.status_code == 400
    assert "startDate" in backwards.json()["detail"]


@pytest.mark.asyncio
async def test_fetch_accepts_camel_case_rate_limit_overrides(tmp_path) -> None:
    app = _app(tmp_path)

    async with _client(app) as client:
        accepted = await client.post(
            "/v1/prayer-times/fetch",
            json={
                "mode": "dateRange",
                "startDate": "2026-03-01",
                "endDate": "2026-03-01",
                "districts": ["Dhaka", "Sylhet"],
                "rateLimitPreset": "turbo",
                "rateLimitConfig": {"maxConcurrentDistricts": 2, "batchSize": 10, "interDistrictDelay": 0},
            },
        )
        await app.state.worker.wait(accepted.json()["operationId"])
        zero = await client.post(
            "/v1/prayer-times/fetch",
            json={
                "mode": "multiMonth",
                "year": 2026,
                "months": [3],
                "rateLimitConfig": {"maxConcurrentDistricts": 0},
            },
        )
        negative = await client.post(
            "/v1/prayer-times/fetch",
            json={
                "mode": "multiMonth",
                "year": 2026,
                "months": [3],
                "rateLimitConfig": {"interRequestDelay": -1},
            },
        )
        not_a_number = await client.post(
            "/v1/prayer-times/fetch",
            json={
                "mode": "multiMonth",
                "year": 2026,
                "months": [3],
                "rateLimitConfig": {"refillRate": "fast"},
            },
        )

    assert accepted.status_code == 202
    assert app.state.repository.get_entries("Sylhet")[0]["date"] == "2026-03-01"
    assert zero.status_code == 422
    assert negative.status_code == 422
    assert not_a_number.status_code == 422


@pytest.mark.asyncio
async def test_preview_rejects_bad_override_before_fetching(tmp_path) -> None:
    upstream = FakeAladhan()
    app = _app(tmp_path, upstream)

    async with _client(app) as client:
        response = await client.post(
            "/v1/prayer-times/preview",
            json={
                "mode": "dateRange",
                "startDate": "2026-03-01",
                "endDate": "2026-03-01",
                "districts": ["Dhaka"],
                "rateLimitConfig": {"max_concurrent_districts": "two"},
            },
        )

    assert response.status_code == 422
    assert upstream.calls == []


    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_progress_stream_closes_on_terminal_status(tmp_path) -> None:
    app = _app(tmp_path)
    store = app.state.progress
    op_id = store.create("fetch", total=4)
    store.complete(op_id)

    async with _client(app) as client:
        response = await client.get(f"/v1/progress/{op_id}/stream")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert "event: progress" in response.text
    assert '"status": "completed"' in response.text
    assert response.text.rstrip().endswith("data: {}")
    assert "event: close" in response.text


@pytest.mark.asyncio
async def test_preview_returns_entries_and_meta(tmp_path) -> None:
    app = _app(tmp_path)

    async with _client(app) as client:
        response = await client.post(
            "/v1/prayer-times/preview",
            json={"mode": "hijriMonth", "hijriMonth": 9, "hijriYear": 1447, "districts": ["Dhaka", "Sylhet"]},
        )

    assert response.status_code == 200
    body = response.json()
    assert len(body["entries"]) == 6
    assert body["meta"]["totalDistricts"] == 2
    assert body["meta"]["fetchMode"] == "hijriMonth"
    assert app.state.repository.get_entries() == []


@pytest.mark.asyncio
async def test_preview_failure_maps_to_bad_gateway(tmp_path) -> None:
    app = _app(tmp_path, FakeAladhan(failing_cities={"Dhaka"}))

    async with _client(app) as client:
        response = await client.post(
            "/v1/prayer-times/preview",
            json={"mode": "hijriMonth", "hijriMonth": 9, "hijriYear": 1447, "districts": ["Dhaka"]},
        )

    assert response.status_code == 502
    assert response.json()["detail"]["message"]


@pytest.mark.asyncio
async def test_batch_upload_and_entry_edits(tmp_path) -> None:
    app = _app(tmp_path)

    async with _client(app) as client:
        created = await client.post(
            "/v1/schedule/batch",
            json={
                "fileName": "march.json",
                "entries": [
                    {"date": "2026-03-01", "sehri": "4:58", "iftar": "18:10 (+06)", "location": "Dhaka"},
                    {"date": "2026-03-02", "sehri": "04:57", "iftar": "18:11", "location": "Dhaka"},
                ],
            },
        )
        rejected = await client.post(
            "/v1/schedule/batch",
            json={"entries": [{"date": "2026-03-01", "sehri": "04:58", "iftar": "18:10", "location": "Atlantis"}]},
        )
        entry_id = app.state.repository.get_entries("Dhaka")[0]["id"]
        patched = await client.patch(f"/v1/schedule/{entry_id}", json={"sehri": "4:45"})
        bad_patch = await client.patch(f"/v1/schedule/{entry_id}", json={"sehri": "late"})
        empty_patch = await client.patch(f"/v1/schedule/{entry_id}", json={})
        deleted = await client.delete(f"/v1/schedule/{entry_id}")
        missing = await client.delete(f"/v1/schedule/{entry_id}")
        uploads = await client.get("/v1/uploads")

    assert created.json() == {"created": 2, "updated": 0}
    assert rejected.status_code == 400
    assert patched.json()["sehri"] == "04:45"
    assert patched.json()["iftar"] == "18:10"
    assert bad_patch.status_code == 422
    assert empty_patch.status_code == 400
    assert deleted.json() == {"deleted": entry_id}
    assert missing.status_code == 404
    assert [u["status"] for u in uploads.json()["items"]] == ["failed", "success"]


@pytest.mark.asyncio
@pytest.mark.parametrize("sehri", ["noon", "99:99", "24:00", "4:75"])
async def test_batch_upload_rejects_out_of_range_times(tmp_path, sehri: str) -> None:
    app = _app(tmp_path)

    async with _client(app) as client:
        response = await client.post(
            "/v1/schedule/batch",
            json={
                "fileName": "bad.json",
                "entries": [
                    {"date": "2026-03-01", "sehri": "04:58", "iftar": "18:10", "location": "Dhaka"},
                    {"date": "2026-03-02", "sehri": sehri, "iftar": "18:11", "location": "Dhaka"},
                ],
            },
        )
        uploads = await client.get("/v1/uploads")

    assert response.status_code == 400
    assert any("HH:mm" in error for error in response.json()["detail"]["errors"])
    assert app.state.repository.get_entries() == []
    log = uploads.json()["items"][0]
    assert log["status"] == "failed"
    assert log["fileName"] == "bad.json"
    assert log["rowCount"] == 2


@pytest.mark.asyncio
async def test_cache_and_rate_limit_endpoints(tmp_path) -> None:
    app = _app(tmp_path)
    await app.state.worker.preview(DateRangeRequest("2026-03-01", "2026-03-02", districts=["Dhaka"]))

    async with _client(app) as client:
        stats = await client.get("/v1/cache")
        cleared = await client.delete("/v1/cache")
        limiter = await client.get("/v1/rate-limit")
        updated = await client.put("/v1/rate-limit", json={"capacity": 4, "minWait": 0.25})
        invalid = await client.put("/v1/rate-limit", json={"refillRate": 0})

    assert stats.json()["size"] == 2
    assert cleared.json() == {"cleared": 2}
    assert limiter.json()["totalRequests"] == 2
    assert "turbo" in limiter.json()["presets"]
    assert updated.json()["capacity"] == 4
    assert updated.json()["minWait"] == 0.25
    assert invalid.status_code == 422
    assert app.state.worker.rate_limiter.get_stats().refill_rate > 0


@pytest.mark.asyncio
async def test_health_and_metrics(tmp_path) -> None:
    app = _app(tmp_path)

    async with _client(app) as client:
        health = await client.get("/healthz")
        ready = await client.get("/readyz")
        upstream = await client.get("/readyz", params={"upstream": "true"})
        metrics = await client.get("/metrics")

    assert health.json()["status"] == "ok"
    assert health.json()["scheduler"]["enabled"] is False
    assert ready.json() == {"status": "ready"}
    assert upstream.json()["upstreamLatencySeconds"] >= 0
    assert metrics.status_code == 200
    assert "ramadan_rate_limiter_tokens" in metrics.text
