from __future__ import annotations

import asyncio
import json
from datetime import datetime
from typing import Any
from zoneinfo import ZoneInfo

import httpx
from fastapi import APIRouter, Body, HTTPException, Query, Request
from fastapi.responses import Response, StreamingResponse
from pydantic import ValidationError

from ramadan_clock.api.schemas import FetchRequestBody, RateLimitUpdate, ScheduleEntryUpdate, UploadBody
from ramadan_clock.config import RATE_LIMIT_PRESETS, RateLimitProfile
from ramadan_clock.core.constants import DEFAULT_DISTRICT, DISTRICT_COORDINATES, is_valid_district
from ramadan_clock.core.models import FetchRequest
from ramadan_clock.core.serialization import entries_to_payload, fetch_summary
from ramadan_clock.fetching.errors import AladhanApiError, describe_error, get_user_friendly_message

router = APIRouter()

_UPLOAD_BATCH_SIZE = 100


def _job(payload: FetchRequestBody) -> tuple[FetchRequest, RateLimitProfile | None]:
    body = payload.root
    try:
        return body.to_request(), body.rate_limit()
    except ValueError as exc:
        # FetchRequestError included: date order, month and district checks
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.get("/healthz")
async def healthz(request: Request) -> dict:
    worker = request.app.state.worker
    return {
        "status": "ok",
        "scheduler": {
            "enabled": request.app.state.settings.enable_scheduler,
            "running": worker.is_running(),
            "lastRunStatus": worker.last_run_status,
            "lastRunStartedAt": worker.last_run_started_at.isoformat() if worker.last_run_started_at else None,
            "lastRunFinishedAt": worker.last_run_finished_at.isoformat() if worker.last_run_finished_at else None,
            "lastError": worker.last_error,
        },
    }


@router.get("/readyz")
async def readyz(request: Request, upstream: bool = Query(default=False)) -> dict:
    repository = request.app.state.repository
    try:
        repository.ping()
    except Exception as exc:  # pragma: no cover
        raise HTTPException(status_code=503, detail=f"database not ready: {exc}") from exc

    if not upstream:
        return {"status": "ready"}

    provider = request.app.state.worker.build_orchestrator().provider
    try:
        latency = await provider.check_connectivity()
    except (httpx.HTTPError, AladhanApiError) as exc:
        raise HTTPException(status_code=503, detail=f"upstream not reachable: {exc}") from exc
    return {"status": "ready", "upstreamLatencySeconds": round(latency, 3)}


@router.get("/metrics")
async def metrics(request: Request) -> Response:
    limiter = request.app.state.worker.rate_limiter
    request.app.state.metrics.rate_limiter_tokens.set(limiter.get_stats().current_tokens)
    payload, content_type = request.app.state.metrics.render()
    return Response(content=payload, media_type=content_type)


@router.get("/v1/locations")
async def locations(request: Request) -> dict:
    stored = set(request.app.state.repository.get_locations())
    return {
        "items": [
            {
                "name": name,
                "latitude": lat,
                "longitude": lon,
                "hasSchedule": name in stored,
            }
            for name, (lat, lon) in DISTRICT_COORDINATES.items()
        ]
    }


@router.get("/v1/schedule")
async def schedule(
    request: Request,
    location: str | None = Query(default=None),
    start_date: str | None = Query(alias="from", default=None),
    end_date: str | None = Query(alias="to", default=None),
) -> dict:
    if location is not None and not is_valid_district(location):
        raise HTTPException(status_code=400, detail=f"Invalid district: {location}")
    items = request.app.state.repository.get_entries(location, start_date, end_date)
    return {"count": len(items), "items": items}


@router.get("/v1/schedule/today")
async def schedule_today(
    request: Request,
    location: str = Query(default=DEFAULT_DISTRICT),
) -> dict:
    if not is_valid_district(location):
        raise HTTPException(status_code=400, detail=f"Invalid district: {location}")
    tz = ZoneInfo(request.app.state.settings.aladhan.timezone)
    today = datetime.now(tz=tz).date().isoformat()
    items = request.app.state.repository.get_entries(location, today, today)
    if not items:
        raise HTTPException(status_code=404, detail=f"No schedule for {location} on {today}")
    return items[0]


@router.patch("/v1/schedule/{entry_id}")
async def update_schedule_entry(request: Request, entry_id: int, payload: ScheduleEntryUpdate) -> dict:
    changes = payload.model_dump(exclude_none=True)
    if not changes:
        raise HTTPException(status_code=400, detail="Nothing to update; send sehri and/or iftar")

    repository = request.app.state.repository
    if not repository.update_entry(entry_id, **changes):
        raise HTTPException(status_code=404, detail="Schedule entry not found")
    return repository.get_entry(entry_id)


@router.delete("/v1/schedule/{entry_id}")
async def delete_schedule_entry(request: Request, entry_id: int) -> dict:
    if not request.app.state.repository.delete_entry(entry_id):
        raise HTTPException(status_code=404, detail="Schedule entry not found")
    return {"deleted": entry_id}


@router.post("/v1/schedule/batch")
async def upload_schedule(request: Request, payload: dict[str, Any] = Body(...)) -> dict:
    repository = request.app.state.repository
    rows = payload.get("entries")
    row_count = len(rows) if isinstance(rows, list) else 0
    try:
        upload = UploadBody.model_validate(payload)
    except ValidationError as exc:
        errors = [
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in exc.errors()[:5]
        ]
        repository.record_upload(
            file_name=str(payload.get("fileName") or "upload.json"),
            row_count=row_count,
            status="failed",
            error_message="; ".join(errors),
        )
        raise HTTPException(status_code=400, detail={"message": "Validation failed", "errors": errors}) from exc

    entries = [row.to_entry() for row in upload.entries]
    result = repository.upsert_entries(entries, batch_size=_UPLOAD_BATCH_SIZE)
    request.app.state.metrics.mark_upsert(result.created, result.updated)
    repository.record_upload(file_name=upload.file_name, row_count=row_count, status="success")
    return {"created": result.created, "updated": result.updated}


@router.get("/v1/uploads")
async def uploads(request: Request, limit: int = Query(default=5, ge=1, le=100)) -> dict:
    items = request.app.state.repository.recent_uploads(limit)
    return {"count": len(items), "items": items}


@router.post("/v1/prayer-times/fetch", status_code=202)
async def start_fetch(request: Request, payload: FetchRequestBody) -> dict:
    fetch_request, rate_limit = _job(payload)
    operation_id = request.app.state.worker.submit(fetch_request, rate_limit)
    return {"operationId": operation_id, "mode": fetch_request.mode}


@router.post("/v1/prayer-times/preview")
async def preview_fetch(request: Request, payload: FetchRequestBody) -> dict:
    fetch_request, rate_limit = _job(payload)
    try:
        entries = await request.app.state.worker.preview(fetch_request, rate_limit)
    except Exception as exc:
        details = describe_error(exc)
        raise HTTPException(
            status_code=502,
            detail={"type": details.type.value, "message": get_user_friendly_message(details.type)},
        ) from exc
    return {
        "entries": entries_to_payload(entries),
        "meta": fetch_summary(entries, fetch_request.mode),
    }


@router.get("/v1/prayer-times/runs")
async def fetch_runs(request: Request, limit: int = Query(default=10, ge=1, le=100)) -> dict:
    items = request.app.state.repository.recent_fetch_runs(limit)
    return {"count": len(items), "items": items}


@router.get("/v1/progress/{operation_id}")
async def progress(request: Request, operation_id: str) -> dict:
    operation = request.app.state.progress.get(operation_id)
    if operation is None:
        raise HTTPException(status_code=404, detail="Operation not found")
    return operation.to_payload()


@router.delete("/v1/progress/{operation_id}")
async def cancel_operation(request: Request, operation_id: str) -> dict:
    if not request.app.state.worker.cancel(operation_id):
        raise HTTPException(status_code=404, detail="Operation not running")
    return {"cancelled": operation_id}


@router.get("/v1/progress/{operation_id}/stream")
async def progress_stream(request: Request, operation_id: str) -> StreamingResponse:
    store = request.app.state.progress
    if store.get(operation_id) is None:
        raise HTTPException(status_code=404, detail="Operation not found")

    queue = store.subscribe(operation_id)

    async def _events():
        try:
            while True:
                try:
                    payload = await asyncio.wait_for(queue.get(), timeout=15)
                except TimeoutError:
                    if await request.is_disconnected():
                        break
                    yield ": keep-alive\n\n"
                    continue
                yield f"event: progress\ndata: {json.dumps(payload)}\n\n"
                if payload["status"] in ("completed", "failed"):
                    yield "event: close\ndata: {}\n\n"
                    break
        finally:
            store.unsubscribe(operation_id, queue)

    return StreamingResponse(
        _events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache, no-transform", "X-Accel-Buffering": "no"},
    )


@router.get("/v1/cache")
async def cache_stats(request: Request) -> dict:
    return request.app.state.cache.stats()


@router.delete("/v1/cache")
async def clear_cache(request: Request) -> dict:
    return {"cleared": request.app.state.cache.clear()}


def _limiter_payload(request: Request) -> dict:
    stats = request.app.state.worker.rate_limiter.get_stats()
    return {
        "currentTokens": stats.current_tokens,
        "capacity": stats.capacity,
        "refillRate": stats.refill_rate,
        "minWait": stats.min_wait,
        "totalRequests": stats.total_requests,
        "totalWaitTime": stats.total_wait_time,
        "averageWaitTime": stats.average_wait_time,
        "presets": sorted(RATE_LIMIT_PRESETS),
    }


@router.get("/v1/rate-limit")
async def rate_limit_stats(request: Request) -> dict:
    return _limiter_payload(request)


@router.put("/v1/rate-limit")
async def update_rate_limit(request: Request, payload: RateLimitUpdate) -> dict:
    limiter = request.app.state.worker.rate_limiter
    try:
        limiter.update_config(**payload.model_dump(exclude_none=True))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _limiter_payload(request)
