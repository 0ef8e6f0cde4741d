from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from ramadan_clock.core.models import FetchProgress, FetchStatus, ProgressCallback

TERMINAL_STATUSES = frozenset({"completed", "failed"})


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


@dataclass
class ProgressOperation:
    id: str
    kind: str
    status: str
    current: int
    total: int
    current_district: str | None = None
    message: str | None = None
    error: str | None = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    @property
    def percentage(self) -> int:
        if self.total <= 0:
            return 0
        return round(self.current / self.total * 100)

    @property
    def finished(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_payload(self) -> dict:
        return {
            "id": self.id,
            "type": self.kind,
            "status": self.status,
            "current": self.current,
            "total": self.total,
            "percentage": self.percentage,
            "currentDistrict": self.current_district,
            "message": self.message,
            "error": self.error,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }


class ProgressStore:
    """In-memory registry of running operations with per-operation subscribers."""

    def __init__(self) -> None:
        self._operations: dict[str, ProgressOperation] = {}
        self._subscribers: dict[str, set[asyncio.Queue]] = {}
        self._logger = logging.getLogger("ramadan.progress")

    def create(self, kind: str, total: int, status: str = "initializing") -> str:
        operation_id = uuid.uuid4().hex
        self._operations[operation_id] = ProgressOperation(
            id=operation_id, kind=kind, status=status, current=0, total=total
        )
        self._notify(operation_id)
        return operation_id

    def get(self, operation_id: str) -> ProgressOperation | None:
        return self._operations.get(operation_id)

    def update(
        self,
        operation_id: str,
        *,
        current: int | None = None,
        total: int | None = None,
        status: str | None = None,
        current_district: str | None = None,
        message: str | None = None,
        error: str | None = None,
    ) -> ProgressOperation | None:
        operation = self._operations.get(operation_id)
        if operation is None:
            return None

        if total is not None:
            operation.total = total
        if current is not None:
            operation.current = current
        if status is not None:
            operation.status = status
        if current_district:
            operation.current_district = current_district
        if message is not None:
            operation.message = message
        if error is not None:
            operation.error = error
        operation.updated_at = _utcnow()

        self._notify(operation_id)
        return operation

    def complete(self, operation_id: str, message: str | None = None) -> ProgressOperation | None:
        operation = self._operations.get(operation_id)
        if operation is None:
            return None
        return self.update(operation_id, current=operation.total, status="completed", message=message)

    def fail(self, operation_id: str, error: str) -> ProgressOperation | None:
        return self.update(operation_id, status="failed", error=error)

    def callback(self, operation_id: str) -> ProgressCallback:
        """Adapt the store to the orchestrator's per-batch progress callback.

        Terminal statuses are left to the job runner, which only knows the
        outcome once the entries are persisted.
        """

        def _on_progress(progress: FetchProgress) -> None:
            if progress.status is not FetchStatus.FETCHING:
                return
            self.update(
                operation_id,
                current=progress.current,
                total=progress.total,
                status=progress.status.value,
                current_district=progress.current_district,
            )

        return _on_progress

    def subscribe(self, operation_id: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.setdefault(operation_id, set()).add(queue)
        operation = self._operations.get(operation_id)
        if operation is not None:
            queue.put_nowait(operation.to_payload())
        return queue

    def unsubscribe(self, operation_id: str, queue: asyncio.Queue) -> None:
        queues = self._subscribers.get(operation_id)
        if not queues:
            return
        queues.discard(queue)
        if not queues:
            del self._subscribers[operation_id]

    def cleanup(self, max_age: timedelta = timedelta(hours=1)) -> int:
        cutoff = _utcnow() - max_age
        stale = [
            op_id
            for op_id, op in self._operations.items()
            if op.finished and op.updated_at < cutoff
        ]
        for op_id in stale:
            del self._operations[op_id]
            self._subscribers.pop(op_id, None)
        if stale:
            self._logger.debug("Removed %d finished operations", len(stale))
        return len(stale)

    def _notify(self, operation_id: str) -> None:
        operation = self._operations.get(operation_id)
        if operation is None:
            return
        payload = operation.to_payload()
        for queue in self._subscribers.get(operation_id, ()):
            queue.put_nowait(payload)
