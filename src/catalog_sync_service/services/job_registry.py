"""Per-tenant job slots.

At most one job of each kind runs per tenant. The slot is claimed with a
set-if-absent, refreshed by progress events, deleted on success and kept
for a short retention window after an error so pollers can read it.
"""

import abc
import time
import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from enum import Enum as PyEnum

import orjson
import redis.asyncio as aioredis
import structlog
from pydantic import BaseModel, Field

from catalog_sync_service.config import get_settings
from catalog_sync_service.services.errors import CatalogSyncError
from catalog_sync_service.services.progress import JobStatus, ProgressEvent

logger = structlog.get_logger()


class JobKind(str, PyEnum):
    SYNC = "sync"
    REINDEX = "reindex"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SyncJobState(BaseModel):
    """Observable state of a running (or recently failed) job."""

    job_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    tenant_id: str
    kind: JobKind = JobKind.SYNC
    status: JobStatus = JobStatus.IDLE
    progress: float = 0.0
    message: str = ""
    error: str | None = None
    started_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @classmethod
    def idle(cls, tenant_id: str, kind: JobKind = JobKind.SYNC) -> "SyncJobState":
        """Placeholder reported when no job exists."""
        return cls(job_id="", tenant_id=tenant_id, kind=kind)

    def advanced(self, event: ProgressEvent) -> "SyncJobState":
        return self.model_copy(
            update={
                "status": event.stage,
                "progress": event.progress,
                "message": event.message,
                "updated_at": _utcnow(),
            }
        )

    def failed(self, message: str) -> "SyncJobState":
        return self.model_copy(
            update={
                "status": JobStatus.ERROR,
                "message": message,
                "error": message,
                "updated_at": _utcnow(),
            }
        )


class SyncJobRegistry(abc.ABC):
    """Storage for job slots keyed by (tenant, kind)."""

    def __init__(
        self,
        error_retention_seconds: float | None = None,
        max_runtime_seconds: float | None = None,
    ):
        settings = get_settings()
        self.error_retention_seconds = (
            settings.job_error_retention_seconds
            if error_retention_seconds is None
            else error_retention_seconds
        )
        self.max_runtime_seconds = max_runtime_seconds or settings.job_max_runtime_seconds

    @abc.abstractmethod
    async def claim(self, tenant_id: str, kind: JobKind = JobKind.SYNC) -> SyncJobState | None:
        """Create the slot if it is free; None when a job already holds it."""

    @abc.abstractmethod
    async def get(self, tenant_id: str, kind: JobKind = JobKind.SYNC) -> SyncJobState | None:
        ...

    @abc.abstractmethod
    async def update(self, job: SyncJobState, event: ProgressEvent) -> SyncJobState | None:
        """Apply a progress event if the job still owns its slot."""

    @abc.abstractmethod
    async def fail(self, job: SyncJobState, message: str) -> None:
        """Mark the job as errored and keep it for the retention window."""

    @abc.abstractmethod
    async def release(self, job: SyncJobState) -> None:
        """Delete the slot if the job still owns it."""

    @abc.abstractmethod
    async def remove(self, tenant_id: str, kind: JobKind = JobKind.SYNC) -> bool:
        """Delete the slot unconditionally; True when something was removed."""

    async def status(self, tenant_id: str, kind: JobKind = JobKind.SYNC) -> SyncJobState:
        return await self.get(tenant_id, kind) or SyncJobState.idle(tenant_id, kind)


class InMemoryJobRegistry(SyncJobRegistry):
    """Process-local registry; entries expire lazily on access."""

    def __init__(
        self,
        error_retention_seconds: float | None = None,
        max_runtime_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(error_retention_seconds, max_runtime_seconds)
        self._clock = clock
        self._jobs: dict[tuple[str, JobKind], tuple[SyncJobState, float]] = {}

    def _live(self, key: tuple[str, JobKind]) -> SyncJobState | None:
        entry = self._jobs.get(key)
        if entry is None:
            return None
        state, expires_at = entry
        if self._clock() >= expires_at:
            del self._jobs[key]
            return None
        return state

    def _owned(self, job: SyncJobState) -> tuple[str, JobKind] | None:
        key = (job.tenant_id, job.kind)
        current = self._live(key)
        if current is None or current.job_id != job.job_id:
            return None
        return key

    async def claim(self, tenant_id: str, kind: JobKind = JobKind.SYNC) -> SyncJobState | None:
        key = (tenant_id, kind)
        if self._live(key) is not None:
            return None
        state = SyncJobState(tenant_id=tenant_id, kind=kind)
        self._jobs[key] = (state, self._clock() + self.max_runtime_seconds)
        return state

    async def get(self, tenant_id: str, kind: JobKind = JobKind.SYNC) -> SyncJobState | None:
        return self._live((tenant_id, kind))

    async def update(self, job: SyncJobState, event: ProgressEvent) -> SyncJobState | None:
        key = self._owned(job)
        if key is None:
            return None
        current, _ = self._jobs[key]
        state = current.advanced(event)
        self._jobs[key] = (state, self._clock() + self.max_runtime_seconds)
        return state

    async def fail(self, job: SyncJobState, message: str) -> None:
        key = self._owned(job)
        if key is None:
            return
        current, _ = self._jobs[key]
        self._jobs[key] = (current.failed(message), self._clock() + self.error_retention_seconds)

    async def release(self, job: SyncJobState) -> None:
        key = self._owned(job)
        if key is not None:
            del self._jobs[key]

    async def remove(self, tenant_id: str, kind: JobKind = JobKind.SYNC) -> bool:
        return self._jobs.pop((tenant_id, kind), None) is not None


class RedisJobRegistry(SyncJobRegistry):
    """Registry shared by API replicas and workers through Redis keys with TTLs."""

    key_prefix = "catalog_sync:job"

    def __init__(
        self,
        client_factory: Callable[[], Awaitable[aioredis.Redis | None]],
        error_retention_seconds: float | None = None,
        max_runtime_seconds: float | None = None,
    ):
        super().__init__(error_retention_seconds, max_runtime_seconds)
        self._client_factory = client_factory

    def _key(self, tenant_id: str, kind: JobKind) -> str:
        return f"{self.key_prefix}:{tenant_id}:{kind.value}"

    async def _client(self) -> aioredis.Redis:
        client = await self._client_factory()
        if client is None:
            raise CatalogSyncError("Job registry unavailable: Redis is not reachable")
        return client

    @staticmethod
    def _dump(state: SyncJobState) -> bytes:
        return orjson.dumps(state.model_dump(mode="json"))

    @staticmethod
    def _load(data: bytes | None) -> SyncJobState | None:
        if not data:
            return None
        return SyncJobState.model_validate(orjson.loads(data))

    async def _owned(self, client: aioredis.Redis, job: SyncJobState) -> SyncJobState | None:
        current = self._load(await client.get(self._key(job.tenant_id, job.kind)))
        if current is None or current.job_id != job.job_id:
            return None
        return current

    async def claim(self, tenant_id: str, kind: JobKind = JobKind.SYNC) -> SyncJobState | None:
        client = await self._client()
        state = SyncJobState(tenant_id=tenant_id, kind=kind)
        created = await client.set(
            self._key(tenant_id, kind),
            self._dump(state),
            nx=True,
            ex=int(self.max_runtime_seconds),
        )
        return state if created else None

    async def get(self, tenant_id: str, kind: JobKind = JobKind.SYNC) -> SyncJobState | None:
        client = await self._client()
        return self._load(await client.get(self._key(tenant_id, kind)))

    async def update(self, job: SyncJobState, event: ProgressEvent) -> SyncJobState | None:
        client = await self._client()
        current = await self._owned(client, job)
        if current is None:
            return None
        state = current.advanced(event)
        await client.set(
            self._key(job.tenant_id, job.kind), self._dump(state),
            xx=True,
            ex=int(self.max_runtime_seconds),
        )
        return state

    async def fail(self, job: SyncJobState, message: str) -> None:
        client = await self._client()
        current = await self._owned(client, job)
        if current is None:
            return
        await client.set(
            self._key(job.tenant_id, job.kind),
            self._dump(current.failed(message)),
            xx=True,
            px=max(int(self.error_retention_seconds * 1000), 1),
        )

    async def release(self, job: SyncJobState) -> None:
        client = await self._client()
        if await self._owned(client, job) is not None:
            await client.delete(self._key(job.tenant_id, job.kind))

    async def remove(self, tenant_id: str, kind: JobKind = JobKind.SYNC) -> bool:
        client = await self._client()
        return bool(await client.delete(self._key(tenant_id, kind)))
