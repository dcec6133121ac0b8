"""Progress events emitted by sync jobs."""

import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum as PyEnum

import structlog
from pydantic import BaseModel, Field

logger = structlog.get_logger()


class JobStatus(str, PyEnum):
    """Lifecycle of a sync job, also used as the stage of progress events."""

    IDLE = "idle"
    DOWNLOADING = "downloading"
    PROCESSING = "processing"
    VECTORIZING = "vectorizing"
    UPSERTING = "upserting"
    COMPLETE = "complete"
    ERROR = "error"


class ProgressEvent(BaseModel):
    """A single progress report."""

    stage: JobStatus
    message: str
    progress: float = Field(..., ge=0, le=100)


ProgressCallback = Callable[[ProgressEvent], Awaitable[None] | None]


@dataclass(frozen=True)
class ProgressWindow:
    """The slice of overall job progress owned by one phase."""

    start: float = 0.0
    end: float = 100.0

    def at(self, fraction: float) -> float:
        """Map a phase-local fraction (0-1) onto the job's 0-100 scale."""
        fraction = min(max(fraction, 0.0), 1.0)
        return round(self.start + (self.end - self.start) * fraction, 2)


IMPORT_WINDOW = ProgressWindow(0.0, 70.0)
INDEX_WINDOW = ProgressWindow(70.0, 100.0)
FULL_WINDOW = ProgressWindow(0.0, 100.0)


async def emit_progress(
    callback: ProgressCallback | None,
    stage: JobStatus,
    message: str,
    progress: float,
) -> None:
    """Invoke ``callback`` inline, awaiting it when it is a coroutine function."""
    if callback is None:
        return
    result = callback(ProgressEvent(stage=stage, message=message, progress=progress))
    if inspect.isawaitable(result):
        await result


def log_progress(event: ProgressEvent) -> None:
    """Progress sink that writes events to the structured log."""
    logger.info(
        "Sync progress",
        stage=event.stage.value,
        progress=event.progress,
        message=event.message,
    )
