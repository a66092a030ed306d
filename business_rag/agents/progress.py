# =============================================================================
# Progress Channel — Stage Events from the Pipeline to an Observer
# =============================================================================
#
# Pipeline stages report what they are doing ("retrieve/strategy_completed",
# "rank/completed") through an explicit channel handed to them by the
# caller. The channel decouples reporting from business logic: stages never
# look at who is listening, and a pipeline run without a channel behaves
# identically.
#
# Two observer styles:
#   1. Queue consumer — `async for event in channel:` until the pipeline
#      closes the channel (used by the streaming endpoint).
#   2. Callback — `ProgressChannel(callback=fn)`, fn is called inline for
#      every event (handy for logging and tests).
#
# DESIGN DECISION: Unbounded asyncio.Queue with put_nowait().
# Emitting must never suspend or fail a pipeline stage, so a slow
# consumer only grows the queue. A request produces a few dozen events
# at most.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressEvent:
    """One stage transition."""

    stage: str
    status: str
    detail: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def to_dict(self) -> dict[str, Any]:
        return {"stage": self.stage, "status": self.status, "detail": dict(self.detail)}


class ProgressChannel:
    """Single-observer message channel for pipeline progress."""

    def __init__(
        self,
        callback: Callable[[ProgressEvent], None] | None = None,
    ) -> None:
        self._callback = callback
        self._queue: asyncio.Queue[ProgressEvent | None] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def emit(self, stage: str, status: str, /, **detail: Any) -> None:
        """Publish an event. A no-op once the channel is closed."""
        if self._closed:
            return
        event = ProgressEvent(stage=stage, status=status, detail=detail)

        if self._callback is None:
            self._queue.put_nowait(event)
            return

        try:
            self._callback(event)
        except Exception as e:
            # A broken observer must not take the request down with it
            logger.warning("Progress callback failed on %s/%s: %s", stage, status, e)

    def close(self) -> None:
        """Signal end of stream to a queue consumer."""
        if self._closed:
            return
        self._closed = True
        if self._callback is None:
            self._queue.put_nowait(None)

    def drain(self) -> list[ProgressEvent]:
        """Return every queued event without waiting."""
        events: list[ProgressEvent] = []
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if item is not None:
                events.append(item)
        return events

    def __aiter__(self) -> ProgressChannel:
        return self

    async def __anext__(self) -> ProgressEvent:
        item = await self._queue.get()
        if item is None:
            raise StopAsyncIteration
        return item


def emit(channel: ProgressChannel | None, stage: str, status: str, /, **detail: Any) -> None:
    """Emit on `channel` if there is one."""
    if channel is not None:
        channel.emit(stage, status, **detail)
