"""
Progress Estimator
==================
Maps run progress onto a percentage and publishes phase events.

The processing phase uses a logarithmic curve::

    start + (end - start) * log10(1 + 9 * current / total)

so the first few pages move the indicator visibly while the back half is
compressed and the bar does not sit at 99% long before the run ends.

Events go to an optional sink. ``QueueSink`` puts them on an
``asyncio.Queue`` so a slow consumer never holds up the scheduler.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class ProgressPhase(str, Enum):
    """Lifecycle phase of an extraction run."""
    INITIALIZING = "initializing"
    DISCOVERING = "discovering"
    PROCESSING = "processing"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    FAILED = "failed"


# Fixed checkpoints (percent)
INITIALIZING_PERCENT = 2
DISCOVERING_PERCENT = 8
DISCOVERY_DONE_PERCENT = 12
SITEMAP_RANGE = (10, 85)
CRAWL_RANGE = (15, 85)
FINALIZING_CHECKPOINTS = (88, 92, 96)


def calculate_progress(
    current: int,
    total: int,
    start_percent: int = 10,
    end_percent: int = 90,
) -> int:
    """
    Logarithmic progress between ``start_percent`` and ``end_percent``.

    Always returns an integer inside ``[start_percent, end_percent]``. An
    unknown or zero total yields ``start_percent``.
    """
    if not total or total <= 0:
        return start_percent
    ratio = min(max(current / total, 0.0), 1.0)
    log_progress = math.log10(1 + 9 * ratio)
    value = math.floor(start_percent + (end_percent - start_percent) * log_progress)
    return min(max(value, start_percent), end_percent)


@dataclass
class ProgressEvent:
    """A single progress notification."""
    phase: ProgressPhase
    percentage: int
    message: str
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    def to_dict(self) -> dict:
        return {
            'phase': self.phase.value,
            'percentage': self.percentage,
            'message': self.message,
            'timestamp': self.timestamp,
        }


@dataclass
class ProgressState:
    """Current progress of one run."""
    phase: ProgressPhase = ProgressPhase.INITIALIZING
    processed_count: int = 0
    estimated_total: int = 0
    current_percentage: int = 0


class ProgressReporter:
    """
    Owns the ``ProgressState`` of one run and emits events.

    The percentage never decreases within a run and is clamped to
    ``[0, 100]``; a lower value asked for by a later phase is held at the
    current one. Sink errors are logged and otherwise ignored.
    """

    def __init__(self, sink: Optional[Callable[[ProgressEvent], None]] = None):
        self._sink = sink
        self.state = ProgressState()
        self.events: List[ProgressEvent] = []

    @property
    def percentage(self) -> int:
        return self.state.current_percentage

    def update(
        self,
        phase: ProgressPhase,
        percentage: Optional[int],
        message: str,
    ) -> ProgressEvent:
        """Move to ``phase`` at ``percentage`` (None keeps the current value)."""
        if percentage is None:
            percentage = self.state.current_percentage
        percentage = min(max(int(percentage), 0), 100)
        percentage = max(percentage, self.state.current_percentage)

        self.state.phase = phase
        self.state.current_percentage = percentage

        event = ProgressEvent(phase=phase, percentage=percentage, message=message)
        self.events.append(event)
        logger.debug(f"[PROGRESS] {percentage:3d}% {phase.value}: {message}")

        if self._sink is not None:
            try:
                self._sink(event)
            except Exception as e:
                logger.warning(f"[PROGRESS] Sink raised {type(e).__name__}: {e}")
        return event

    def page_processed(self, message: str, start: int, end: int) -> ProgressEvent:
        """Count one processed item and emit a processing event."""
        self.state.processed_count += 1
        value = calculate_progress(
            self.state.processed_count, self.state.estimated_total, start, end
        )
        return self.update(ProgressPhase.PROCESSING, value, message)

    def fail(self, message: str) -> ProgressEvent:
        """Terminal failure: last percentage is held."""
        return self.update(ProgressPhase.FAILED, None, message)


class QueueSink:
    """
    Progress sink backed by an unbounded ``asyncio.Queue``.

    The producer side never blocks. Consumers iterate with ``async for``;
    iteration ends after a ``completed`` or ``failed`` event.
    """

    TERMINAL = (ProgressPhase.COMPLETED, ProgressPhase.FAILED)

    def __init__(self):
        self.queue: asyncio.Queue = asyncio.Queue()

    def __call__(self, event: ProgressEvent) -> None:
        self.queue.put_nowait(event)

    def close(self) -> None:
        """Wake consumers without a terminal event (e.g. on cancellation)."""
        self.queue.put_nowait(None)

    def __aiter__(self):
        return self

    async def __anext__(self) -> ProgressEvent:
        event = await self.queue.get()
        if event is None:
            raise StopAsyncIteration
        if event.phase in self.TERMINAL:
            # Deliver the terminal event, then stop on the next call
            self.queue.put_nowait(None)
        return event
