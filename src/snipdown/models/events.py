"""Lifecycle states and events emitted while clipping."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional


class ClipState(str, Enum):
    """States of one conversion/download request."""

    INITIATED = "initiated"
    AWAITING_DOM = "awaiting_dom"
    DOM_CAPTURED = "dom_captured"
    CONVERTING = "converting"
    RESULT_READY = "result_ready"
    FAILED = "failed"


TERMINAL_STATES = frozenset({ClipState.RESULT_READY, ClipState.FAILED})

# Success path; FAILED is reachable from every non-terminal state
ALLOWED_TRANSITIONS: dict[ClipState, frozenset[ClipState]] = {
    ClipState.INITIATED: frozenset({ClipState.AWAITING_DOM, ClipState.FAILED}),
    ClipState.AWAITING_DOM: frozenset({ClipState.DOM_CAPTURED, ClipState.FAILED}),
    ClipState.DOM_CAPTURED: frozenset({ClipState.CONVERTING, ClipState.FAILED}),
    ClipState.CONVERTING: frozenset({ClipState.RESULT_READY, ClipState.FAILED}),
    ClipState.RESULT_READY: frozenset(),
    ClipState.FAILED: frozenset(),
}


class EventType(str, Enum):
    """Types of events emitted by the orchestrator."""

    STATE_CHANGED = "state_changed"

    # Delivery
    DOWNLOAD_STARTED = "download_started"
    DOWNLOAD_COMPLETED = "download_completed"
    DOWNLOAD_INTERRUPTED = "download_interrupted"
    DELIVERY_FALLBACK = "delivery_fallback"
    IMAGE_FAILED = "image_failed"

    # Clipboard
    COPIED = "copied"

    # Batch
    BATCH_STARTED = "batch_started"
    BATCH_ITEM_FAILED = "batch_item_failed"
    BATCH_COMPLETED = "batch_completed"


@dataclass
class ClipEvent:
    """
    Event emitted during clip operations.

    Example:
        def on_event(event: ClipEvent) -> None:
            if event.type == EventType.STATE_CHANGED:
                print(f"{event.request_id}: {event.state.value}")
            elif event.type == EventType.BATCH_ITEM_FAILED:
                print(f"Error: {event.url} - {event.error}")
    """

    type: EventType
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    request_id: Optional[str] = None
    tab_id: Optional[int] = None
    state: Optional[ClipState] = None
    url: Optional[str] = None
    filename: Optional[str] = None
    message: Optional[str] = None
    error: Optional[str] = None
    current: Optional[int] = None
    total: Optional[int] = None

    def __str__(self) -> str:
        parts = [self.type.value]
        if self.state:
            parts.append(self.state.value)
        if self.url:
            parts.append(self.url)
        if self.filename:
            parts.append(self.filename)
        if self.error:
            parts.append(f"error={self.error}")
        return " ".join(parts)


EventCallback = Callable[[ClipEvent], None]


@dataclass
class ClipStats:
    """Counters for a batch of clips."""

    items_total: int = 0
    items_converted: int = 0
    items_failed: int = 0
    downloads_started: int = 0
    images_failed: int = 0
    duration_seconds: float = 0.0
    failures: list[tuple[str, str]] = field(default_factory=list)

    @property
    def success_rate(self) -> float:
        if self.items_total == 0:
            return 0.0
        return self.items_converted / self.items_total

    def to_dict(self) -> dict:
        return {
            "items_total": self.items_total,
            "items_converted": self.items_converted,
            "items_failed": self.items_failed,
            "downloads_started": self.downloads_started,
            "images_failed": self.images_failed,
            "duration_seconds": round(self.duration_seconds, 3),
            "success_rate": round(self.success_rate, 4),
            "failures": [{"item": item, "error": error} for item, error in self.failures],
        }
