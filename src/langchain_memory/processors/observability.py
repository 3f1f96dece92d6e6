"""
Stage statistics and observability sinks.

Every processor invocation produces one StageEvent. Sinks are fire-and-forget:
emit_event() swallows sink failures so diagnostics can never change what the
pipeline returns.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

logger = logging.getLogger(__name__)


@dataclass
class StageEvent:
    """Diagnostic record for one stage invocation."""

    stage_name: str
    input_count: int
    output_count: int
    latency_ms: float
    error: Optional[str] = None
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def removed_count(self) -> int:
        return max(self.input_count - self.output_count, 0)


class ObservabilitySink(Protocol):
    def emit(self, event: StageEvent) -> None: ...


class LoggingSink:
    """Default sink: writes each event to the standard logger."""

    def __init__(self, level: int = logging.DEBUG):
        self.level = level

    def emit(self, event: StageEvent) -> None:
        if event.error:
            logger.warning(
                "%s failed after %.1fms on %d messages: %s",
                event.stage_name,
                event.latency_ms,
                event.input_count,
                event.error,
            )
            return
        logger.log(
            self.level,
            "%s: %d → %d messages in %.1fms %s",
            event.stage_name,
            event.input_count,
            event.output_count,
            event.latency_ms,
            event.details or "",
        )


class RecordingSink:
    """Keeps events in memory, e.g. for per-request statistics."""

    def __init__(self):
        self.events: list[StageEvent] = []

    def emit(self, event: StageEvent) -> None:
        self.events.append(event)

    def for_stage(self, stage_name: str) -> list[StageEvent]:
        return [e for e in self.events if e.stage_name == stage_name]

    def clear(self) -> None:
        self.events.clear()


def emit_event(sink: Optional[ObservabilitySink], event: StageEvent) -> None:
    """Send an event to a sink, ignoring sink failures."""
    if sink is None:
        return
    try:
        sink.emit(event)
    except Exception as e:
        logger.debug("Observability sink failed for %s: %s", event.stage_name, e)
