"""Request-scoped tracing of workflow operations."""

import time
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterator

from ecowheels.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class TraceEvent:
    operation: str
    duration_ms: float | None = None
    success: bool = True
    metadata: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


class WorkflowTracer:
    """Collects timed operations performed on behalf of one API request.

    The summary is returned with transition responses so a client can see which
    engine steps ran and how long each took.
    """

    def __init__(self, request_id: str, driver_id: str | None = None):
        self.request_id = request_id
        self.driver_id = driver_id
        self.events: list[TraceEvent] = []
        self._started = time.perf_counter()

    def add_event(
        self,
        operation: str,
        duration_ms: float | None = None,
        success: bool = True,
        **metadata: Any,
    ) -> None:
        self.events.append(TraceEvent(operation, duration_ms, success, metadata))
        logger.info(
            "trace_event",
            request_id=self.request_id,
            driver_id=self.driver_id,
            operation=operation,
            duration_ms=duration_ms,
            success=success,
            **metadata,
        )

    @contextmanager
    def trace_operation(self, operation: str, **metadata: Any) -> Iterator[None]:
        """Time the enclosed block and record it, marking it failed if it raises."""
        started = time.perf_counter()
        failed = False
        try:
            yield
        except Exception:
            failed = True
            raise
        finally:
            elapsed = (time.perf_counter() - started) * 1000
            self.add_event(operation, duration_ms=elapsed, success=not failed, **metadata)

    def get_trace_summary(self) -> dict[str, Any]:
        return {
            "request_id": self.request_id,
            "driver_id": self.driver_id,
            "total_duration_ms": (time.perf_counter() - self._started) * 1000,
            "total_events": len(self.events),
            "failed_events": len([e for e in self.events if not e.success]),
            "events": [e.to_dict() for e in self.events],
        }
