"""
Fire-and-forget operation notifications.
Events go to a bounded queue; the producing operation never blocks on, or fails because of, delivery.
"""

import queue
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..util.logging import logger


@dataclass
class OperationEvent:
    """Structured notification for one significant operation."""
    operation: str
    identifier: str
    elapsed_ms: float
    success: bool
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation": self.operation,
            "identifier": self.identifier,
            "elapsed_ms": round(self.elapsed_ms, 3),
            "success": self.success,
            "details": dict(self.details),
            "timestamp": self.timestamp.isoformat(),
        }


class EventChannel:
    """Bounded outbound channel consumed by an external bus."""

    def __init__(self, maxsize: int = 1000):
        if maxsize < 1:
            raise ValueError(f"maxsize must be >= 1: {maxsize}")
        self._queue: "queue.Queue[OperationEvent]" = queue.Queue(maxsize=maxsize)
        self._lock = threading.Lock()
        self.emitted = 0
        self.dropped = 0

    def emit(self, operation: str, identifier: str, elapsed_ms: float, success: bool, **details) -> bool:
        """
        Enqueue an event without blocking.

        Returns:
            True if queued, False if dropped because the channel is full
        """
        event = OperationEvent(
            operation=operation,
            identifier=identifier,
            elapsed_ms=elapsed_ms,
            success=success,
            details=details,
        )
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            with self._lock:
                self.dropped += 1
            logger.debug(f"Event channel full, dropped '{operation}' for {identifier}")
            return False

        with self._lock:
            self.emitted += 1
        return True

    def get(self, timeout: Optional[float] = None) -> Optional[OperationEvent]:
        """Next event, or None when nothing arrives within timeout."""
        try:
            if timeout is None:
                return self._queue.get_nowait()
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> List[OperationEvent]:
        """Remove and return every queued event."""
        events = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except queue.Empty:
                return events

    def qsize(self) -> int:
        return self._queue.qsize()
