"""
Per-instance periodic task runner.
Each Heartbeat owns one daemon thread; stopping it is prompt because the wait is an Event.
"""

import threading
import time
from typing import Callable, Dict, Optional

from ..util.logging import logger


class Heartbeat:
    """
    Runs func every interval_sec seconds on a background thread.

    The first run happens one interval after start(). Errors raised by func
    are logged and never stop the loop.
    """

    def __init__(self, name: str, interval_sec: float, func: Callable[[], object]):
        if not callable(func):
            raise ValueError(f"Task function must be callable: {func}")

        if interval_sec <= 0:
            raise ValueError(f"Interval must be > 0 seconds: {interval_sec}")

        self.name = name
        self.interval_sec = interval_sec
        self.func = func
        self.last_run: Optional[float] = None
        self.run_count = 0
        self.failure_count = 0
        self._shutdown_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            raise RuntimeError(f"Heartbeat '{self.name}' already running")

        self._shutdown_event.clear()
        self._thread = threading.Thread(target=self._loop, name=f"heartbeat-{self.name}", daemon=True)
        self._thread.start()
        logger.info(f"Started heartbeat task '{self.name}' (every {self.interval_sec}s)")

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Stop the loop and wait for an in-flight run to finish."""
        if self._thread is None:
            return

        self._shutdown_event.set()
        if self._thread is not threading.current_thread():
            self._thread.join(timeout)
        self._thread = None
        logger.info(f"Stopped heartbeat task '{self.name}'")

    def _loop(self) -> None:
        while not self._shutdown_event.wait(self.interval_sec):
            self.run_once()

    def run_once(self) -> bool:
        """Execute the task once and record timing. Returns True on success."""
        start_time = time.monotonic()
        try:
            self.func()
        except Exception as e:
            end_time = time.monotonic()
            self.failure_count += 1
            logger.log_heartbeat_task(self.name, start_time, end_time, status="failed", details={"error": str(e)})
            return False

        end_time = time.monotonic()
        self.last_run = end_time
        self.run_count += 1
        logger.log_heartbeat_task(self.name, start_time, end_time)
        return True

    def get_status(self) -> Dict[str, object]:
        """Return current heartbeat status for monitoring."""
        return {
            "name": self.name,
            "status": "running" if self.running else "stopped",
            "interval_sec": self.interval_sec,
            "last_run": self.last_run,
            "next_run": self.last_run + self.interval_sec if self.last_run else None,
            "run_count": self.run_count,
            "failure_count": self.failure_count,
        }
