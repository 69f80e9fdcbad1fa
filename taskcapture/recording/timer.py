"""Once-per-second ticker driving the elapsed recording time."""

import logging
from threading import Thread, Event
from typing import Callable, Optional

logger = logging.getLogger(__name__)


def format_time(seconds: int) -> str:
    """Format seconds as HH:MM:SS."""
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    secs = seconds % 60
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


class SessionTimer:
    """Calls ``on_tick`` every ``interval`` seconds on a background thread until stopped.

    Stopping and starting again restarts the interval, it does not carry over
    the partial second.
    """

    def __init__(self, on_tick: Callable[[], None], interval: float = 1.0):
        self.on_tick = on_tick
        self.interval = interval
        self.stop_event = Event()
        self.thread: Optional[Thread] = None

    @property
    def running(self) -> bool:
        return self.thread is not None and self.thread.is_alive() and not self.stop_event.is_set()

    def start(self) -> None:
        if self.running:
            return
        self.stop_event = Event()
        self.thread = Thread(target=self._run, args=(self.stop_event,), daemon=True)
        self.thread.name = "SessionTimerThread"
        self.thread.start()

    def stop(self) -> None:
        self.stop_event.set()
        self.thread = None

    def _run(self, stop_event: Event) -> None:
        while not stop_event.wait(self.interval):
            try:
                self.on_tick()
            except Exception as e:
                logger.error(f"Timer callback failed: {e}", exc_info=True)
