"""Background periodic task runner."""

from __future__ import annotations

import logging
import threading

_LOG = logging.getLogger("dub.timers")


class RepeatingTimer:
    """Call *function* every *interval* seconds on a daemon thread until stopped."""

    def __init__(self, interval: float, function, name: str = "dub-timer"):
        self.interval = interval
        self.function = function
        self.name = name
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()

    def _run(self):
        while not self._stop_event.wait(self.interval):
            try:
                self.function()
            except Exception as exc:
                _LOG.error(f"{self.name} task failed: {exc}", exc_info=True)

    def stop(self, timeout: float = 1.0):
        self._stop_event.set()
        thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
