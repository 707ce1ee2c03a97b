"""
Log-event listeners — operator-facing messages from the agent core.

The core never talks to a presentation layer directly. It emits plain
messages on a LogEventBus; whoever shows them (console, a UI, a test)
subscribes with on_log_event(). Every message is also written to the
agent log.
"""

import logging
import threading

from .config import log


class LogEventBus:
    """Fan-out of human-readable log messages to registered callbacks."""

    def __init__(self, logger=log):
        self._logger = logger
        self._lock = threading.Lock()
        self._callbacks = []

    def on_log_event(self, callback):
        """Register callback(message). Returns a function that unregisters it."""
        with self._lock:
            self._callbacks.append(callback)

        def remove():
            with self._lock:
                if callback in self._callbacks:
                    self._callbacks.remove(callback)

        return remove

    def emit(self, message, level=logging.INFO):
        self._logger.log(level, message)
        with self._lock:
            callbacks = list(self._callbacks)
        for callback in callbacks:
            try:
                callback(message)
            except Exception as e:
                # Listener failures are logged, never propagated
                self._logger.error("Log listener %r failed: %s", callback, e)

    def warning(self, message):
        self.emit(message, logging.WARNING)

    def error(self, message):
        self.emit(message, logging.ERROR)
