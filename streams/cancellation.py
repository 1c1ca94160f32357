"""Cooperative cancellation shared by the worker loop and blocking consumers."""

from __future__ import annotations

import threading
from typing import Callable, Dict


class CancellationToken:
    """Thread-safe, one-shot cancellation signal.

    Blocking calls register a wake-up callback so that ``cancel()`` interrupts
    them mid-wait instead of after the next message arrives.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: Dict[int, Callable[[], None]] = {}
        self._next_handle = 0

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks = list(self._callbacks.values())
            self._callbacks.clear()
        for callback in callbacks:
            callback()

    def register(self, callback: Callable[[], None]) -> int:
        """Run ``callback`` on cancellation, immediately if already cancelled."""
        with self._lock:
            if not self._event.is_set():
                handle = self._next_handle
                self._next_handle += 1
                self._callbacks[handle] = callback
                return handle
        callback()
        return -1

    def unregister(self, handle: int) -> None:
        with self._lock:
            self._callbacks.pop(handle, None)
