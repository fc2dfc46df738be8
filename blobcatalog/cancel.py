"""Thread-safe cancellation signal used by the URL reader."""

from __future__ import annotations

import logging
import threading
from typing import Callable, List

from .errors import CanceledError

LOGGER = logging.getLogger(__name__)


class CancelSignal:
    """One-shot flag that notifies registered callbacks when fired.

    Callbacks added after the signal fired are invoked immediately, so a
    download opened late in a tree walk is still aborted.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._event = threading.Event()
        self._callbacks: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks = list(self._callbacks)
            self._callbacks.clear()
        for callback in callbacks:
            self._invoke(callback)

    def add_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register ``callback`` and return a function that unregisters it."""

        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return lambda: self._remove(callback)
        self._invoke(callback)
        return lambda: None

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise CanceledError()

    def wait(self, timeout: float | None = None) -> bool:
        return self._event.wait(timeout)

    def _remove(self, callback: Callable[[], None]) -> None:
        with self._lock:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                pass

    @staticmethod
    def _invoke(callback: Callable[[], None]) -> None:
        try:
            callback()
        except Exception:  # noqa: BLE001 - one failing abort must not skip the rest
            LOGGER.exception("Cancel callback failed")


__all__ = ["CancelSignal"]
