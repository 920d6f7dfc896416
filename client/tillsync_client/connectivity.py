# Overview: Injectable online/offline signal.

from __future__ import annotations

import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)


class ConnectivitySource:
    """
    Process-wide online flag the core can poll or subscribe to.

    Platform wiring (OS network events, a ping loop) calls set_online();
    subscribers run only on an offline -> online transition, on the
    calling thread, outside the internal lock.
    """

    def __init__(self, online: bool = True):
        self._online = online
        self._lock = threading.Lock()
        self._subscribers: list[Callable[[], None]] = []

    @property
    def is_online(self) -> bool:
        return self._online

    def set_online(self, online: bool) -> None:
        with self._lock:
            restored = online and not self._online
            self._online = online
            callbacks = list(self._subscribers) if restored else []

        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Connectivity subscriber failed")

    def subscribe(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register for connectivity-restored events; returns an unsubscribe function."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe
