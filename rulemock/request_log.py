"""Append-only log of requests received by a server."""

from __future__ import annotations

import threading

from .request import Request


class RequestLog:
    """Thread-safe, append-only request history.

    The lock is held only for the append or the copy, never while a request is
    being read from or answered on the socket.
    """

    def __init__(self) -> None:
        self._entries: list[Request] = []
        self._lock = threading.Lock()

    def append(self, request: Request) -> None:
        with self._lock:
            self._entries.append(request)

    def snapshot(self) -> list[Request]:
        with self._lock:
            return list(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries = []

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
