"""Immutable snapshot of an HTTP request received by the mock server."""

from __future__ import annotations

import json
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional
from urllib.parse import parse_qs


class HeaderMap(Mapping[str, tuple[str, ...]]):
    """Read-only header mapping with case-insensitive keys.

    Each key maps to the ordered tuple of values received for it. The original
    spelling of the first occurrence of a name is kept for iteration.
    """

    __slots__ = ("_values", "_names")

    def __init__(self, items: Iterable[tuple[str, str]] | Mapping[str, Any] = ()) -> None:
        values: dict[str, list[str]] = {}
        names: dict[str, str] = {}
        pairs = items.items() if isinstance(items, Mapping) else items
        for name, value in pairs:
            key = name.lower()
            names.setdefault(key, name)
            if isinstance(value, (list, tuple)):
                values.setdefault(key, []).extend(str(item) for item in value)
            else:
                values.setdefault(key, []).append(str(value))
        self._values = {key: tuple(items) for key, items in values.items()}
        self._names = names

    def __getitem__(self, name: str) -> tuple[str, ...]:
        return self._values[name.lower()]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._names[key] for key in self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, HeaderMap):
            return self._values == other._values
        if isinstance(other, Mapping):
            return self == HeaderMap(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(tuple(sorted(self._values.items())))

    def __repr__(self) -> str:
        return f"HeaderMap({dict(self.items())!r})"

    def first(self, name: str) -> Optional[str]:
        values = self._values.get(name.lower())
        return values[0] if values else None

    def pairs(self) -> list[tuple[str, str]]:
        """Flatten back into (name, value) pairs, preserving value order."""

        return [(self._names[key], value) for key, values in self._values.items() for value in values]


@dataclass(frozen=True)
class Request:
    """Request as observed by the server, captured once at receipt time."""

    method: str
    path: str
    headers: HeaderMap = field(default_factory=HeaderMap)
    body: bytes = b""
    query_string: str = ""
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        if not isinstance(self.headers, HeaderMap):
            object.__setattr__(self, "headers", HeaderMap(self.headers))
        object.__setattr__(self, "body", bytes(self.body))

    @classmethod
    def from_target(
        cls,
        method: str,
        target: str,
        headers: Iterable[tuple[str, str]] | Mapping[str, Any] = (),
        body: bytes = b"",
    ) -> "Request":
        """Build a request from a raw request-target such as ``/users?page=2``."""

        path, _, query_string = target.partition("?")
        return cls(method=method, path=path or "/", headers=HeaderMap(headers), body=body, query_string=query_string)

    @property
    def url(self) -> str:
        return f"{self.path}?{self.query_string}" if self.query_string else self.path

    @property
    def query(self) -> dict[str, list[str]]:
        return parse_qs(self.query_string, keep_blank_values=True)

    @property
    def text(self) -> str:
        return self.body.decode("utf-8")

    def header(self, name: str) -> Optional[str]:
        return self.headers.first(name)

    def header_values(self, name: str) -> tuple[str, ...]:
        return self.headers.get(name, ())

    def json(self) -> Any:
        """Decode the body as JSON. Raises ``ValueError`` when it is not valid JSON."""

        return json.loads(self.body.decode("utf-8"))
