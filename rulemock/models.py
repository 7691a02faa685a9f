"""Pydantic models describing responses, expectations and server settings."""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class ResponseTemplate(BaseModel):
    """Canned response returned when a rule is selected."""

    model_config = ConfigDict(frozen=True)

    status: int = Field(default=200, ge=100, le=599)
    headers: tuple[tuple[str, str], ...] = ()
    body: bytes = b""
    delay_ms: int = Field(default=0, ge=0)

    @field_validator("headers", mode="before")
    @classmethod
    def _normalize_headers(cls, value: Any) -> Any:
        if value is None:
            return ()
        if isinstance(value, Mapping):
            return tuple((str(key), str(item)) for key, item in value.items())
        return tuple((str(key), str(item)) for key, item in value)

    @field_validator("body", mode="before")
    @classmethod
    def _normalize_body(cls, value: Any) -> Any:
        if value is None:
            return b""
        if isinstance(value, str):
            return value.encode("utf-8")
        if isinstance(value, (dict, list)):
            return json.dumps(value).encode("utf-8")
        return value

    @classmethod
    def from_json(cls, payload: Any, status: int = 200, headers: Optional[Mapping[str, str]] = None, **kwargs: Any) -> "ResponseTemplate":
        merged = {"Content-Type": "application/json"}
        merged.update(headers or {})
        return cls(status=status, headers=merged, body=json.dumps(payload).encode("utf-8"), **kwargs)

    @classmethod
    def from_text(cls, body: str, status: int = 200, headers: Optional[Mapping[str, str]] = None, **kwargs: Any) -> "ResponseTemplate":
        merged = {"Content-Type": "text/plain; charset=utf-8"}
        merged.update(headers or {})
        return cls(status=status, headers=merged, body=body.encode("utf-8"), **kwargs)

    @classmethod
    def not_found(cls) -> "ResponseTemplate":
        return cls(status=404)

    def header(self, name: str) -> Optional[str]:
        lowered = name.lower()
        for key, value in self.headers:
            if key.lower() == lowered:
                return value
        return None


class Expectation(BaseModel):
    """Inclusive call-count range. ``max=None`` means unbounded."""

    model_config = ConfigDict(frozen=True)

    min: int = Field(default=0, ge=0)
    max: Optional[int] = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _check_range(self) -> "Expectation":
        if self.max is not None and self.max < self.min:
            raise ValueError(f"Expectation max ({self.max}) must not be lower than min ({self.min})")
        return self

    @classmethod
    def exactly(cls, times: int) -> "Expectation":
        return cls(min=times, max=times)

    @classmethod
    def at_least(cls, times: int) -> "Expectation":
        return cls(min=times)

    @classmethod
    def at_most(cls, times: int) -> "Expectation":
        return cls(min=0, max=times)

    @classmethod
    def between(cls, lower: int, upper: int) -> "Expectation":
        return cls(min=lower, max=upper)

    @classmethod
    def never(cls) -> "Expectation":
        return cls(min=0, max=0)

    @property
    def constrained(self) -> bool:
        return self.min > 0 or self.max is not None

    def allows(self, count: int) -> bool:
        return self.min <= count and (self.max is None or count <= self.max)

    def describe(self) -> str:
        upper = "inf" if self.max is None else str(self.max)
        return f"[{self.min}, {upper}]"


class ServerSettings(BaseModel):
    """Construction-time options for a mock server."""

    host: str = "127.0.0.1"
    port: int = Field(default=0, ge=0, le=65535)
    record_requests: bool = True
    drain_timeout: float = Field(default=5.0, ge=0)
