"""Declarative mock configuration loaded from YAML or JSON files."""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from . import matchers as m
from .errors import ConfigError
from .guard import ScopeGuard
from .matchers import Matcher
from .models import Expectation, ResponseTemplate, ServerSettings
from .rules import RuleHandle, Scope

if TYPE_CHECKING:  # pragma: no cover
    from .server import MockServer


class MatchConfig(BaseModel):
    """Criteria combined with AND. An empty block matches every request."""

    method: Optional[str] = None
    path: Optional[str] = None
    path_regex: Optional[str] = None
    path_template: Optional[str] = None
    headers: dict[str, str] = Field(default_factory=dict)
    query: dict[str, str] = Field(default_factory=dict)
    body: Optional[str] = None
    body_contains: Optional[str] = None
    json_body: Optional[Any] = Field(default=None, alias="json")
    partial_json: Optional[Any] = None

    model_config = ConfigDict(populate_by_name=True)

    def build(self) -> list[Matcher]:
        built: list[Matcher] = []
        if self.method:
            built.append(m.method(self.method))
        if self.path is not None:
            built.append(m.path(self.path))
        if self.path_regex is not None:
            built.append(m.path_regex(self.path_regex))
        if self.path_template is not None:
            built.append(m.path_template(self.path_template))
        built.extend(m.header(name, value) for name, value in self.headers.items())
        built.extend(m.query_param(name, value) for name, value in self.query.items())
        if self.body is not None:
            built.append(m.body_string(self.body))
        if self.body_contains is not None:
            built.append(m.body_contains(self.body_contains))
        if self.json_body is not None:
            built.append(m.body_json(self.json_body))
        if self.partial_json is not None:
            built.append(m.body_partial_json(self.partial_json))
        return built or [m.any_request()]


class ResponseConfig(BaseModel):
    status: int = 200
    headers: dict[str, str] = Field(default_factory=dict)
    body: Any = None
    delay_ms: int = 0

    def build(self) -> ResponseTemplate:
        headers = dict(self.headers)
        if isinstance(self.body, (dict, list)) and not any(key.lower() == "content-type" for key in headers):
            headers["Content-Type"] = "application/json"
        return ResponseTemplate(status=self.status, headers=headers, body=self.body, delay_ms=self.delay_ms)


class ExpectConfig(BaseModel):
    """Either ``times`` for an exact count or a ``min``/``max`` range."""

    times: Optional[int] = None
    min: int = 0
    max: Optional[int] = None

    @model_validator(mode="after")
    def _exclusive_times(self) -> "ExpectConfig":
        if self.times is not None and (self.min or self.max is not None):
            raise ValueError("Use either 'times' or 'min'/'max', not both")
        if self.max is not None and self.max < self.min:
            raise ValueError(f"expect.max ({self.max}) must not be lower than expect.min ({self.min})")
        return self

    def build(self) -> Expectation:
        if self.times is not None:
            return Expectation.exactly(self.times)
        return Expectation(min=self.min, max=self.max)


class RuleConfig(BaseModel):
    name: Optional[str] = None
    scope: Scope = Scope.GLOBAL
    match: MatchConfig = Field(default_factory=MatchConfig)
    response: ResponseConfig = Field(default_factory=ResponseConfig)
    expect: ExpectConfig = Field(default_factory=ExpectConfig)
    max_uses: Optional[int] = Field(default=None, ge=1)


class MockServerConfig(BaseModel):
    """Top-level configuration consumed by ``rulemock serve``."""

    server: ServerSettings = Field(default_factory=ServerSettings)
    rules: list[RuleConfig] = Field(default_factory=list)


def load_config(path: Path) -> MockServerConfig:
    """Load and validate a mock configuration file (YAML, or JSON by suffix)."""

    if not path.exists():
        raise ConfigError(f"Mock config {path} not found")
    text = path.read_text(encoding="utf-8")
    try:
        data = json.loads(text) if path.suffix.lower() == ".json" else yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigError(f"Mock config {path} could not be parsed: {exc}") from exc
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Mock config {path} must contain a mapping")
    try:
        return MockServerConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Mock config {path} is invalid:\n{exc}") from exc


def mount_config(server: "MockServer", config: MockServerConfig) -> list[RuleHandle]:
    """Mount every configured rule on ``server`` in file order."""

    handles: list[RuleHandle] = []
    for rule in config.rules:
        handles.append(
            server.mount(
                rule.match.build(),
                rule.response.build(),
                rule.expect.build(),
                rule.scope,
                name=rule.name,
                max_uses=rule.max_uses,
            )
        )
    return handles


def scoped_guards(handles: list[RuleHandle]) -> list[ScopeGuard]:
    return [handle.guard for handle in handles if handle.guard is not None]
