"""rulemock: programmable HTTP mock server for tests."""

from .errors import (
    AlreadyStoppedError,
    BindError,
    ConfigError,
    ExpectationViolation,
    MatchEvaluationError,
    RulemockError,
    ServerStateError,
    VerificationError,
)
from .guard import ScopeGuard
from .matchers import (
    Matcher,
    all_of,
    any_of,
    any_request,
    body_bytes,
    body_contains,
    body_json,
    body_partial_json,
    body_string,
    custom,
    header,
    header_exists,
    header_regex,
    method,
    path,
    path_regex,
    path_template,
    query_param,
    query_param_is_missing,
)
from .models import Expectation, ResponseTemplate, ServerSettings
from .request import HeaderMap, Request
from .rules import MountTable, Rule, RuleHandle, Scope
from .server import MockServer, ServerState
from .verification import VerificationReport, VerificationResult, verify

__all__ = [
    "AlreadyStoppedError",
    "BindError",
    "ConfigError",
    "Expectation",
    "ExpectationViolation",
    "HeaderMap",
    "MatchEvaluationError",
    "Matcher",
    "MockServer",
    "MountTable",
    "Request",
    "ResponseTemplate",
    "Rule",
    "RuleHandle",
    "RulemockError",
    "Scope",
    "ScopeGuard",
    "ServerSettings",
    "ServerState",
    "ServerStateError",
    "VerificationError",
    "VerificationReport",
    "VerificationResult",
    "all_of",
    "any_of",
    "any_request",
    "body_bytes",
    "body_contains",
    "body_json",
    "body_partial_json",
    "body_string",
    "custom",
    "header",
    "header_exists",
    "header_regex",
    "method",
    "path",
    "path_regex",
    "path_template",
    "query_param",
    "query_param_is_missing",
    "verify",
]

__version__ = "0.1.0"
