"""Exception hierarchy for the mock server runtime."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:  # pragma: no cover
    from .verification import VerificationReport


class RulemockError(RuntimeError):
    """Base class for every error raised by rulemock."""


class MatchEvaluationError(RulemockError):
    """A matcher failed while inspecting a request.

    Never escapes rule selection: the mount table downgrades it to a non-match.
    """

    def __init__(self, description: str, cause: BaseException) -> None:
        super().__init__(f"Matcher {description} raised {type(cause).__name__}: {cause}")
        self.description = description
        self.cause = cause


class ExpectationViolation(RulemockError):
    """Observed call count for a rule fell outside its expected range."""

    def __init__(
        self,
        rule_id: str,
        description: str,
        expected_min: int,
        expected_max: Optional[int],
        observed: int,
    ) -> None:
        self.rule_id = rule_id
        self.description = description
        self.expected_min = expected_min
        self.expected_max = expected_max
        self.observed = observed
        super().__init__(
            f"Rule {description} ({rule_id}) expected {self.expected_range} calls, received {observed}"
        )

    @property
    def expected_range(self) -> str:
        upper = "inf" if self.expected_max is None else str(self.expected_max)
        return f"[{self.expected_min}, {upper}]"


class VerificationError(RulemockError):
    """One or more rules failed verification when the server stopped."""

    def __init__(self, report: "VerificationReport") -> None:
        self.report = report
        super().__init__(report.render())

    @property
    def violations(self) -> list[ExpectationViolation]:
        return self.report.violations


class BindError(RulemockError):
    """The server could not bind the requested address."""

    def __init__(self, host: str, port: int, cause: OSError) -> None:
        super().__init__(f"Unable to bind {host}:{port}: {cause}")
        self.host = host
        self.port = port
        self.cause = cause


class ServerStateError(RulemockError):
    """Operation is not valid in the server's current lifecycle state."""


class AlreadyStoppedError(ServerStateError):
    """stop() was called on a server that has already stopped."""


class ConfigError(RulemockError):
    """A mock configuration file could not be loaded or validated."""
