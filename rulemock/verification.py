"""Comparison of observed rule calls against their expectations."""

from __future__ import annotations

from typing import Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field

from .errors import ExpectationViolation, VerificationError
from .rules import Rule


class VerificationResult(BaseModel):
    """Outcome of verifying a single rule."""

    model_config = ConfigDict(frozen=True)

    rule_id: str
    description: str
    expected_min: int
    expected_max: Optional[int] = None
    observed: int

    @property
    def ok(self) -> bool:
        return self.expected_min <= self.observed and (
            self.expected_max is None or self.observed <= self.expected_max
        )

    @property
    def violation(self) -> Optional[ExpectationViolation]:
        if self.ok:
            return None
        return ExpectationViolation(
            rule_id=self.rule_id,
            description=self.description,
            expected_min=self.expected_min,
            expected_max=self.expected_max,
            observed=self.observed,
        )

    def raise_for_failure(self) -> None:
        violation = self.violation
        if violation is not None:
            raise violation


class VerificationReport(BaseModel):
    """Aggregated results of verifying every rule left on a stopping server."""

    results: list[VerificationResult] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(result.ok for result in self.results)

    @property
    def failures(self) -> list[VerificationResult]:
        return [result for result in self.results if not result.ok]

    @property
    def violations(self) -> list[ExpectationViolation]:
        return [result.violation for result in self.failures if result.violation is not None]

    def render(self) -> str:
        failures = self.failures
        if not failures:
            return f"All {len(self.results)} mock expectation(s) satisfied"
        lines = [f"{len(failures)} of {len(self.results)} mock expectation(s) failed:"]
        for violation in self.violations:
            lines.append(
                f"  - {violation.description} [{violation.rule_id}]: "
                f"expected {violation.expected_range}, observed {violation.observed}"
            )
        return "\n".join(lines)

    def raise_for_failures(self) -> None:
        if not self.ok:
            raise VerificationError(self)


def verify(rule: Rule) -> VerificationResult:
    return VerificationResult(
        rule_id=rule.id,
        description=rule.describe(),
        expected_min=rule.expectation.min,
        expected_max=rule.expectation.max,
        observed=rule.calls,
    )


def verify_all(rules: Iterable[Rule]) -> VerificationReport:
    """Verify every rule; a failure does not stop the remaining checks."""

    return VerificationReport(results=[verify(rule) for rule in rules])
