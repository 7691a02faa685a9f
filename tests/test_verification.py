from __future__ import annotations

import pytest
from pydantic import ValidationError

from rulemock import matchers as m
from rulemock.errors import ExpectationViolation, VerificationError
from rulemock.models import Expectation, ResponseTemplate
from rulemock.request import Request
from rulemock.rules import MountTable, Rule
from rulemock.verification import verify, verify_all


def _rule(expectation: Expectation) -> Rule:
    return Rule([m.any_request()], ResponseTemplate(), expectation)


@pytest.mark.parametrize(
    ("expectation", "should_pass"),
    [
        (Expectation(), True),
        (Expectation.never(), True),
        (Expectation.at_most(3), True),
        (Expectation.exactly(1), False),
        (Expectation.at_least(2), False),
    ],
)
def test_unmatched_rule_fails_only_when_minimum_is_positive(expectation: Expectation, should_pass: bool) -> None:
    rule = _rule(expectation)

    result = verify(rule)

    assert rule.calls == 0
    assert result.observed == 0
    assert result.ok is should_pass


def test_count_outside_range_produces_violation() -> None:
    table = MountTable()
    rule = _rule(Expectation.between(1, 2))
    table.mount(rule)
    for _ in range(3):
        table.select_and_record(Request.from_target("GET", "/"))

    result = verify(rule)

    assert not result.ok
    violation = result.violation
    assert isinstance(violation, ExpectationViolation)
    assert violation.rule_id == rule.id
    assert violation.observed == 3
    assert violation.expected_range == "[1, 2]"
    with pytest.raises(ExpectationViolation):
        result.raise_for_failure()


def test_verify_all_collects_every_failure() -> None:
    rules = [_rule(Expectation.exactly(1)), _rule(Expectation()), _rule(Expectation.at_least(1))]

    report = verify_all(rules)

    assert len(report.results) == 3
    assert len(report.failures) == 2
    assert not report.ok
    assert "2 of 3 mock expectation(s) failed" in report.render()
    with pytest.raises(VerificationError) as excinfo:
        report.raise_for_failures()
    assert len(excinfo.value.violations) == 2


def test_expectation_validation() -> None:
    with pytest.raises(ValidationError):
        Expectation(min=3, max=1)
    with pytest.raises(ValidationError):
        Expectation(min=-1)

    assert Expectation.exactly(2).describe() == "[2, 2]"
    assert Expectation.at_least(1).describe() == "[1, inf]"
    assert Expectation().allows(10_000)
    assert not Expectation().constrained
