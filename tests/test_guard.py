from __future__ import annotations

import pytest

from rulemock import matchers as m
from rulemock.errors import ExpectationViolation
from rulemock.guard import ScopeGuard
from rulemock.models import Expectation, ResponseTemplate
from rulemock.request import Request
from rulemock.rules import MountTable, Rule, Scope


def _mount_scoped(table: MountTable, expectation: Expectation) -> tuple[Rule, ScopeGuard]:
    rule = Rule([m.path("/scoped")], ResponseTemplate(body="scoped"), expectation, scope=Scope.SCOPED)
    table.mount(rule)
    return rule, ScopeGuard(table, rule)


def test_release_unmounts_and_verifies_rule() -> None:
    table = MountTable()
    rule, guard = _mount_scoped(table, Expectation.between(1, 3))
    request = Request.from_target("GET", "/scoped")
    table.select_and_record(request)
    table.select_and_record(request)

    result = guard.release()

    assert result.ok
    assert result.observed == 2
    assert guard.released
    assert rule.id not in table
    assert table.select(request) is None


def test_release_is_idempotent() -> None:
    table = MountTable()
    rule, guard = _mount_scoped(table, Expectation.exactly(1))
    table.select_and_record(Request.from_target("GET", "/scoped"))

    first = guard.release()
    second = guard.release()

    assert first == second
    assert rule.calls == 1
    assert guard.call_count == 1


def test_release_reports_violation_when_asked() -> None:
    table = MountTable()
    _, guard = _mount_scoped(table, Expectation.exactly(1))

    result = guard.release()
    assert not result.ok
    assert result.expected_min == 1
    assert result.observed == 0

    with pytest.raises(ExpectationViolation):
        guard.release(raise_on_failure=True)


def test_context_manager_raises_violation_on_exit() -> None:
    table = MountTable()
    _, guard = _mount_scoped(table, Expectation.exactly(1))

    with pytest.raises(ExpectationViolation):
        with guard:
            pass

    assert guard.released


def test_context_manager_does_not_mask_block_exception() -> None:
    table = MountTable()
    _, guard = _mount_scoped(table, Expectation.exactly(1))

    with pytest.raises(KeyError) as excinfo:
        with guard:
            raise KeyError("boom")

    assert guard.released
    assert len(table) == 0
    assert any("expected" in note for note in excinfo.value.__notes__)
