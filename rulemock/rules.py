"""Rules and the mount table holding the ones currently active on a server."""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Iterable, Optional

import structlog

from .errors import MatchEvaluationError
from .matchers import AllOf, Matcher
from .models import Expectation, ResponseTemplate
from .request import Request

if TYPE_CHECKING:  # pragma: no cover
    from .guard import ScopeGuard
    from .verification import VerificationResult

LOGGER = structlog.get_logger("rulemock.rules")


class Scope(str, Enum):
    GLOBAL = "global"
    SCOPED = "scoped"


class Rule:
    """Matchers bound to a response template and a call-count expectation.

    ``calls`` only ever grows; it is incremented by the mount table, under its
    lock, each time this rule is selected as the responder.
    """

    def __init__(
        self,
        matchers: Iterable[Matcher],
        response: ResponseTemplate,
        expectation: Optional[Expectation] = None,
        scope: Scope = Scope.GLOBAL,
        name: Optional[str] = None,
        max_uses: Optional[int] = None,
        rule_id: Optional[str] = None,
    ) -> None:
        self.id = rule_id or uuid.uuid4().hex
        self.matcher = AllOf(matchers)
        self.response = response
        self.expectation = expectation or Expectation()
        self.scope = Scope(scope)
        self.name = name
        if max_uses is not None and max_uses < 1:
            raise ValueError("max_uses must be a positive integer")
        self.max_uses = max_uses
        self._calls = 0

    @property
    def calls(self) -> int:
        return self._calls

    @property
    def exhausted(self) -> bool:
        return self.max_uses is not None and self._calls >= self.max_uses

    def describe(self) -> str:
        description = self.matcher.describe()
        return f"'{self.name}' ({description})" if self.name else description

    def evaluate(self, request: Request) -> bool:
        """Run the matchers, downgrading any failure to a non-match."""

        try:
            return bool(self.matcher.matches(request))
        except Exception as exc:
            error = MatchEvaluationError(self.matcher.describe(), exc)
            LOGGER.debug("match_evaluation_failed", rule_id=self.id, error=str(error))
            return False

    def _record_call(self) -> None:
        self._calls += 1

    def __repr__(self) -> str:
        return f"<Rule {self.id[:8]} {self.describe()} calls={self._calls} scope={self.scope.value}>"


@dataclass(frozen=True)
class RuleHandle:
    """Identity of a mounted rule as handed back to the caller.

    Scoped rules carry the guard that releases them.
    """

    rule_id: str
    scope: Scope
    guard: Optional["ScopeGuard"] = None

    def release(self, raise_on_failure: bool = False) -> "VerificationResult":
        if self.guard is None:
            raise ValueError("Global rules are released when the server stops")
        return self.guard.release(raise_on_failure=raise_on_failure)


class MountTable:
    """Ordered set of active rules guarded by a single lock.

    Selection walks the table from the most recently mounted rule backwards,
    so a specific rule mounted after a broad one overrides it.
    """

    def __init__(self) -> None:
        self._rules: list[Rule] = []
        self._lock = threading.Lock()

    def mount(self, rule: Rule) -> RuleHandle:
        with self._lock:
            if any(existing.id == rule.id for existing in self._rules):
                raise ValueError(f"Rule {rule.id} is already mounted")
            self._rules.append(rule)
        return RuleHandle(rule_id=rule.id, scope=rule.scope)

    def unmount(self, rule_id: str) -> Optional[Rule]:
        """Remove the rule and return it. Unknown ids are ignored."""

        with self._lock:
            for index, rule in enumerate(self._rules):
                if rule.id == rule_id:
                    return self._rules.pop(index)
        return None

    def select(self, request: Request) -> Optional[str]:
        """Return the id of the rule that would answer ``request``, without counting it."""

        with self._lock:
            rule = self._find(request)
            return rule.id if rule else None

    def select_and_record(self, request: Request) -> Optional[Rule]:
        """Select the responder for ``request`` and count the call in one atomic step."""

        with self._lock:
            rule = self._find(request)
            if rule is not None:
                rule._record_call()
            return rule

    def get(self, rule_id: str) -> Optional[Rule]:
        with self._lock:
            return next((rule for rule in self._rules if rule.id == rule_id), None)

    def rules(self) -> list[Rule]:
        with self._lock:
            return list(self._rules)

    def clear(self) -> list[Rule]:
        with self._lock:
            removed, self._rules = self._rules, []
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._rules)

    def __contains__(self, rule_id: object) -> bool:
        with self._lock:
            return any(rule.id == rule_id for rule in self._rules)

    def _find(self, request: Request) -> Optional[Rule]:
        for rule in reversed(self._rules):
            if rule.exhausted:
                continue
            if rule.evaluate(request):
                return rule
        return None
