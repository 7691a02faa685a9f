"""Scope guards for rules that should only live for part of a test."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Optional

from .verification import VerificationResult, verify

if TYPE_CHECKING:  # pragma: no cover
    from .rules import MountTable, Rule


class ScopeGuard:
    """Obligation to release a scoped rule.

    ``release()`` unmounts the rule and verifies it on the spot. Use the guard
    as a context manager to tie the release to a block::

        with server.mount_scoped([path("/login")], ResponseTemplate(status=200), Expectation.exactly(1)):
            client.login()
    """

    def __init__(self, table: "MountTable", rule: "Rule") -> None:
        self._table = table
        self._rule = rule
        self._lock = threading.Lock()
        self._result: Optional[VerificationResult] = None

    @property
    def rule_id(self) -> str:
        return self._rule.id

    @property
    def call_count(self) -> int:
        return self._rule.calls

    @property
    def released(self) -> bool:
        return self._result is not None

    def release(self, raise_on_failure: bool = False) -> VerificationResult:
        """Unmount and verify the rule. Later calls return the first result unchanged."""

        with self._lock:
            if self._result is None:
                self._table.unmount(self._rule.id)
                self._result = verify(self._rule)
            result = self._result
        if raise_on_failure:
            result.raise_for_failure()
        return result

    def __enter__(self) -> "ScopeGuard":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        result = self.release()
        if exc_type is None:
            result.raise_for_failure()
        elif exc is not None and not result.ok:
            exc.add_note(str(result.violation))

    def __repr__(self) -> str:
        state = "released" if self.released else "active"
        return f"<ScopeGuard {self._rule.id[:8]} {state}>"
