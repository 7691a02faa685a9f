"""Request matchers.

A matcher is a side-effect-free predicate over a :class:`~rulemock.request.Request`.
Matchers compose with ``&`` (all must match), ``|`` (any may match) and ``~``
(negation). Exceptions raised while matching are handled by the mount table,
which treats them as a non-match.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import Any, Callable, Iterable, Optional

from .request import Request


class Matcher(ABC):
    """Predicate deciding whether a rule applies to a request."""

    @abstractmethod
    def matches(self, request: Request) -> bool:
        """Return True when the request satisfies this matcher."""

    @abstractmethod
    def describe(self) -> str:
        """Short human readable description used in verification reports."""

    def __and__(self, other: "Matcher") -> "Matcher":
        return AllOf([self, other])

    def __or__(self, other: "Matcher") -> "Matcher":
        return AnyOf([self, other])

    def __invert__(self) -> "Matcher":
        return Not(self)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.describe()}>"


class AllOf(Matcher):
    def __init__(self, matchers: Iterable[Matcher]) -> None:
        flattened: list[Matcher] = []
        for matcher in matchers:
            if isinstance(matcher, AllOf):
                flattened.extend(matcher.matchers)
            else:
                flattened.append(matcher)
        self.matchers = tuple(flattened)

    def matches(self, request: Request) -> bool:
        return all(matcher.matches(request) for matcher in self.matchers)

    def describe(self) -> str:
        if not self.matchers:
            return "any request"
        return " AND ".join(matcher.describe() for matcher in self.matchers)


class AnyOf(Matcher):
    def __init__(self, matchers: Iterable[Matcher]) -> None:
        self.matchers = tuple(matchers)

    def matches(self, request: Request) -> bool:
        return any(matcher.matches(request) for matcher in self.matchers)

    def describe(self) -> str:
        return "(" + " OR ".join(matcher.describe() for matcher in self.matchers) + ")"


class Not(Matcher):
    def __init__(self, matcher: Matcher) -> None:
        self.matcher = matcher

    def matches(self, request: Request) -> bool:
        return not self.matcher.matches(request)

    def describe(self) -> str:
        return f"NOT {self.matcher.describe()}"


class AnyRequest(Matcher):
    def matches(self, request: Request) -> bool:
        return True

    def describe(self) -> str:
        return "any request"


class MethodMatcher(Matcher):
    def __init__(self, method: str) -> None:
        self.method = method.upper()

    def matches(self, request: Request) -> bool:
        return request.method.upper() == self.method

    def describe(self) -> str:
        return f"method == {self.method}"


class PathMatcher(Matcher):
    def __init__(self, path: str) -> None:
        self.path = path

    def matches(self, request: Request) -> bool:
        return request.path == self.path

    def describe(self) -> str:
        return f"path == {self.path}"


class PathRegexMatcher(Matcher):
    def __init__(self, pattern: str) -> None:
        self.pattern = re.compile(pattern)

    def matches(self, request: Request) -> bool:
        return self.pattern.search(request.path) is not None

    def describe(self) -> str:
        return f"path ~ {self.pattern.pattern}"


class PathTemplateMatcher(Matcher):
    """Match ``/users/{id}`` style templates, one placeholder per path segment."""

    def __init__(self, template: str) -> None:
        self.template = template
        self._parts = template.strip("/").split("/")

    def matches(self, request: Request) -> bool:
        if request.path == self.template:
            return True
        request_parts = request.path.strip("/").split("/")
        if len(self._parts) != len(request_parts):
            return False
        for template_part, request_part in zip(self._parts, request_parts):
            if template_part.startswith("{") and template_part.endswith("}"):
                if not request_part:
                    return False
                continue
            if template_part != request_part:
                return False
        return True

    def describe(self) -> str:
        return f"path ~= {self.template}"


class HeaderMatcher(Matcher):
    """At least one value received for ``name`` equals ``value``."""

    def __init__(self, name: str, value: str) -> None:
        self.name = name
        self.value = value

    def matches(self, request: Request) -> bool:
        return self.value in request.header_values(self.name)

    def describe(self) -> str:
        return f"header {self.name} == {self.value}"


class HeaderExistsMatcher(Matcher):
    def __init__(self, name: str) -> None:
        self.name = name

    def matches(self, request: Request) -> bool:
        return self.name in request.headers

    def describe(self) -> str:
        return f"header {self.name} present"


class HeaderRegexMatcher(Matcher):
    def __init__(self, name: str, pattern: str) -> None:
        self.name = name
        self.pattern = re.compile(pattern)

    def matches(self, request: Request) -> bool:
        return any(self.pattern.search(value) for value in request.header_values(self.name))

    def describe(self) -> str:
        return f"header {self.name} ~ {self.pattern.pattern}"


class QueryParamMatcher(Matcher):
    def __init__(self, name: str, value: str) -> None:
        self.name = name
        self.value = value

    def matches(self, request: Request) -> bool:
        return self.value in request.query.get(self.name, [])

    def describe(self) -> str:
        return f"query {self.name} == {self.value}"


class QueryParamMissingMatcher(Matcher):
    def __init__(self, name: str) -> None:
        self.name = name

    def matches(self, request: Request) -> bool:
        return self.name not in request.query

    def describe(self) -> str:
        return f"query {self.name} absent"


class BodyMatcher(Matcher):
    def __init__(self, body: bytes) -> None:
        self.body = body

    def matches(self, request: Request) -> bool:
        return request.body == self.body

    def describe(self) -> str:
        return f"body == {self.body[:40]!r}"


class BodyContainsMatcher(Matcher):
    def __init__(self, needle: bytes) -> None:
        self.needle = needle

    def matches(self, request: Request) -> bool:
        return self.needle in request.body

    def describe(self) -> str:
        return f"body contains {self.needle[:40]!r}"


class BodyJsonMatcher(Matcher):
    """Body decodes to JSON equal to ``expected``. Invalid JSON raises and is treated as no match."""

    def __init__(self, expected: Any) -> None:
        self.expected = expected

    def matches(self, request: Request) -> bool:
        return request.json() == self.expected

    def describe(self) -> str:
        return f"json body == {self.expected!r}"


class BodyPartialJsonMatcher(Matcher):
    """Body decodes to JSON containing ``expected`` as a subset."""

    def __init__(self, expected: Any) -> None:
        self.expected = expected

    def matches(self, request: Request) -> bool:
        return _json_contains(request.json(), self.expected)

    def describe(self) -> str:
        return f"json body contains {self.expected!r}"


class FunctionMatcher(Matcher):
    def __init__(self, predicate: Callable[[Request], bool], description: Optional[str] = None) -> None:
        self.predicate = predicate
        self.description = description or getattr(predicate, "__name__", "custom predicate")

    def matches(self, request: Request) -> bool:
        return bool(self.predicate(request))

    def describe(self) -> str:
        return self.description


def _json_contains(actual: Any, expected: Any) -> bool:
    if isinstance(expected, dict):
        if not isinstance(actual, dict):
            return False
        return all(key in actual and _json_contains(actual[key], value) for key, value in expected.items())
    if isinstance(expected, list):
        if not isinstance(actual, list) or len(actual) != len(expected):
            return False
        return all(_json_contains(item, wanted) for item, wanted in zip(actual, expected))
    return actual == expected


def _to_bytes(value: bytes | str) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else bytes(value)


def any_request() -> Matcher:
    return AnyRequest()


def method(name: str) -> Matcher:
    return MethodMatcher(name)


def path(value: str) -> Matcher:
    return PathMatcher(value)


def path_regex(pattern: str) -> Matcher:
    return PathRegexMatcher(pattern)


def path_template(template: str) -> Matcher:
    return PathTemplateMatcher(template)


def header(name: str, value: str) -> Matcher:
    return HeaderMatcher(name, value)


def header_exists(name: str) -> Matcher:
    return HeaderExistsMatcher(name)


def header_regex(name: str, pattern: str) -> Matcher:
    return HeaderRegexMatcher(name, pattern)


def query_param(name: str, value: str) -> Matcher:
    return QueryParamMatcher(name, value)


def query_param_is_missing(name: str) -> Matcher:
    return QueryParamMissingMatcher(name)


def body_bytes(value: bytes) -> Matcher:
    return BodyMatcher(_to_bytes(value))


def body_string(value: str) -> Matcher:
    return BodyMatcher(_to_bytes(value))


def body_contains(value: bytes | str) -> Matcher:
    return BodyContainsMatcher(_to_bytes(value))


def body_json(expected: Any) -> Matcher:
    return BodyJsonMatcher(expected)


def body_partial_json(expected: Any) -> Matcher:
    return BodyPartialJsonMatcher(expected)


def custom(predicate: Callable[[Request], bool], description: Optional[str] = None) -> Matcher:
    """Wrap a plain predicate as a matcher.

    Matchers run while the mount table lock is held, so a slow predicate
    delays every concurrent request until it returns. Keep it cheap and free
    of I/O.
    """

    return FunctionMatcher(predicate, description)


def all_of(*matchers: Matcher) -> Matcher:
    return AllOf(matchers)


def any_of(*matchers: Matcher) -> Matcher:
    return AnyOf(matchers)
