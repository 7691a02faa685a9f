from __future__ import annotations

from rulemock import matchers as m
from rulemock.request import Request


def _request(method: str = "GET", target: str = "/", body: bytes = b"", headers=None) -> Request:
    return Request.from_target(method, target, headers=headers or {}, body=body)


def test_method_and_path_matchers() -> None:
    request = _request("post", "/orders")

    assert request.method == "post"
    assert m.method("POST").matches(request)
    assert m.method("post").matches(request)
    assert not m.method("GET").matches(request)
    assert m.path("/orders").matches(request)
    assert not m.path("/orders/1").matches(request)


def test_path_regex_and_template() -> None:
    request = _request("GET", "/users/42/orders")

    assert m.path_regex(r"^/users/\d+/orders$").matches(request)
    assert m.path_template("/users/{id}/orders").matches(request)
    assert not m.path_template("/users/{id}").matches(request)
    assert not m.path_template("/users/{id}/orders").matches(_request("GET", "/users//orders"))


def test_header_matchers_ignore_name_case() -> None:
    request = _request(headers=[("Authorization", "Bearer abc"), ("X-Tag", "one"), ("X-Tag", "two")])

    assert m.header("authorization", "Bearer abc").matches(request)
    assert m.header("x-tag", "two").matches(request)
    assert m.header_exists("X-TAG").matches(request)
    assert not m.header_exists("X-Missing").matches(request)
    assert m.header_regex("Authorization", r"^Bearer \w+$").matches(request)


def test_query_matchers() -> None:
    request = _request(target="/search?q=mock&page=1")

    assert m.query_param("q", "mock").matches(request)
    assert not m.query_param("page", "2").matches(request)
    assert m.query_param_is_missing("sort").matches(request)
    assert not m.query_param_is_missing("q").matches(request)


def test_body_matchers() -> None:
    request = _request("POST", "/items", body=b'{"name": "widget", "tags": ["a"], "qty": 2}')

    assert m.body_contains("widget").matches(request)
    assert m.body_bytes(b'{"name": "widget", "tags": ["a"], "qty": 2}').matches(request)
    assert m.body_json({"name": "widget", "tags": ["a"], "qty": 2}).matches(request)
    assert m.body_partial_json({"name": "widget"}).matches(request)
    assert not m.body_partial_json({"name": "gadget"}).matches(request)
    assert not m.body_partial_json({"tags": ["a", "b"]}).matches(request)


def test_composition_operators() -> None:
    request = _request("GET", "/health")
    get_health = m.method("GET") & m.path("/health")

    assert get_health.matches(request)
    assert (m.path("/nope") | m.path("/health")).matches(request)
    assert not (~m.method("GET")).matches(request)
    assert get_health.describe() == "method == GET AND path == /health"


def test_custom_matcher_uses_predicate_and_description() -> None:
    matcher = m.custom(lambda request: request.path.endswith(".json"), "json documents")

    assert matcher.matches(_request(target="/data.json"))
    assert not matcher.matches(_request(target="/data.xml"))
    assert matcher.describe() == "json documents"


def test_any_request_matches_everything() -> None:
    assert m.any_request().matches(_request("DELETE", "/anything"))
    assert m.all_of().describe() == "any request"
