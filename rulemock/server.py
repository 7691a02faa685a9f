"""Programmable HTTP mock server.

Rules are mounted on a running server, requests are answered by the most
recently mounted matching rule, and call counts are verified when a scoped
rule is released or when the server stops.
"""

from __future__ import annotations

import socket
import socketserver
import threading
import time
from dataclasses import replace
from enum import Enum
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Iterable, Optional, Union

import structlog

from .errors import AlreadyStoppedError, BindError, ServerStateError
from .guard import ScopeGuard
from .matchers import Matcher
from .models import Expectation, ResponseTemplate, ServerSettings
from .request import HeaderMap, Request
from .request_log import RequestLog
from .rules import MountTable, Rule, RuleHandle, Scope
from .verification import VerificationReport, verify_all

LOGGER = structlog.get_logger("rulemock")

FALLBACK_RESPONSE = ResponseTemplate(status=404)
CLOSED_RESPONSE = ResponseTemplate(status=503)

# Headers computed by the transport; values from templates are ignored.
_TRANSPORT_HEADERS = {"content-length", "transfer-encoding", "connection"}


class ServerState(str, Enum):
    CREATED = "created"
    RUNNING = "running"
    STOPPED = "stopped"


class ThreadedHTTPServer(socketserver.ThreadingMixIn, HTTPServer):
    """One thread per connection, with the connections still being served tracked."""

    daemon_threads = True
    block_on_close = False

    def __init__(self, server_address: tuple[str, int], handler: type[BaseHTTPRequestHandler]) -> None:
        self._open: set[socket.socket] = set()
        self._idle = threading.Condition()
        super().__init__(server_address, handler)

    @property
    def in_flight(self) -> int:
        with self._idle:
            return len(self._open)

    def process_request(self, request: Any, client_address: Any) -> None:
        with self._idle:
            self._open.add(request)
        try:
            super().process_request(request, client_address)
        except Exception:
            self._finished(request)
            raise

    def process_request_thread(self, request: Any, client_address: Any) -> None:
        try:
            super().process_request_thread(request, client_address)
        finally:
            self._finished(request)

    def wait_until_idle(self, timeout: float) -> bool:
        with self._idle:
            return self._idle.wait_for(lambda: not self._open, timeout=timeout)

    def force_close(self) -> int:
        """Shut down every connection still open so blocked handlers fail fast.

        Returns the number of connections that were cut.
        """

        with self._idle:
            connections = list(self._open)
        for connection in connections:
            try:
                connection.shutdown(socket.SHUT_RDWR)
            except OSError:
                # already closed by the peer
                pass
        return len(connections)

    def _finished(self, request: Any) -> None:
        with self._idle:
            self._open.discard(request)
            self._idle.notify_all()


MatcherArg = Union[Matcher, Iterable[Matcher]]


class MockServer:
    """HTTP server answering requests from a table of mounted rules.

    Example::

        with MockServer() as server:
            server.mount(path("/health"), ResponseTemplate.from_text("ok"), Expectation.exactly(1))
            client = ApiClient(server.uri)
            client.check_health()
        # leaving the block stops the server and raises VerificationError on violations
    """

    def __init__(self, settings: Optional[ServerSettings] = None, **overrides: Any) -> None:
        base = settings or ServerSettings()
        self._settings = ServerSettings(**{**base.model_dump(), **overrides}) if overrides else base
        self._table = MountTable()
        self._log = RequestLog()
        self._state = ServerState.CREATED
        self._state_lock = threading.Lock()
        self._dispatch_lock = threading.Lock()
        self._accepting = True
        self._httpd: Optional[ThreadedHTTPServer] = None
        self._thread: Optional[threading.Thread] = None
        self._address: Optional[tuple[str, int]] = None
        self._logger = LOGGER.bind(record_requests=self._settings.record_requests)

    @property
    def settings(self) -> ServerSettings:
        return self._settings

    @property
    def state(self) -> ServerState:
        return self._state

    # lifecycle

    def start(self, host: Optional[str] = None, port: Optional[int] = None) -> "MockServer":
        """Bind the listening socket and serve requests on a background thread."""

        with self._state_lock:
            if self._state is not ServerState.CREATED:
                raise ServerStateError(f"Cannot start a server in state {self._state.value}")
            bind_host = host if host is not None else self._settings.host
            bind_port = port if port is not None else self._settings.port
            self._logger.info("server_starting", host=bind_host, port=bind_port)
            try:
                httpd = ThreadedHTTPServer((bind_host, bind_port), self._build_handler_factory())
            except OSError as exc:
                raise BindError(bind_host, bind_port, exc) from exc
            self._httpd = httpd
            self._address = (str(httpd.server_address[0]), int(httpd.server_address[1]))
            self._thread = threading.Thread(
                target=httpd.serve_forever,
                name=f"rulemock-{self._address[1]}",
                daemon=True,
            )
            self._thread.start()
            self._state = ServerState.RUNNING
        self._logger = self._logger.bind(host=self._address[0], port=self._address[1])
        self._logger.info("server_started")
        return self

    def stop(self, raise_on_failure: bool = False) -> VerificationReport:
        """Stop serving, drain in-flight requests, then verify every mounted rule.

        Connections still open when ``drain_timeout`` runs out are shut down,
        and any request that reaches dispatch after that is neither recorded
        nor counted. All rules still in the mount table are verified, whatever
        their scope, and the table is emptied afterwards.
        """

        with self._state_lock:
            if self._state is ServerState.STOPPED:
                raise AlreadyStoppedError("Server has already been stopped")
            self._state = ServerState.STOPPED
            httpd, thread = self._httpd, self._thread

        drained = True
        if httpd is not None:
            self._logger.info("server_stopping", in_flight=httpd.in_flight)
            httpd.shutdown()
            drained = httpd.wait_until_idle(self._settings.drain_timeout)

        with self._dispatch_lock:
            self._accepting = False

        if httpd is not None:
            if not drained:
                self._logger.warning(
                    "server_drain_timeout",
                    closed_connections=httpd.force_close(),
                    timeout=self._settings.drain_timeout,
                )
            httpd.server_close()
            if thread is not None:
                thread.join(timeout=2)

        report = verify_all(self._table.rules())
        self._table.clear()
        self._logger.info("server_stopped", verified_rules=len(report.results))
        if raise_on_failure:
            report.raise_for_failures()
        return report

    def address(self) -> tuple[str, int]:
        if self._address is None:
            raise ServerStateError("Server address is only available after start()")
        return self._address

    @property
    def uri(self) -> str:
        host, port = self.address()
        return f"http://{host}:{port}"

    def url(self, path: str = "/") -> str:
        return f"{self.uri}/{path.lstrip('/')}"

    def __enter__(self) -> "MockServer":
        if self._state is ServerState.CREATED:
            self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._state is ServerState.STOPPED:
            return
        report = self.stop(raise_on_failure=exc_type is None)
        # the block's own exception wins, with the violations attached to it
        if exc is not None and not report.ok:
            exc.add_note(report.render())

    # rules

    def mount(
        self,
        matchers: MatcherArg,
        response: ResponseTemplate,
        expectation: Optional[Expectation] = None,
        scope: Scope = Scope.GLOBAL,
        *,
        name: Optional[str] = None,
        max_uses: Optional[int] = None,
    ) -> RuleHandle:
        """Register a rule after every rule already mounted.

        For scoped rules the returned handle carries a :class:`ScopeGuard`.
        """

        rule = Rule(_as_matchers(matchers), response, expectation, scope=scope, name=name, max_uses=max_uses)
        handle = self._mount_rule(rule)
        if rule.scope is Scope.SCOPED:
            handle = replace(handle, guard=ScopeGuard(self._table, rule))
        return handle

    def mount_scoped(
        self,
        matchers: MatcherArg,
        response: ResponseTemplate,
        expectation: Optional[Expectation] = None,
        *,
        name: Optional[str] = None,
        max_uses: Optional[int] = None,
    ) -> ScopeGuard:
        rule = Rule(_as_matchers(matchers), response, expectation, scope=Scope.SCOPED, name=name, max_uses=max_uses)
        self._mount_rule(rule)
        return ScopeGuard(self._table, rule)

    def unmount(self, rule_id: str) -> None:
        """Remove a rule without verifying it. Unknown ids are ignored."""

        if self._table.unmount(rule_id) is not None:
            self._logger.debug("rule_unmounted", rule_id=rule_id)

    def rules(self) -> list[Rule]:
        return self._table.rules()

    def select(self, request: Request) -> Optional[str]:
        return self._table.select(request)

    # requests

    def handle(self, request: Request) -> ResponseTemplate:
        """Record ``request``, pick the responder and return its response.

        Once the server has stopped the request is ignored and a 503 is returned.
        """

        dispatched = self._dispatch(request)
        if dispatched is None:
            return CLOSED_RESPONSE
        return dispatched[1]

    def requests(self) -> list[Request]:
        """Copy of the request log at the time of the call."""

        return self._log.snapshot()

    @property
    def received_requests(self) -> list[Request]:
        return self.requests()

    def reset(self) -> None:
        """Drop every mounted rule and recorded request without verifying anything."""

        self._table.clear()
        self._log.clear()
        self._logger.debug("server_reset")

    def _mount_rule(self, rule: Rule) -> RuleHandle:
        with self._state_lock:
            if self._state is ServerState.STOPPED:
                raise ServerStateError("Cannot mount rules on a stopped server")
            handle = self._table.mount(rule)
        self._logger.debug("rule_mounted", rule_id=rule.id, scope=rule.scope.value, rule=rule.describe())
        return handle

    def _dispatch(self, request: Request) -> Optional[tuple[Optional[Rule], ResponseTemplate]]:
        with self._dispatch_lock:
            if not self._accepting:
                return None
            if self._settings.record_requests:
                self._log.append(request)
            rule = self._table.select_and_record(request)
        if rule is None:
            return None, FALLBACK_RESPONSE
        return rule, rule.response

    def _build_handler_factory(self) -> type[BaseHTTPRequestHandler]:
        mock_server = self
        handler_logger = LOGGER.bind(component="handler")

        class Handler(BaseHTTPRequestHandler):
            timeout = 30

            def log_message(self, format: str, *args: Any) -> None:  # pragma: no cover - avoid stderr
                handler_logger.debug(
                    "http_trace",
                    client_ip=self.client_address[0],
                    message=format % args,
                )

            def __getattr__(self, name: str) -> Any:
                # any method token (PROPFIND, PURGE, ...) reaches the rules
                if name.startswith("do_"):
                    return self._handle
                raise AttributeError(name)

            def do_HEAD(self) -> None:  # noqa: N802 (BaseHTTPRequestHandler requirement)
                self._handle(head_only=True)

            def _handle(self, *, head_only: bool = False) -> None:
                try:
                    length = int(self.headers.get("Content-Length", 0) or 0)
                except ValueError:
                    self.send_error(400, "Invalid Content-Length")
                    return
                body = self.rfile.read(length) if length > 0 else b""
                if len(body) < length:
                    # connection cut before the declared body arrived
                    self.close_connection = True
                    return
                request = Request.from_target(
                    self.command,
                    self.path,
                    headers=HeaderMap(self.headers.items()),
                    body=body,
                )
                request_logger = handler_logger.bind(
                    host=self.server.server_address[0],
                    port=self.server.server_address[1],
                )
                request_logger.debug(
                    "request_received",
                    method=request.method,
                    path=request.path,
                    content_length=len(request.body),
                )
                try:
                    dispatched = mock_server._dispatch(request)
                except Exception:
                    request_logger.exception("request_failed", method=request.method, path=request.path)
                    self._respond(ResponseTemplate(status=500), head_only=head_only)
                    return
                if dispatched is None:
                    request_logger.info("request_after_stop", method=request.method, path=request.path)
                    self.close_connection = True
                    return
                rule, response = dispatched
                if rule is None:
                    request_logger.info("request_unmatched", method=request.method, path=request.path)
                else:
                    request_logger.debug(
                        "request_matched",
                        method=request.method,
                        path=request.path,
                        rule_id=rule.id,
                        status=response.status,
                    )
                if response.delay_ms:
                    time.sleep(response.delay_ms / 1000)
                self._respond(response, head_only=head_only)

            def _respond(self, response: ResponseTemplate, *, head_only: bool = False) -> None:
                self.send_response(response.status)
                for key, value in response.headers:
                    if key.lower() not in _TRANSPORT_HEADERS:
                        self.send_header(key, value)
                self.send_header("Content-Length", str(len(response.body)))
                self.end_headers()
                if not head_only and response.body:
                    self.wfile.write(response.body)

        return Handler


def _as_matchers(matchers: MatcherArg) -> list[Matcher]:
    if isinstance(matchers, Matcher):
        return [matchers]
    collected = list(matchers)
    if not collected:
        raise ValueError("A rule needs at least one matcher; use any_request() to match everything")
    for matcher in collected:
        if not isinstance(matcher, Matcher):
            raise TypeError(f"Expected a Matcher, got {type(matcher).__name__}")
    return collected
