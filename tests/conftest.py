"""Test bootstrap and shared fixtures for rulemock."""

from __future__ import annotations

import sys
from http.client import HTTPConnection
from pathlib import Path
from typing import Iterator, Optional

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from rulemock.server import MockServer, ServerState  # noqa: E402


@pytest.fixture
def server() -> Iterator[MockServer]:
    mock_server = MockServer()
    mock_server.start()
    try:
        yield mock_server
    finally:
        if mock_server.state is not ServerState.STOPPED:
            mock_server.stop()


def send(
    server: MockServer,
    method: str,
    target: str,
    body: Optional[bytes] = None,
    headers: Optional[dict[str, str]] = None,
) -> tuple[int, bytes, dict[str, str]]:
    host, port = server.address()
    connection = HTTPConnection(host, port, timeout=5)
    try:
        connection.request(method, target, body=body, headers=headers or {})
        response = connection.getresponse()
        payload = response.read()
        return response.status, payload, dict(response.getheaders())
    finally:
        connection.close()
