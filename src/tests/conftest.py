"""Pytest configuration and shared fixtures."""

import pytest
import sys
import os

import httpx

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import http_client
from tick_source import TickSource


T0 = 949392000.0  # 2000-02-01T08:00:00Z


@pytest.fixture
def t0():
    """Provide a fixed reference time for change log tests."""
    return T0


@pytest.fixture
def make_client():
    """Provide a factory for httpx clients backed by a mock transport.

    The handler receives the httpx.Request and returns an httpx.Response
    or raises an httpx exception.
    """
    clients = []

    def factory(handler):
        client = http_client.build_http_client(
            timeout_seconds=1.0, transport=httpx.MockTransport(handler)
        )
        clients.append(client)
        return client

    yield factory

    for client in clients:
        client.close()


@pytest.fixture
def json_client(make_client):
    """Provide a client whose every request returns 200 with a JSON body."""
    return make_client(
        lambda request: httpx.Response(
            200, json={"datetime": "2024-01-01T10:15:30Z", "color": "blue", "age": 25}
        )
    )


@pytest.fixture
def tick_source():
    """Provide a TickSource whose timers are disarmed after the test."""
    source = TickSource()
    yield source
    source.disarm_all()
