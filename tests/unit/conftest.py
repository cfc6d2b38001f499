"""
Shared fixtures for unit tests.
"""

import pytest
from protocol_fakes import FakeTransport, ready_frame

from async_cql.connection import Connection


@pytest.fixture
def transport():
    """Scripted transport with no queued responses."""
    return FakeTransport()


@pytest.fixture
def connected(transport):
    """Connection that has completed a READY handshake on the fake transport."""
    transport.queue(ready_frame())
    connection = Connection(
        contact_points=["10.0.0.1"], transport_factory=lambda ssl_context: transport
    )
    connection.connect()
    transport.written.clear()
    return connection
