"""
Async cluster configuration and session factory.
"""

import asyncio
import logging
import time
from ssl import SSLContext
from typing import List, Optional, Union

from .auth import AuthProvider, PlainTextAuthProvider
from .base import AsyncCloseable, AsyncContextManageable, run_blocking
from .compression import Compressor, default_compressor, get_compressor
from .connection import Connection, TransportFactory
from .constants import (
    DEFAULT_CONNECTION_TIMEOUT,
    DEFAULT_CQL_VERSION,
    DEFAULT_PORT,
    DEFAULT_REQUEST_TIMEOUT,
    ConsistencyLevel,
)
from .exceptions import AsyncCassandraError, ConnectionError
from .metrics import MetricsMiddleware
from .session import AsyncCassandraSession

logger = logging.getLogger(__name__)


class AsyncCluster(AsyncCloseable, AsyncContextManageable):
    """
    Holds the connection settings and opens sessions.

    Each session owns its own connection to one node of the cluster.
    """

    def __init__(
        self,
        contact_points: Optional[List[str]] = None,
        port: int = DEFAULT_PORT,
        auth_provider: Optional[AuthProvider] = None,
        ssl_context: Optional[SSLContext] = None,
        compression: Union[bool, str, Compressor] = False,
        connect_timeout: float = DEFAULT_CONNECTION_TIMEOUT,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        persistent: bool = False,
        default_consistency: int = ConsistencyLevel.ONE,
        cql_version: str = DEFAULT_CQL_VERSION,
        transport_factory: Optional[TransportFactory] = None,
        metrics: Optional[MetricsMiddleware] = None,
    ):
        """
        Initialize async cluster.

        Args:
            contact_points: Hosts to connect to. Defaults to 127.0.0.1.
            port: Native protocol port of the contact points.
            auth_provider: Authentication provider.
            ssl_context: SSL context for secure connections.
            compression: ``True`` for the default compressor, a compressor
                name (``"lz4"``, ``"snappy"``) or a ``Compressor`` instance.
            connect_timeout: Seconds allowed to open a socket.
            request_timeout: Seconds allowed for each socket read and write.
            persistent: Keep sockets open for reuse after close.
            default_consistency: Consistency of statements that set none.
            cql_version: CQL version announced in STARTUP.
            transport_factory: Builds the transport for each connection.
            metrics: Optional metrics middleware.
        """
        super().__init__()
        self.contact_points = list(contact_points) if contact_points else ["127.0.0.1"]
        self.port = port
        self.auth_provider = auth_provider
        self.ssl_context = ssl_context
        self.compression = compression
        self.connect_timeout = connect_timeout
        self.request_timeout = request_timeout
        self.persistent = persistent
        self.default_consistency = default_consistency
        self.cql_version = cql_version
        self.transport_factory = transport_factory
        self.metrics = metrics
        self._sessions: List[AsyncCassandraSession] = []

    @classmethod
    def create_with_auth(
        cls, contact_points: List[str], username: str, password: str, **kwargs: object
    ) -> "AsyncCluster":
        """
        Create cluster with username/password authentication.

        Args:
            contact_points: List of contact points to connect to.
            username: Username for authentication.
            password: Password for authentication.
            **kwargs: Additional cluster options as key-value pairs.

        Returns:
            New AsyncCluster instance.
        """
        auth_provider = PlainTextAuthProvider(username=username, password=password)

        return cls(contact_points=contact_points, auth_provider=auth_provider, **kwargs)  # type: ignore[arg-type]

    def _resolve_compressor(self) -> Optional[Compressor]:
        if isinstance(self.compression, Compressor):
            return self.compression
        if isinstance(self.compression, str):
            return get_compressor(self.compression)
        if self.compression:
            return default_compressor()
        return None

    def create_connection(self) -> Connection:
        """Build an unconnected engine from the cluster settings."""
        return Connection(
            contact_points=self.contact_points,
            port=self.port,
            auth_provider=self.auth_provider,
            compressor=self._resolve_compressor(),
            ssl_context=self.ssl_context,
            connect_timeout=self.connect_timeout,
            request_timeout=self.request_timeout,
            persistent=self.persistent,
            default_consistency=self.default_consistency,
            cql_version=self.cql_version,
            transport_factory=self.transport_factory,
        )

    async def connect(
        self, keyspace: Optional[str] = None, timeout: Optional[float] = None
    ) -> AsyncCassandraSession:
        """
        Connect to the cluster and create a session.

        Args:
            keyspace: Optional keyspace to use.
            timeout: Connection timeout in seconds. Defaults to DEFAULT_CONNECTION_TIMEOUT.

        Returns:
            New AsyncCassandraSession.

        Raises:
            ConnectionError: If connection fails. ``NoHostsAvailable`` and
                other engine errors are raised unchanged.
            asyncio.TimeoutError: If connection times out.
        """
        if self.is_closed:
            raise ConnectionError("Cluster is closed")

        if timeout is None:
            timeout = DEFAULT_CONNECTION_TIMEOUT

        connection = self.create_connection()
        start_time = time.perf_counter()
        try:
            session = await asyncio.wait_for(
                AsyncCassandraSession.create(connection, keyspace, self.metrics), timeout=timeout
            )
        except asyncio.TimeoutError:
            # The executor thread may still finish the handshake
            await run_blocking(connection.close)
            await self._record_connection(connection, False, start_time)
            logger.warning(f"Timed out connecting to cluster after {timeout}s")
            raise
        except AsyncCassandraError as e:
            await self._record_connection(connection, False, start_time)
            logger.warning(f"Failed to connect to cluster: {e}")
            raise
        except Exception as e:
            raise ConnectionError(f"Failed to connect to cluster: {str(e)}", cause=e) from e

        await self._record_connection(connection, True, start_time)
        self._sessions.append(session)
        return session

    async def _record_connection(
        self, connection: Connection, healthy: bool, start_time: float
    ) -> None:
        if self.metrics is None:
            return
        host = connection.host or ",".join(self.contact_points)
        await self.metrics.record_connection_metrics(
            host=host,
            is_healthy=healthy,
            response_time=time.perf_counter() - start_time,
            error_count=0 if healthy else 1,
        )

    async def _do_close(self) -> None:
        """Close every session this cluster opened."""
        sessions, self._sessions = self._sessions, []
        for session in sessions:
            await asyncio.wait_for(session.close(), timeout=30.0)

    async def shutdown(self) -> None:
        """
        Shutdown the cluster and release all resources.

        This method is idempotent and can be called multiple times safely.
        """
        await self.close()
