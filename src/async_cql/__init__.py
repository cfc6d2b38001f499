"""
async-cql: Cassandra native protocol v4 client with an async interface.

This package speaks the CQL binary protocol directly: it performs the
startup and authentication handshake, encodes statements and bind values
into frames and decodes RESULT frames into typed rows, without a prebuilt
driver underneath.
"""

__version__ = "0.1.0"

from .auth import AuthProvider, ChallengeAuthProvider, PlainTextAuthProvider
from .cluster import AsyncCluster
from .compression import Compressor, LZ4Compressor, SnappyCompressor
from .connection import Connection
from .constants import ConsistencyLevel
from .exceptions import (
    AsyncCassandraError,
    AuthenticationError,
    CompressionError,
    ConnectionError,
    InvalidArgumentError,
    NoHostsAvailable,
    OperationTimeout,
    ProtocolError,
    QueryError,
    ServerError,
    UnauthorizedError,
)
from .metrics import (
    ConnectionMetrics,
    InMemoryMetricsCollector,
    MetricsCollector,
    MetricsMiddleware,
    PrometheusMetricsCollector,
    QueryMetrics,
    create_metrics_system,
)
from .result import (
    AsyncResultSet,
    Response,
    RowsResult,
    SchemaChangeResult,
    SetKeyspaceResult,
    VoidResult,
)
from .session import AsyncCassandraSession
from .statement import PreparedStatement, SimpleStatement
from .transport import SocketTransport, Transport
from .types import ColumnDescriptor, ColumnType, TypeDescriptor

__all__ = [
    "AsyncCassandraSession",
    "AsyncCluster",
    "Connection",
    "AsyncResultSet",
    "Response",
    "RowsResult",
    "VoidResult",
    "SetKeyspaceResult",
    "SchemaChangeResult",
    "SimpleStatement",
    "PreparedStatement",
    "ColumnType",
    "ColumnDescriptor",
    "TypeDescriptor",
    "ConsistencyLevel",
    "AuthProvider",
    "ChallengeAuthProvider",
    "PlainTextAuthProvider",
    "Compressor",
    "LZ4Compressor",
    "SnappyCompressor",
    "Transport",
    "SocketTransport",
    "AsyncCassandraError",
    "AuthenticationError",
    "CompressionError",
    "ConnectionError",
    "InvalidArgumentError",
    "NoHostsAvailable",
    "OperationTimeout",
    "ProtocolError",
    "QueryError",
    "ServerError",
    "UnauthorizedError",
    "MetricsMiddleware",
    "MetricsCollector",
    "InMemoryMetricsCollector",
    "PrometheusMetricsCollector",
    "QueryMetrics",
    "ConnectionMetrics",
    "create_metrics_system",
]
