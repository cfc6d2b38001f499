"""
Synchronous protocol engine.

A ``Connection`` owns one transport to one node of the cluster. Every request
is written on stream 0 and the call blocks until the reply has been read, so
a lock keeps each request/response pair atomic across threads.
"""

import dataclasses
import logging
import random
import threading
from ssl import SSLContext
from typing import Callable, Dict, List, Optional, Sequence, Union

from .auth import AuthProvider
from .compression import Compressor
from .constants import (
    DEFAULT_CONNECTION_TIMEOUT,
    DEFAULT_CQL_VERSION,
    DEFAULT_PORT,
    DEFAULT_REQUEST_TIMEOUT,
    ConsistencyLevel,
    Opcode,
)
from .exceptions import ConnectionError, NoHostsAvailable, ProtocolError
from .frame import Frame, FrameCodec
from .handshake import Handshake, HandshakeState
from .result import Response, SetKeyspaceResult, parse_result
from .statement import (
    BindValues,
    PreparedStatement,
    SimpleStatement,
    Statement,
    execute_body,
    prepare_body,
    query_body,
)
from .transport import SocketTransport, Transport

logger = logging.getLogger(__name__)

TransportFactory = Callable[[Optional[SSLContext]], Transport]


class Connection:
    """
    Blocking connection to a single Cassandra node.

    Args:
        contact_points: Hosts to try, in random order, until one accepts.
        port: Native protocol port.
        auth_provider: Credentials for servers that require authentication.
        compressor: Frame body compressor to negotiate.
        ssl_context: Wraps the socket in TLS when given.
        connect_timeout: Seconds allowed to open each socket.
        request_timeout: Seconds allowed for each read and write.
        persistent: Keep the socket open for reuse by later connections.
        default_consistency: Consistency of statements that set none.
        cql_version: CQL version announced in STARTUP.
        transport_factory: Builds a transport from the SSL context.
    """

    def __init__(
        self,
        contact_points: Optional[Sequence[str]] = None,
        port: int = DEFAULT_PORT,
        auth_provider: Optional[AuthProvider] = None,
        compressor: Optional[Compressor] = None,
        ssl_context: Optional[SSLContext] = None,
        connect_timeout: float = DEFAULT_CONNECTION_TIMEOUT,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        persistent: bool = False,
        default_consistency: int = ConsistencyLevel.ONE,
        cql_version: str = DEFAULT_CQL_VERSION,
        transport_factory: Optional[TransportFactory] = None,
    ):
        self.contact_points: List[str] = list(contact_points or ["127.0.0.1"])
        self.port = port
        self.auth_provider = auth_provider
        self.compressor = compressor
        self.ssl_context = ssl_context
        self.connect_timeout = connect_timeout
        self.request_timeout = request_timeout
        self.persistent = persistent
        self.default_consistency = default_consistency
        self.cql_version = cql_version
        self._transport_factory: TransportFactory = transport_factory or SocketTransport

        self.codec = FrameCodec(compressor)
        self.host: Optional[str] = None
        self.keyspace: Optional[str] = None
        self.handshake_state: Optional[HandshakeState] = None
        self._transport: Optional[Transport] = None
        self._lock = threading.Lock()
        self._close_count = 0

    @property
    def is_connected(self) -> bool:
        return self._transport is not None

    def connect(self, keyspace: Optional[str] = None) -> "Connection":
        """
        Connect to the first reachable contact point and run the handshake.

        Hosts are tried once each in random order.

        Raises:
            NoHostsAvailable: If no host accepted the connection, with the
                error of each attempt.
            AuthenticationError: If the server refused the credentials.
            ProtocolError: If the server replied out of sequence.
        """
        closes = self._close_count
        hosts = list(self.contact_points)
        random.shuffle(hosts)
        errors: Dict[str, str] = {}

        transport = None
        for host in hosts:
            candidate = self._transport_factory(self.ssl_context)
            try:
                candidate.connect(host, self.port, self.persistent, self.connect_timeout)
            except ConnectionError as e:
                logger.warning(f"Failed to connect to {host}:{self.port}: {e}")
                errors[host] = str(e)
                continue
            transport = candidate
            self.host = host
            break

        if transport is None:
            raise NoHostsAvailable("Failed to connect to all hosts in Cassandra cluster", errors)

        try:
            transport.set_timeout(self.request_timeout)
            handshake = Handshake(
                transport,
                self.codec,
                auth_provider=self.auth_provider,
                compressor=self.compressor,
                cql_version=self.cql_version,
            )
            self.handshake_state = handshake.run()
        except Exception:
            transport.discard()
            self.host = None
            raise

        with self._lock:
            # close() ran while the handshake was in flight
            if self._close_count != closes:
                self.host = None
                transport.close()
                raise ConnectionError("Connection was closed while connecting")
            self._transport = transport
        logger.info(f"Connected to Cassandra at {self.host}:{self.port}")

        if keyspace:
            self.use(keyspace)
        return self

    def request(self, opcode: Opcode, body: bytes = b"") -> Frame:
        """
        Write one request frame and block until its reply is read.

        Raises:
            ConnectionError: If the connection is not open or breaks.
            OperationTimeout: If the request timeout elapses.
            AsyncCassandraError: The mapped kind when the server replies ERROR.
        """
        with self._lock:
            transport = self._transport
            if transport is None:
                raise ConnectionError("Connection is not open")
            transport.write(self.codec.encode(opcode, body))
            return self.codec.read_frame(transport)

    def prepare(self, cql: str) -> PreparedStatement:
        """
        Prepare ``cql`` on the server.

        Returns:
            A reusable handle carrying the bind marker metadata.
        """
        response = self._request_result(Opcode.PREPARE, prepare_body(cql))
        if not isinstance(response.result, PreparedStatement):
            raise ProtocolError(
                f"Expected a PREPARED result, got {type(response.result).__name__}",
                opcode=Opcode.RESULT,
            )
        return dataclasses.replace(response.result, query=cql)

    def execute(
        self,
        statement: Union[Statement, str],
        values: BindValues = None,
        consistency: Optional[int] = None,
    ) -> Response:
        """
        Run a statement.

        Args:
            statement: CQL text, ``SimpleStatement`` or ``PreparedStatement``.
            values: Positional sequence or name-keyed mapping of bind values.
            consistency: Overrides the statement and connection consistency.

        Returns:
            The decoded result with any server warnings.

        Raises:
            QueryError: If a prepared statement is missing a bound value, or
                the server rejects the statement.
        """
        if isinstance(statement, str):
            statement = SimpleStatement(statement)
        if consistency is None:
            consistency = statement.consistency
        if consistency is None:
            consistency = self.default_consistency

        if isinstance(statement, PreparedStatement):
            return self._request_result(
                Opcode.EXECUTE,
                execute_body(statement, values, consistency),
                statement,
            )
        return self._request_result(Opcode.QUERY, query_body(statement.query, values, consistency))

    def use(self, keyspace: str) -> Response:
        """Switch the connection to ``keyspace``."""
        return self.execute(SimpleStatement(f"USE {keyspace}"))

    def close(self) -> None:
        with self._lock:
            self._close_count += 1
            transport, self._transport = self._transport, None
        if transport is not None:
            transport.close()
            logger.debug(f"Closed connection to {self.host}:{self.port}")

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _request_result(
        self, opcode: Opcode, body: bytes, prepared: Optional[PreparedStatement] = None
    ) -> Response:
        frame = self.request(opcode, body)
        if frame.opcode != Opcode.RESULT:
            raise ProtocolError(
                f"Expected RESULT in reply to {opcode.name}, got opcode 0x{frame.opcode:02X}",
                opcode=frame.opcode,
            )
        fallback = prepared.result_columns if prepared is not None else ()
        result = parse_result(frame.body, frame.raw, fallback)
        if isinstance(result, SetKeyspaceResult):
            self.keyspace = result.keyspace
        return Response(result, frame.warnings, frame.tracing_id, frame.custom_payload)
