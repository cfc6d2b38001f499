"""
Exception hierarchy for async-cql.

Every failure raised by the protocol engine derives from
``AsyncCassandraError``. Server ERROR frames are converted through
``error_from_code`` into the matching failure kind.
"""

from typing import Dict, Optional, Type

from .constants import ErrorCode


class AsyncCassandraError(Exception):
    """Base exception for all async-cql errors."""

    def __init__(
        self, message: str, code: Optional[int] = None, cause: Optional[BaseException] = None
    ):
        self.message = message
        self.code = code
        self.cause = cause
        super().__init__(message)


class ConnectionError(AsyncCassandraError):
    """Raised when the transport cannot connect, read or write."""


class OperationTimeout(AsyncCassandraError):
    """Raised on transport timeouts and server read/write timeouts."""


class ProtocolError(AsyncCassandraError):
    """
    Raised when a frame is malformed or unexpected.

    Carries the opcode of the offending frame when one is known.
    """

    def __init__(
        self,
        message: str,
        code: Optional[int] = None,
        cause: Optional[BaseException] = None,
        opcode: Optional[int] = None,
    ):
        super().__init__(message, code, cause)
        self.opcode = opcode


class AuthenticationError(AsyncCassandraError):
    """Raised when the authentication handshake fails."""


class UnauthorizedError(AuthenticationError):
    """Raised when the logged-in user is not allowed to perform an operation."""


class CompressionError(AsyncCassandraError):
    """Raised when a frame body cannot be compressed or uncompressed."""


class QueryError(AsyncCassandraError):
    """Raised when the server rejects a statement."""


class ServerError(AsyncCassandraError):
    """Raised when the coordinator is unable to serve the request."""


class InvalidArgumentError(AsyncCassandraError, ValueError):
    """Raised when a value cannot be packed for the requested column type."""


class NoHostsAvailable(ConnectionError):
    """
    Raised when no contact point accepted a connection.

    ``errors`` maps each attempted host to the message of its failure.
    """

    def __init__(self, message: str, errors: Dict[str, str]):
        super().__init__(message)
        self.errors = errors

    def __str__(self) -> str:
        details = "; ".join(f"{host}: {error}" for host, error in self.errors.items())
        return f"{self.message} ({details})" if details else self.message


_ERROR_KINDS: Dict[int, Type[AsyncCassandraError]] = {
    ErrorCode.SERVER_ERROR: ServerError,
    ErrorCode.UNAVAILABLE: ServerError,
    ErrorCode.OVERLOADED: ServerError,
    ErrorCode.IS_BOOTSTRAPPING: ServerError,
    ErrorCode.TRUNCATE_ERROR: ServerError,
    ErrorCode.PROTOCOL_ERROR: ProtocolError,
    ErrorCode.AUTHENTICATION_ERROR: AuthenticationError,
    ErrorCode.WRITE_TIMEOUT: OperationTimeout,
    ErrorCode.READ_TIMEOUT: OperationTimeout,
    ErrorCode.READ_FAILURE: QueryError,
    ErrorCode.FUNCTION_FAILURE: QueryError,
    ErrorCode.WRITE_FAILURE: QueryError,
    ErrorCode.SYNTAX_ERROR: QueryError,
    ErrorCode.INVALID: QueryError,
    ErrorCode.CONFIG_ERROR: QueryError,
    ErrorCode.ALREADY_EXISTS: QueryError,
    ErrorCode.UNPREPARED: QueryError,
    ErrorCode.UNAUTHORIZED: UnauthorizedError,
}


def error_from_code(code: int, message: str) -> AsyncCassandraError:
    """
    Build the exception matching a server error code.

    Args:
        code: Error code from the ERROR frame body.
        message: Server supplied message.

    Returns:
        An exception instance carrying ``code`` and ``message``. Codes that are
        not part of the protocol yield a ``ProtocolError``.
    """
    kind = _ERROR_KINDS.get(code)
    if kind is None:
        return ProtocolError(f"Unknown error code 0x{code:04X} from server: {message}", code=code)
    return kind(message, code=code)
