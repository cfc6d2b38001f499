"""
Byte-stream transports used by the protocol engine.

The engine only needs to read exactly N bytes and write a buffer. TLS, when
configured, is layered beneath the same contract through an ``SSLContext``.
"""

import logging
import socket
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from ssl import SSLContext, SSLError
from typing import Dict, Optional, Tuple

from .exceptions import ConnectionError, OperationTimeout

logger = logging.getLogger(__name__)


class Transport(ABC):
    """Blocking, single-stream transport contract."""

    @abstractmethod
    def connect(self, host: str, port: int, persistent: bool, connect_timeout: float) -> None:
        """
        Open the connection.

        Raises:
            ConnectionError: If the host cannot be reached.
        """

    @abstractmethod
    def read(self, size: int) -> bytes:
        """
        Read exactly ``size`` bytes, blocking until they arrive.

        Raises:
            OperationTimeout: If the configured timeout elapses.
            ConnectionError: On EOF or any other socket failure.
        """

    @abstractmethod
    def write(self, data: bytes) -> None:
        """
        Write all of ``data``.

        Raises:
            OperationTimeout: If the configured timeout elapses.
            ConnectionError: On any other socket failure.
        """

    @abstractmethod
    def close(self) -> None:
        pass

    def discard(self) -> None:
        """Close the connection even when it is persistent."""
        self.close()

    @abstractmethod
    def is_persistent_and_warm(self) -> bool:
        """True when a persistent connection already carried a handshake."""

    def set_timeout(self, timeout: Optional[float]) -> None:
        """Bound blocking reads and writes; ``None`` or <= 0 disables it."""


@dataclass
class _PersistentSocket:
    sock: socket.socket
    bytes_read: int = 0


# Persistent sockets outlive their transport and are reused by later
# connections to the same host and port.
_persistent_sockets: Dict[Tuple[str, int], _PersistentSocket] = {}
_persistent_lock = threading.Lock()


class SocketTransport(Transport):
    """TCP transport with optional TLS."""

    def __init__(self, ssl_context: Optional[SSLContext] = None):
        self._ssl_context = ssl_context
        self._sock: Optional[socket.socket] = None
        self._key: Optional[Tuple[str, int]] = None
        self._persistent: Optional[_PersistentSocket] = None

    @property
    def is_connected(self) -> bool:
        return self._sock is not None

    def connect(self, host: str, port: int, persistent: bool, connect_timeout: float) -> None:
        key = (host, port)
        if persistent:
            with _persistent_lock:
                existing = _persistent_sockets.get(key)
            if existing is not None:
                logger.debug(f"Reusing persistent connection to {host}:{port}")
                self._sock = existing.sock
                self._key = key
                self._persistent = existing
                return

        try:
            sock = socket.create_connection(key, timeout=connect_timeout)
        except socket.timeout as e:
            raise ConnectionError(f"Socket connect to {host}:{port} timed out", cause=e) from e
        except OSError as e:
            raise ConnectionError(f"Socket connect to {host}:{port} failed: {e}", cause=e) from e

        if self._ssl_context is not None:
            try:
                sock = self._ssl_context.wrap_socket(sock, server_hostname=host)
            except (SSLError, OSError) as e:
                sock.close()
                raise ConnectionError(
                    f"Failed to establish an encrypted connection to {host}:{port}: {e}", cause=e
                ) from e

        self._sock = sock
        self._key = key
        if persistent:
            self._persistent = _PersistentSocket(sock)
            with _persistent_lock:
                _persistent_sockets[key] = self._persistent

    def set_timeout(self, timeout: Optional[float]) -> None:
        sock = self._require_socket()
        sock.settimeout(timeout if timeout and timeout > 0 else None)

    def is_persistent_and_warm(self) -> bool:
        return self._persistent is not None and self._persistent.bytes_read > 0

    def read(self, size: int) -> bytes:
        sock = self._require_socket()
        chunks = []
        remaining = size
        try:
            while remaining > 0:
                chunk = sock.recv(remaining)
                if not chunk:
                    raise ConnectionError("Connection closed by peer while reading frame")
                chunks.append(chunk)
                remaining -= len(chunk)
        except socket.timeout as e:
            self._discard()
            raise OperationTimeout("Timeout occurred while reading from socket", cause=e) from e
        except ConnectionError:
            self._discard()
            raise
        except OSError as e:
            self._discard()
            raise ConnectionError(f"Failed to read from socket: {e}", cause=e) from e

        if self._persistent is not None:
            self._persistent.bytes_read += size
        return b"".join(chunks)

    def write(self, data: bytes) -> None:
        sock = self._require_socket()
        try:
            sock.sendall(data)
        except socket.timeout as e:
            self._discard()
            raise OperationTimeout("Timeout occurred while writing to socket", cause=e) from e
        except OSError as e:
            self._discard()
            raise ConnectionError(f"Failed to write to socket: {e}", cause=e) from e

    def close(self) -> None:
        """
        Release the connection.

        Persistent sockets stay open in the registry for the next connection;
        use ``discard`` to really close one.
        """
        if self._persistent is None and self._sock is not None:
            self._sock.close()
        self._sock = None
        self._persistent = None

    def discard(self) -> None:
        self._discard()

    def _discard(self) -> None:
        if self._persistent is not None and self._key is not None:
            with _persistent_lock:
                if _persistent_sockets.get(self._key) is self._persistent:
                    del _persistent_sockets[self._key]
        self._persistent = None
        if self._sock is not None:
            try:
                self._sock.close()
            except OSError as e:
                logger.debug(f"Error closing socket: {e}")
            self._sock = None

    def _require_socket(self) -> socket.socket:
        if self._sock is None:
            raise ConnectionError("Transport is not connected")
        return self._sock
