"""
Primitive wire notations of the native protocol.

The ``pack_*`` helpers build the notations used in request bodies. The
``ByteCursor`` reads the same notations from a response body, advancing its
own position; a cursor belongs to one decoding call and is never shared.
"""

import struct
from typing import Dict, Iterable, List, Mapping, Optional, Union

from .exceptions import ProtocolError

_BYTE = struct.Struct(">B")
_SHORT = struct.Struct(">H")
_INT = struct.Struct(">i")
_LONG = struct.Struct(">q")

NULL_STRING_LENGTH = 0xFFFF
NULL_BYTES_LENGTH = -1


def pack_byte(value: int) -> bytes:
    return _BYTE.pack(value)


def pack_short(value: int) -> bytes:
    return _SHORT.pack(value)


def pack_int(value: int) -> bytes:
    return _INT.pack(value)


def pack_long(value: int) -> bytes:
    return _LONG.pack(value)


def _as_bytes(value: Union[str, bytes]) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else bytes(value)


def pack_string(value: Union[str, bytes]) -> bytes:
    """[string]: [short] length followed by UTF-8 bytes."""
    data = _as_bytes(value)
    return _SHORT.pack(len(data)) + data


def pack_long_string(value: Union[str, bytes]) -> bytes:
    """[long string]: [int] length followed by UTF-8 bytes."""
    data = _as_bytes(value)
    return _INT.pack(len(data)) + data


def pack_bytes(value: Optional[bytes]) -> bytes:
    """[bytes]: [int] length followed by raw bytes; ``None`` is length -1."""
    if value is None:
        return _INT.pack(NULL_BYTES_LENGTH)
    return _INT.pack(len(value)) + bytes(value)


def pack_short_bytes(value: bytes) -> bytes:
    return _SHORT.pack(len(value)) + bytes(value)


def pack_string_list(values: Iterable[str]) -> bytes:
    items = list(values)
    return _SHORT.pack(len(items)) + b"".join(pack_string(item) for item in items)


def pack_string_map(values: Mapping[str, str]) -> bytes:
    """[string map]: [short] count then key/value [string] pairs."""
    body = [_SHORT.pack(len(values))]
    for key, value in values.items():
        body.append(pack_string(key))
        body.append(pack_string(value))
    return b"".join(body)


class ByteCursor:
    """Reads protocol notations from a buffer, tracking the current position."""

    def __init__(self, data: bytes, position: int = 0):
        self._data = bytes(data)
        self.position = position

    def __len__(self) -> int:
        return len(self._data)

    @property
    def remaining(self) -> int:
        return len(self._data) - self.position

    def at_end(self) -> bool:
        return self.position >= len(self._data)

    def read(self, size: int) -> bytes:
        """Read exactly ``size`` bytes."""
        if size < 0 or size > self.remaining:
            raise ProtocolError(
                f"Frame truncated: wanted {size} bytes at offset {self.position}, "
                f"{self.remaining} available"
            )
        start = self.position
        self.position += size
        return self._data[start : self.position]

    def rest(self) -> bytes:
        return self.read(self.remaining)

    def read_byte(self) -> int:
        return _BYTE.unpack(self.read(1))[0]

    def read_short(self) -> int:
        return _SHORT.unpack(self.read(2))[0]

    def read_int(self) -> int:
        return _INT.unpack(self.read(4))[0]

    def read_long(self) -> int:
        return _LONG.unpack(self.read(8))[0]

    def read_string(self) -> Optional[str]:
        """
        Read a [string].

        A length of 0xFFFF, or a buffer that ends before the length field,
        decodes to ``None``.
        """
        if self.remaining < 2:
            self.position = len(self._data)
            return None
        length = self.read_short()
        if length == NULL_STRING_LENGTH:
            return None
        return self.read(length).decode("utf-8")

    def read_long_string(self) -> Optional[str]:
        data = self.read_bytes()
        return None if data is None else data.decode("utf-8")

    def read_bytes(self) -> Optional[bytes]:
        """Read a [bytes]; a negative length decodes to ``None``."""
        length = self.read_int()
        if length < 0:
            return None
        return self.read(length)

    def read_short_bytes(self) -> bytes:
        return self.read(self.read_short())

    def read_uuid_bytes(self) -> bytes:
        return self.read(16)

    def read_string_list(self) -> List[Optional[str]]:
        return [self.read_string() for _ in range(self.read_short())]

    def read_string_map(self) -> Dict[str, Optional[str]]:
        result: Dict[str, Optional[str]] = {}
        for _ in range(self.read_short()):
            key = self.read_string()
            result[key or ""] = self.read_string()
        return result

    def read_string_multimap(self) -> Dict[str, List[Optional[str]]]:
        """Read a [string multimap], as sent in SUPPORTED."""
        result: Dict[str, List[Optional[str]]] = {}
        for _ in range(self.read_short()):
            key = self.read_string()
            result[key or ""] = self.read_string_list()
        return result

    def read_bytes_map(self) -> Dict[str, Optional[bytes]]:
        result: Dict[str, Optional[bytes]] = {}
        for _ in range(self.read_short()):
            key = self.read_string()
            result[key or ""] = self.read_bytes()
        return result
