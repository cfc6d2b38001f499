"""
Frame builders and a scripted transport for unit tests.
"""

import struct
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from async_cql.buffer import (
    pack_bytes,
    pack_int,
    pack_short,
    pack_short_bytes,
    pack_string,
    pack_string_list,
)
from async_cql.constants import Opcode, ResultKind, RowsFlag
from async_cql.exceptions import ConnectionError
from async_cql.transport import Transport
from async_cql.types import ColumnType

HEADER = struct.Struct(">BBHBI")
RESPONSE_VERSION = 0x84

ColumnSpec = Tuple[str, bytes]


def response_frame(opcode: int, body: bytes = b"", flags: int = 0, stream: int = 0) -> bytes:
    return HEADER.pack(RESPONSE_VERSION, flags, stream, opcode, len(body)) + body


def ready_frame() -> bytes:
    return response_frame(Opcode.READY)


def authenticate_frame(authenticator: str) -> bytes:
    return response_frame(Opcode.AUTHENTICATE, pack_string(authenticator))


def supported_frame(options: Dict[str, List[str]]) -> bytes:
    body = pack_short(len(options))
    for key, values in options.items():
        body += pack_string(key) + pack_string_list(values)
    return response_frame(Opcode.SUPPORTED, body)


def error_frame(code: int, message: str) -> bytes:
    return response_frame(Opcode.ERROR, pack_int(code) + pack_string(message))


def type_option(code: int, *subtypes: bytes) -> bytes:
    return pack_short(code) + b"".join(subtypes)


def _metadata(columns: Sequence[ColumnSpec], keyspace: str, table: str) -> bytes:
    body = pack_string(keyspace) + pack_string(table)
    for name, option in columns:
        body += pack_string(name) + option
    return body


def rows_body(
    columns: Sequence[ColumnSpec],
    rows: Iterable[Sequence[Optional[bytes]]],
    keyspace: str = "ks",
    table: str = "users",
) -> bytes:
    rows = list(rows)
    body = pack_int(ResultKind.ROWS) + pack_int(RowsFlag.GLOBAL_TABLES_SPEC)
    body += pack_int(len(columns)) + _metadata(columns, keyspace, table)
    body += pack_int(len(rows))
    for row in rows:
        body += b"".join(pack_bytes(cell) for cell in row)
    return body


def prepared_body(
    statement_id: bytes,
    bind_columns: Sequence[ColumnSpec],
    result_columns: Sequence[ColumnSpec] = (),
    pk_indices: Sequence[int] = (0,),
    keyspace: str = "ks",
    table: str = "users",
) -> bytes:
    body = pack_int(ResultKind.PREPARED) + pack_short_bytes(statement_id)
    body += pack_int(RowsFlag.GLOBAL_TABLES_SPEC) + pack_int(len(bind_columns))
    body += pack_int(len(pk_indices)) + b"".join(pack_short(i) for i in pk_indices)
    body += _metadata(bind_columns, keyspace, table)
    if result_columns:
        body += pack_int(RowsFlag.GLOBAL_TABLES_SPEC) + pack_int(len(result_columns))
        body += _metadata(result_columns, keyspace, table)
    else:
        body += pack_int(RowsFlag.NO_METADATA) + pack_int(0)
    return body


def result_frame(body: bytes, flags: int = 0) -> bytes:
    return response_frame(Opcode.RESULT, body, flags)


def void_frame() -> bytes:
    return result_frame(pack_int(ResultKind.VOID))


def set_keyspace_frame(keyspace: str) -> bytes:
    return result_frame(pack_int(ResultKind.SET_KEYSPACE) + pack_string(keyspace))


INT = type_option(ColumnType.INT)
TEXT = type_option(ColumnType.VARCHAR)


class FakeTransport(Transport):
    """
    Transport that replays scripted response bytes and records writes.

    Hosts listed in ``fail_hosts`` refuse the connection.
    """

    def __init__(
        self,
        responses: Iterable[bytes] = (),
        fail_hosts: Iterable[str] = (),
        warm: bool = False,
    ):
        self.responses = bytearray(b"".join(responses))
        self.fail_hosts = set(fail_hosts)
        self.warm = warm
        self.written: List[bytes] = []
        self.attempts: List[str] = []
        self.connected_to: Optional[Tuple[str, int]] = None
        self.timeout: Optional[float] = None
        self.closed = False
        self.discarded = False

    def queue(self, *frames: bytes) -> None:
        self.responses.extend(b"".join(frames))

    def connect(self, host: str, port: int, persistent: bool, connect_timeout: float) -> None:
        self.attempts.append(host)
        if host in self.fail_hosts:
            raise ConnectionError(f"Connection refused by {host}")
        self.connected_to = (host, port)

    def read(self, size: int) -> bytes:
        if size > len(self.responses):
            raise ConnectionError("Connection closed by peer while reading frame")
        data = bytes(self.responses[:size])
        del self.responses[:size]
        return data

    def write(self, data: bytes) -> None:
        self.written.append(bytes(data))

    def close(self) -> None:
        self.closed = True

    def discard(self) -> None:
        self.discarded = True
        self.closed = True

    def is_persistent_and_warm(self) -> bool:
        return self.warm

    def set_timeout(self, timeout: Optional[float]) -> None:
        self.timeout = timeout

    def sent(self) -> List[Tuple[int, int, int, bytes]]:
        """Written frames as (flags, stream, opcode, body)."""
        frames = []
        for data in self.written:
            _, flags, stream, opcode, length = HEADER.unpack(data[: HEADER.size])
            body = data[HEADER.size :]
            assert len(body) == length
            frames.append((flags, stream, opcode, body))
        return frames

    def sent_opcodes(self) -> List[int]:
        return [opcode for _, _, opcode, _ in self.sent()]
