"""
Frame envelope encoding and decoding.

A frame is a 9-byte header (version, flags, stream id, opcode, body length)
followed by the body. Request bodies are compressed here when a compressor is
configured; response bodies are uncompressed, stripped of tracing ids,
custom payloads and warnings, and ERROR frames are raised as exceptions.
"""

import logging
import struct
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .buffer import ByteCursor
from .compression import Compressor
from .constants import (
    HEADER_LENGTH,
    PROTOCOL_VERSION,
    RESPONSE_BIT,
    UNCOMPRESSED_OPCODES,
    FrameFlag,
    Opcode,
)
from .exceptions import CompressionError, ProtocolError, error_from_code
from .transport import Transport

logger = logging.getLogger(__name__)

_HEADER = struct.Struct(">BBHBI")


@dataclass
class Frame:
    """A decoded protocol frame."""

    version: int
    flags: int
    stream: int
    opcode: int
    body: bytes
    warnings: List[str] = field(default_factory=list)
    tracing_id: Optional[uuid.UUID] = None
    custom_payload: Optional[Dict[str, Optional[bytes]]] = None
    raw: bytes = b""

    @property
    def is_response(self) -> bool:
        return bool(self.version & RESPONSE_BIT)

    @property
    def protocol_version(self) -> int:
        return self.version & ~RESPONSE_BIT

    def has_flag(self, flag: FrameFlag) -> bool:
        return bool(self.flags & flag)


def _opcode_name(opcode: int) -> str:
    try:
        return Opcode(opcode).name
    except ValueError:
        return f"0x{opcode:02X}"


class FrameCodec:
    """
    Encodes request frames and decodes response frames.

    The codec holds the connection's compressor, if any, for its whole
    lifetime.
    """

    def __init__(self, compressor: Optional[Compressor] = None, version: int = PROTOCOL_VERSION):
        self.compressor = compressor
        self.version = version

    def encode(self, opcode: int, body: bytes = b"", stream: int = 0) -> bytes:
        """
        Build the wire bytes of a request frame.

        STARTUP and OPTIONS are never compressed.

        Raises:
            CompressionError: If the compressor fails.
        """
        flags = 0
        if self.compressor is not None and opcode not in UNCOMPRESSED_OPCODES:
            try:
                body = self.compressor.compress(body)
            except Exception as e:
                raise CompressionError(
                    f"Could not compress request with {self.compressor.name}: {e}", cause=e
                ) from e
            flags |= FrameFlag.COMPRESSION

        logger.debug(f"Sending {_opcode_name(opcode)} frame, {len(body)} body bytes")
        return _HEADER.pack(self.version, flags, stream, opcode, len(body)) + body

    @staticmethod
    def parse_header(header: bytes) -> Tuple[int, int, int, int, int]:
        """Split a header into (version, flags, stream, opcode, body length)."""
        if len(header) != HEADER_LENGTH:
            raise ProtocolError(f"Frame header must be {HEADER_LENGTH} bytes, got {len(header)}")
        version, flags, stream, opcode, length = _HEADER.unpack(header)
        return version, flags, stream, opcode, length

    def decode(self, header: bytes, body: bytes) -> Frame:
        """
        Decode a response frame.

        Raises:
            CompressionError: If a compressed body cannot be uncompressed.
            AsyncCassandraError: The mapped failure kind for ERROR frames.
        """
        version, flags, stream, opcode, _ = self.parse_header(header)
        frame = Frame(version, flags, stream, opcode, body, raw=header + body)

        if flags & FrameFlag.COMPRESSION and body:
            if self.compressor is None:
                raise CompressionError("Received a compressed frame but no compressor is configured")
            try:
                body = self.compressor.uncompress(body)
            except Exception as e:
                raise CompressionError(
                    f"Could not uncompress response with {self.compressor.name}: {e}", cause=e
                ) from e

        cursor = ByteCursor(body)
        if flags & FrameFlag.TRACING:
            frame.tracing_id = uuid.UUID(bytes=cursor.read_uuid_bytes())
        if flags & FrameFlag.WARNING:
            frame.warnings = [w or "" for w in cursor.read_string_list()]
            for warning in frame.warnings:
                logger.warning(f"Warning returned while processing query: {warning}")
        if flags & FrameFlag.CUSTOM_PAYLOAD:
            frame.custom_payload = cursor.read_bytes_map()
        frame.body = cursor.rest()

        logger.debug(f"Received {_opcode_name(opcode)} frame, {len(frame.body)} body bytes")

        if opcode == Opcode.ERROR:
            error = ByteCursor(frame.body)
            code = error.read_int() & 0xFFFFFFFF
            message = error.read_string() or ""
            raise error_from_code(code, message)

        return frame

    def read_frame(self, transport: Transport) -> Frame:
        """Read one full frame from ``transport`` and decode it."""
        header = transport.read(HEADER_LENGTH)
        length = self.parse_header(header)[4]
        body = transport.read(length) if length else b""
        return self.decode(header, body)
