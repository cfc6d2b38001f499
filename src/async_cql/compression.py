"""
Frame body compressors.

A compressor's ``name`` must match one of the identifiers the server lists
under ``COMPRESSION`` in its SUPPORTED frame.
"""

import logging
import struct
from abc import ABC, abstractmethod
from typing import Any

import lz4.block

logger = logging.getLogger(__name__)

_LENGTH = struct.Struct(">I")


class Compressor(ABC):
    """Two-way body codec negotiated during STARTUP."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Identifier announced in the STARTUP ``COMPRESSION`` option."""

    @abstractmethod
    def compress(self, data: bytes) -> bytes:
        pass

    @abstractmethod
    def uncompress(self, data: bytes) -> bytes:
        pass


class LZ4Compressor(Compressor):
    """
    LZ4 block compression.

    The protocol prefixes the LZ4 block with the uncompressed length as a
    4-byte big-endian integer.
    """

    @property
    def name(self) -> str:
        return "lz4"

    def compress(self, data: bytes) -> bytes:
        return _LENGTH.pack(len(data)) + lz4.block.compress(data, store_size=False)

    def uncompress(self, data: bytes) -> bytes:
        if len(data) < _LENGTH.size:
            raise ValueError("LZ4 body shorter than its length prefix")
        (size,) = _LENGTH.unpack_from(data)
        if size == 0:
            return b""
        return lz4.block.decompress(data[_LENGTH.size :], uncompressed_size=size)


class SnappyCompressor(Compressor):
    """Snappy compression, backed by the optional python-snappy package."""

    _snappy: Any

    def __init__(self) -> None:
        try:
            import snappy
        except ImportError as e:
            raise ImportError(
                "python-snappy is required for snappy compression: pip install async-cql[snappy]"
            ) from e
        self._snappy = snappy

    @property
    def name(self) -> str:
        return "snappy"

    def compress(self, data: bytes) -> bytes:
        result: bytes = self._snappy.compress(data)
        return result

    def uncompress(self, data: bytes) -> bytes:
        result: bytes = self._snappy.uncompress(data)
        return result


def get_compressor(name: str = "lz4") -> Compressor:
    """Build the compressor registered under ``name`` (``lz4`` or ``snappy``)."""
    factory = _COMPRESSORS.get(name.lower())
    if factory is None:
        raise ValueError(f"Unknown compression {name!r}; expected one of {sorted(_COMPRESSORS)}")
    compressor = factory()
    logger.debug(f"Using {compressor.name} compression")
    return compressor


_COMPRESSORS = {
    "lz4": LZ4Compressor,
    "snappy": SnappyCompressor,
}


def default_compressor() -> Compressor:
    """Compressor used for ``compression=True``."""
    return get_compressor("lz4")
