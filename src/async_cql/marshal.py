"""
Signed big-endian integer encoding.

Every numeric column type and every length prefix of the protocol is built on
these two functions.
"""

from .exceptions import InvalidArgumentError

# Width marker for variable-length (varint) encoding.
VARINT = 0


def encode_signed_int(value: int, length: int) -> bytes:
    """
    Encode ``value`` as a two's-complement big-endian integer.

    Args:
        value: Integer to encode.
        length: Exact byte width, or ``VARINT`` for the shortest encoding
            that still carries the correct sign bit.

    Returns:
        The encoded bytes.

    Raises:
        InvalidArgumentError: If ``value`` does not fit in ``length`` bytes.
    """
    if length == VARINT:
        negative = value < 0
        out = bytearray()
        remaining = value
        while True:
            out.append(remaining & 0xFF)
            remaining >>= 8
            sign_ok = bool(out[-1] & 0x80) == negative
            if remaining in (0, -1) and sign_ok:
                break
        out.reverse()
        return bytes(out)

    try:
        return value.to_bytes(length, "big", signed=True)
    except OverflowError as e:
        raise InvalidArgumentError(
            f"Value {value} does not fit in a {length}-byte signed integer"
        ) from e


def decode_signed_int(data: bytes, offset: int = 0, length: int = -1) -> int:
    """
    Decode a two's-complement big-endian integer.

    ``length`` of -1 reads to the end of ``data``. A zero-length slice or an
    offset past the end decodes to 0, which is how absent trailing fields are
    read.
    """
    if length < 0:
        length = len(data) - offset
    if length == 0 or offset >= len(data):
        return 0

    chunk = data[offset : offset + length]
    negative = bool(chunk[0] & 0x80)
    value = 0
    for byte in chunk:
        if negative:
            byte ^= 0xFF
        value = (value << 8) | byte
    return -(value + 1) if negative else value


def encode_varint(value: int) -> bytes:
    return encode_signed_int(value, VARINT)


def decode_varint(data: bytes) -> int:
    return decode_signed_int(data)


def encode_unsigned_int(value: int, length: int) -> bytes:
    """Encode a non-negative header field such as a body length."""
    try:
        return value.to_bytes(length, "big")
    except OverflowError as e:
        raise InvalidArgumentError(
            f"Value {value} does not fit in a {length}-byte unsigned integer"
        ) from e


def decode_unsigned_int(data: bytes, offset: int = 0, length: int = -1) -> int:
    if length < 0:
        length = len(data) - offset
    return int.from_bytes(data[offset : offset + length], "big")
