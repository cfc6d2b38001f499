"""
Value codec for CQL column types.

``pack_value`` turns a Python value into the cell bytes of a column type and
``unpack_value`` reverses it. Scalars are handled by one pack/unpack pair per
type; LIST, SET and MAP recurse through their sub-type descriptors.
"""

import ipaddress
import struct
import uuid
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple

from .buffer import ByteCursor, pack_bytes, pack_int
from .exceptions import InvalidArgumentError, ProtocolError
from .marshal import VARINT, decode_signed_int, encode_signed_int
from .types import ColumnType, TypeDescriptor, TypeLike, as_type

_DOUBLE = struct.Struct(">d")
_FLOAT = struct.Struct(">f")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


# Scalars


def pack_blob(value: Any) -> bytes:
    if isinstance(value, str):
        if value.startswith("0x"):
            return bytes.fromhex(value[2:])
        return value.encode("utf-8")
    return bytes(value)


def unpack_blob(data: bytes) -> str:
    return "0x" + data.hex() if data else ""


def pack_text(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    return str(value).encode("utf-8")


def unpack_text(data: bytes) -> str:
    return data.decode("utf-8")


def unpack_ascii(data: bytes) -> str:
    return data.decode("ascii")


def pack_bigint(value: Any) -> bytes:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = (value - _EPOCH) // timedelta(milliseconds=1)
    return encode_signed_int(int(value), 8)


def unpack_bigint(data: bytes) -> int:
    return decode_signed_int(data, 0, 8)


def pack_boolean(value: Optional[bool]) -> bytes:
    if value is None:
        return b""
    return b"\x01" if value else b"\x00"


def unpack_boolean(data: bytes) -> Optional[bool]:
    if not data:
        return None
    return {0: False, 1: True}.get(data[0])


def pack_decimal(value: Any) -> bytes:
    """
    Pack a decimal as a 4-byte scale followed by the varint unscaled value.

    Integral values with trailing zeros get a negative scale (``12300`` is
    ``123`` with scale ``-2``), fractional values a positive one (``1.5`` is
    ``15`` with scale ``1``).
    """
    if isinstance(value, float):
        value = Decimal(repr(value))
    elif not isinstance(value, Decimal):
        value = Decimal(value)
    if not value.is_finite():
        raise InvalidArgumentError(f"Cannot pack non-finite decimal {value}")

    sign, digits, exponent = value.as_tuple()
    # Trailing zeros move into the exponent without context rounding
    digits = list(digits)
    while len(digits) > 1 and digits[-1] == 0:
        digits.pop()
        exponent += 1
    unscaled = int("".join(str(digit) for digit in digits) or "0")
    if sign:
        unscaled = -unscaled
    scale = -int(exponent)
    if unscaled == 0:
        scale = 0
    return encode_signed_int(scale, 4) + encode_signed_int(unscaled, VARINT)


def unpack_decimal(data: bytes) -> Decimal:
    if len(data) < 5:
        return Decimal(0)
    scale = decode_signed_int(data, 0, 4)
    unscaled = decode_signed_int(data, 4)
    return Decimal(f"{unscaled}E{-scale}")


def pack_double(value: Any) -> bytes:
    return _DOUBLE.pack(float(value))


def unpack_double(data: bytes) -> float:
    return _DOUBLE.unpack(data)[0]


def pack_float(value: Any) -> bytes:
    return _FLOAT.pack(float(value))


def unpack_float(data: bytes) -> float:
    return _FLOAT.unpack(data)[0]


def pack_int32(value: Any) -> bytes:
    return encode_signed_int(int(value), 4)


def unpack_int32(data: bytes) -> int:
    return decode_signed_int(data, 0, 4)


def pack_uuid(value: Any) -> bytes:
    if isinstance(value, uuid.UUID):
        return value.bytes
    return uuid.UUID(str(value)).bytes


def unpack_uuid(data: bytes) -> Optional[str]:
    if not data:
        return None
    return str(uuid.UUID(bytes=data))


def pack_varint(value: Any) -> bytes:
    return encode_signed_int(int(value), VARINT)


def unpack_varint(data: bytes) -> int:
    return decode_signed_int(data)


def pack_inet(value: Any) -> bytes:
    return ipaddress.ip_address(value).packed


def unpack_inet(data: bytes) -> str:
    return str(ipaddress.ip_address(data))


_DATE_CENTER = 1 << 31
_EPOCH_DATE = date(1970, 1, 1)


def pack_date(value: Any) -> bytes:
    """Dates are unsigned day counts centred on the epoch at 2**31."""
    if isinstance(value, datetime):
        value = value.date()
    if isinstance(value, date):
        value = (value - _EPOCH_DATE).days
    return (int(value) + _DATE_CENTER).to_bytes(4, "big")


def unpack_date(data: bytes) -> date:
    days = int.from_bytes(data, "big") - _DATE_CENTER
    return _EPOCH_DATE + timedelta(days=days)


def pack_time(value: Any) -> bytes:
    """Times of day are nanoseconds since midnight."""
    if isinstance(value, time):
        seconds = value.hour * 3600 + value.minute * 60 + value.second
        value = seconds * 1_000_000_000 + value.microsecond * 1000
    return encode_signed_int(int(value), 8)


def unpack_time(data: bytes) -> int:
    return decode_signed_int(data, 0, 8)


def pack_smallint(value: Any) -> bytes:
    return encode_signed_int(int(value), 2)


def unpack_smallint(data: bytes) -> int:
    return decode_signed_int(data, 0, 2)


def pack_tinyint(value: Any) -> bytes:
    return encode_signed_int(int(value), 1)


def unpack_tinyint(data: bytes) -> int:
    return decode_signed_int(data, 0, 1)


# Collections


def pack_list(value: Any, element: TypeDescriptor) -> bytes:
    items = list(value)
    body = [pack_int(len(items))]
    for item in items:
        body.append(pack_bytes(None if item is None else pack_value(item, element)))
    return b"".join(body)


def unpack_list(data: bytes, element: TypeDescriptor) -> List[Any]:
    cursor = ByteCursor(data)
    count = cursor.read_int()
    return [unpack_value(cursor.read_bytes(), element) for _ in range(count)]


def unpack_set(data: bytes, element: TypeDescriptor) -> Any:
    items = unpack_list(data, element)
    try:
        return set(items)
    except TypeError:
        # elements such as nested lists are not hashable
        return items


def pack_map(value: Any, key_type: TypeDescriptor, value_type: TypeDescriptor) -> bytes:
    entries = list(value.items()) if hasattr(value, "items") else list(value)
    body = [pack_int(len(entries))]
    for key, item in entries:
        body.append(pack_bytes(pack_value(key, key_type)))
        body.append(pack_bytes(None if item is None else pack_value(item, value_type)))
    return b"".join(body)


def unpack_map(data: bytes, key_type: TypeDescriptor, value_type: TypeDescriptor) -> Dict[Any, Any]:
    cursor = ByteCursor(data)
    result: Dict[Any, Any] = {}
    for _ in range(cursor.read_int()):
        key = unpack_value(cursor.read_bytes(), key_type)
        item = unpack_value(cursor.read_bytes(), value_type)
        try:
            result[key] = item
        except TypeError as e:
            raise ProtocolError(
                f"Map key of type {key_type} decoded to unhashable {type(key).__name__}"
            ) from e
    return result


_SCALAR_PACKERS: Dict[ColumnType, Callable[[Any], bytes]] = {
    ColumnType.CUSTOM: pack_blob,
    ColumnType.BLOB: pack_blob,
    ColumnType.ASCII: pack_text,
    ColumnType.TEXT: pack_text,
    ColumnType.VARCHAR: pack_text,
    ColumnType.BIGINT: pack_bigint,
    ColumnType.COUNTER: pack_bigint,
    ColumnType.TIMESTAMP: pack_bigint,
    ColumnType.BOOLEAN: pack_boolean,
    ColumnType.DECIMAL: pack_decimal,
    ColumnType.DOUBLE: pack_double,
    ColumnType.FLOAT: pack_float,
    ColumnType.INT: pack_int32,
    ColumnType.UUID: pack_uuid,
    ColumnType.TIMEUUID: pack_uuid,
    ColumnType.VARINT: pack_varint,
    ColumnType.INET: pack_inet,
    ColumnType.DATE: pack_date,
    ColumnType.TIME: pack_time,
    ColumnType.SMALLINT: pack_smallint,
    ColumnType.TINYINT: pack_tinyint,
}

_SCALAR_UNPACKERS: Dict[ColumnType, Callable[[bytes], Any]] = {
    ColumnType.CUSTOM: unpack_blob,
    ColumnType.BLOB: unpack_blob,
    ColumnType.ASCII: unpack_ascii,
    ColumnType.TEXT: unpack_text,
    ColumnType.VARCHAR: unpack_text,
    ColumnType.BIGINT: unpack_bigint,
    ColumnType.COUNTER: unpack_bigint,
    ColumnType.TIMESTAMP: unpack_bigint,
    ColumnType.BOOLEAN: unpack_boolean,
    ColumnType.DECIMAL: unpack_decimal,
    ColumnType.DOUBLE: unpack_double,
    ColumnType.FLOAT: unpack_float,
    ColumnType.INT: unpack_int32,
    ColumnType.UUID: unpack_uuid,
    ColumnType.TIMEUUID: unpack_uuid,
    ColumnType.VARINT: unpack_varint,
    ColumnType.INET: unpack_inet,
    ColumnType.DATE: unpack_date,
    ColumnType.TIME: unpack_time,
    ColumnType.SMALLINT: unpack_smallint,
    ColumnType.TINYINT: unpack_tinyint,
}


def pack_value(value: Any, type_: TypeLike) -> bytes:
    """
    Pack ``value`` into the cell bytes of ``type_``.

    Args:
        value: Python value to pack.
        type_: Column type descriptor, ``ColumnType`` or custom class name.

    Returns:
        The packed bytes (without the [bytes] length prefix).

    Raises:
        InvalidArgumentError: If the type is unknown or the value does not
            fit the type.
    """
    try:
        descriptor = as_type(type_)
    except ValueError as e:
        raise InvalidArgumentError(f"Invalid column type {type_!r}: {e}") from e

    kind = ColumnType.CUSTOM if descriptor.is_custom else descriptor.type

    try:
        if kind in (ColumnType.LIST, ColumnType.SET):
            return pack_list(value, descriptor.subtype1)  # type: ignore[arg-type]
        if kind == ColumnType.MAP:
            return pack_map(value, descriptor.subtype1, descriptor.subtype2)  # type: ignore[arg-type]
        packer = _SCALAR_PACKERS.get(kind)  # type: ignore[arg-type]
        if packer is None:
            raise InvalidArgumentError(f"Unknown column type {type_!r}")
        return packer(value)
    except InvalidArgumentError:
        raise
    except (struct.error, TypeError, ValueError, ArithmeticError) as e:
        raise InvalidArgumentError(
            f"Cannot pack {type(value).__name__} value {value!r} as {descriptor}: {e}"
        ) from e


def unpack_value(data: Optional[bytes], type_: TypeLike) -> Any:
    """
    Unpack cell bytes of ``type_``.

    A ``None`` cell (null [bytes]) yields ``None`` without calling the type
    codec.

    Raises:
        ProtocolError: If the server sent a type this client does not know or
            bytes that do not decode as the declared type.
    """
    if data is None:
        return None

    try:
        descriptor = as_type(type_)
    except ValueError as e:
        raise ProtocolError(f"Unknown column type returned from server: {type_!r}") from e

    kind = ColumnType.CUSTOM if descriptor.is_custom else descriptor.type

    try:
        if kind == ColumnType.LIST:
            return unpack_list(data, descriptor.subtype1)  # type: ignore[arg-type]
        if kind == ColumnType.SET:
            return unpack_set(data, descriptor.subtype1)  # type: ignore[arg-type]
        if kind == ColumnType.MAP:
            return unpack_map(data, descriptor.subtype1, descriptor.subtype2)  # type: ignore[arg-type]
        unpacker = _SCALAR_UNPACKERS.get(kind)  # type: ignore[arg-type]
        if unpacker is None:
            raise ProtocolError(f"Unknown column type returned from server: {type_!r}")
        return unpacker(data)
    except ProtocolError:
        raise
    except (struct.error, UnicodeDecodeError, ValueError, OverflowError) as e:
        raise ProtocolError(f"Malformed {descriptor} value {data.hex()}: {e}") from e


def infer_type(value: Any) -> TypeDescriptor:
    """
    Guess the column type of a raw bind value of a simple statement.

    Integers map to BIGINT and floats to DOUBLE; pass an explicit
    ``(value, type)`` pair for INT, FLOAT, VARINT, ASCII or TIMEUUID columns.
    """
    if isinstance(value, bool):
        return TypeDescriptor(ColumnType.BOOLEAN)
    if isinstance(value, int):
        return TypeDescriptor(ColumnType.BIGINT)
    if isinstance(value, float):
        return TypeDescriptor(ColumnType.DOUBLE)
    if isinstance(value, Decimal):
        return TypeDescriptor(ColumnType.DECIMAL)
    if isinstance(value, str):
        return TypeDescriptor(ColumnType.TEXT)
    if isinstance(value, (bytes, bytearray)):
        return TypeDescriptor(ColumnType.BLOB)
    if isinstance(value, uuid.UUID):
        return TypeDescriptor(ColumnType.UUID)
    if isinstance(value, datetime):
        return TypeDescriptor(ColumnType.TIMESTAMP)
    if isinstance(value, date):
        return TypeDescriptor(ColumnType.DATE)
    if isinstance(value, time):
        return TypeDescriptor(ColumnType.TIME)
    if isinstance(value, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
        return TypeDescriptor(ColumnType.INET)
    if isinstance(value, dict):
        key, item = _first_pair(value)
        return TypeDescriptor.map_of(infer_type(key), infer_type(item))
    if isinstance(value, (set, frozenset)):
        return TypeDescriptor.set_of(infer_type(_first(value)))
    if isinstance(value, (list, tuple)):
        return TypeDescriptor.list_of(infer_type(_first(value)))
    raise InvalidArgumentError(
        f"Cannot infer a column type for {type(value).__name__}; pass (value, type)"
    )


def _first(values: Any) -> Any:
    for item in values:
        if item is not None:
            return item
    return b""


def _first_pair(values: Dict[Any, Any]) -> Tuple[Any, Any]:
    for key, item in values.items():
        if item is not None:
            return key, item
    for key in values:
        return key, b""
    return b"", b""
