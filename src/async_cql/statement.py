"""
Statements and the request bodies built from them.

A statement is either a ``SimpleStatement`` (CQL text sent with QUERY) or a
``PreparedStatement`` handle returned by PREPARE and sent with EXECUTE.
"""

import base64
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from .buffer import pack_byte, pack_bytes, pack_long_string, pack_short, pack_short_bytes, pack_string
from .codec import infer_type, pack_value
from .constants import QueryFlag
from .exceptions import QueryError
from .types import COLLECTION_TYPES, ColumnDescriptor, ColumnType, TypeDescriptor, as_type

BindValues = Union[Sequence[Any], Mapping[str, Any], None]


@dataclass(frozen=True)
class SimpleStatement:
    """Plain CQL text, optionally with its own consistency level."""

    query: str
    consistency: Optional[int] = None

    def __str__(self) -> str:
        return self.query


@dataclass(frozen=True)
class PreparedStatement:
    """
    Handle of a statement prepared on the server.

    Attributes:
        id: Server statement id, base64 encoded.
        bind_columns: Bind markers in positional order.
        result_columns: Columns the statement returns, when it returns rows.
        query: CQL text the statement was prepared from.
    """

    id: str
    bind_columns: Tuple[ColumnDescriptor, ...] = ()
    result_columns: Tuple[ColumnDescriptor, ...] = ()
    query: Optional[str] = None
    consistency: Optional[int] = field(default=None, compare=False)

    @property
    def id_bytes(self) -> bytes:
        return base64.b64decode(self.id)

    @property
    def columns(self) -> Dict[str, ColumnDescriptor]:
        """Bind markers keyed by name."""
        return {column.name: column for column in self.bind_columns}

    def __str__(self) -> str:
        return self.query or self.id

    def bind(self, values: BindValues) -> List[Optional[bytes]]:
        """
        Pack bind values using the types of the bind markers.

        Args:
            values: Positional sequence or mapping keyed by marker name.

        Raises:
            QueryError: If a value is missing or too many values are given.
        """
        if values is None:
            values = ()
        if isinstance(values, Mapping):
            packed = []
            for column in self.bind_columns:
                if column.name not in values:
                    raise QueryError(f"Missing value for bound parameter {column.name}")
                packed.append(_pack_or_null(values[column.name], column.type))
            return packed

        values = list(values)
        if len(values) != len(self.bind_columns):
            raise QueryError(
                f"Statement expects {len(self.bind_columns)} bound values, got {len(values)}"
            )
        return [
            _pack_or_null(value, column.type) for value, column in zip(values, self.bind_columns)
        ]


Statement = Union[SimpleStatement, PreparedStatement]


def _pack_or_null(value: Any, type_: TypeDescriptor) -> Optional[bytes]:
    if value is None:
        return None
    return pack_value(value, type_)


def _split_typed(value: Any) -> Tuple[Any, Optional[TypeDescriptor]]:
    """Separate an explicit ``(value, type)`` pair from a raw value."""
    if isinstance(value, tuple) and len(value) == 2:
        type_ = value[1]
        if isinstance(type_, TypeDescriptor):
            return value[0], type_
        if isinstance(type_, ColumnType):
            return value[0], TypeDescriptor(type_)
        if isinstance(type_, str) and _names_type(type_):
            return value[0], as_type(type_)
    return value, None


def _names_type(name: str) -> bool:
    """CQL scalar type name such as ``"int"``, or a custom Java class name."""
    if "." in name:
        return True
    member = ColumnType.__members__.get(name.upper())
    return member is not None and member not in COLLECTION_TYPES


def _pack_simple_value(value: Any) -> Optional[bytes]:
    raw, type_ = _split_typed(value)
    if raw is None:
        return None
    return pack_value(raw, type_ or infer_type(raw))


def query_body(query: str, values: BindValues, consistency: int) -> bytes:
    """
    Body of a QUERY request.

    Values are raw Python values, whose column type is inferred, or
    ``(value, type)`` pairs. A mapping sends named values.
    """
    body = [pack_long_string(query), pack_short(consistency)]
    if not values:
        body.append(pack_byte(0))
        return b"".join(body)

    flags = QueryFlag.VALUES
    if isinstance(values, Mapping):
        flags |= QueryFlag.WITH_NAMES_FOR_VALUES
        encoded = [pack_string(name) + pack_bytes(_pack_simple_value(v)) for name, v in values.items()]
    else:
        encoded = [pack_bytes(_pack_simple_value(v)) for v in values]

    body.append(pack_byte(flags))
    body.append(pack_short(len(encoded)))
    body.extend(encoded)
    return b"".join(body)


def execute_body(statement: PreparedStatement, values: BindValues, consistency: int) -> bytes:
    """Body of an EXECUTE request: statement id then the bound values."""
    packed = statement.bind(values)
    body = [
        pack_short_bytes(statement.id_bytes),
        pack_short(consistency),
        pack_byte(QueryFlag.VALUES),
        pack_short(len(packed)),
    ]
    body.extend(pack_bytes(value) for value in packed)
    return b"".join(body)


def prepare_body(query: str) -> bytes:
    return pack_long_string(query)
