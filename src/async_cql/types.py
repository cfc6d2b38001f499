"""
Column type descriptors.

A ``TypeDescriptor`` is a closed tagged variant: its ``type`` is one of the
``ColumnType`` members, or the Java class name of a CUSTOM type. Collection
descriptors carry nested descriptors for their element, key and value types.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Optional, Union


class ColumnType(IntEnum):
    CUSTOM = 0x0000
    ASCII = 0x0001
    BIGINT = 0x0002
    BLOB = 0x0003
    BOOLEAN = 0x0004
    COUNTER = 0x0005
    DECIMAL = 0x0006
    DOUBLE = 0x0007
    FLOAT = 0x0008
    INT = 0x0009
    TEXT = 0x000A
    TIMESTAMP = 0x000B
    UUID = 0x000C
    VARCHAR = 0x000D
    VARINT = 0x000E
    TIMEUUID = 0x000F
    INET = 0x0010
    DATE = 0x0011
    TIME = 0x0012
    SMALLINT = 0x0013
    TINYINT = 0x0014
    LIST = 0x0020
    MAP = 0x0021
    SET = 0x0022


COLLECTION_TYPES = frozenset({ColumnType.LIST, ColumnType.SET, ColumnType.MAP})


@dataclass(frozen=True)
class TypeDescriptor:
    """
    Type of a column, bind marker or collection element.

    Attributes:
        type: ``ColumnType`` member, or the class name string of a CUSTOM type.
        subtype1: Element type for LIST/SET, key type for MAP.
        subtype2: Value type for MAP.
    """

    type: Union[ColumnType, str]
    subtype1: Optional["TypeDescriptor"] = None
    subtype2: Optional["TypeDescriptor"] = None

    def __post_init__(self) -> None:
        if self.type == ColumnType.MAP:
            if self.subtype1 is None or self.subtype2 is None:
                raise ValueError("MAP type requires key and value sub-types")
        elif self.type in (ColumnType.LIST, ColumnType.SET):
            if self.subtype1 is None or self.subtype2 is not None:
                raise ValueError(f"{self.type.name} type requires exactly one element sub-type")
        elif self.subtype1 is not None or self.subtype2 is not None:
            raise ValueError("Only collection types carry sub-types")

    @property
    def is_custom(self) -> bool:
        return isinstance(self.type, str)

    @property
    def is_collection(self) -> bool:
        return self.type in COLLECTION_TYPES

    @property
    def cql_name(self) -> str:
        if isinstance(self.type, str):
            return f"'{self.type}'"
        name = self.type.name.lower()
        if self.type == ColumnType.MAP:
            return f"map<{self.subtype1.cql_name}, {self.subtype2.cql_name}>"  # type: ignore[union-attr]
        if self.type in (ColumnType.LIST, ColumnType.SET):
            return f"{name}<{self.subtype1.cql_name}>"  # type: ignore[union-attr]
        return name

    def __str__(self) -> str:
        return self.cql_name

    @classmethod
    def list_of(cls, element: "TypeLike") -> "TypeDescriptor":
        return cls(ColumnType.LIST, as_type(element))

    @classmethod
    def set_of(cls, element: "TypeLike") -> "TypeDescriptor":
        return cls(ColumnType.SET, as_type(element))

    @classmethod
    def map_of(cls, key: "TypeLike", value: "TypeLike") -> "TypeDescriptor":
        return cls(ColumnType.MAP, as_type(key), as_type(value))


TypeLike = Union[TypeDescriptor, ColumnType, str]


def as_type(value: TypeLike) -> TypeDescriptor:
    """Coerce a ``ColumnType``, type code, CQL type name or custom class name."""
    if isinstance(value, TypeDescriptor):
        return value
    if isinstance(value, ColumnType):
        return TypeDescriptor(value)
    if isinstance(value, int):
        return TypeDescriptor(ColumnType(value))
    # CQL names such as "int"; Java class names of custom types always contain dots
    member = ColumnType.__members__.get(value.upper())
    if member is not None and "." not in value:
        return TypeDescriptor(member)
    return TypeDescriptor(value)


@dataclass(frozen=True)
class ColumnDescriptor:
    """Metadata of one result column or bind marker."""

    keyspace: Optional[str]
    table: Optional[str]
    name: str
    type: TypeDescriptor
