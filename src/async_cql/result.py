"""
RESULT frame parsing and result sets.

``parse_result`` decodes the five result kinds of a RESULT body. The
``AsyncResultSet`` wraps decoded rows for async iteration.
"""

import base64
import uuid
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple, Union

from .buffer import ByteCursor
from .codec import unpack_value
from .constants import ResultKind, RowsFlag
from .exceptions import ProtocolError
from .statement import PreparedStatement
from .types import ColumnDescriptor, ColumnType, TypeDescriptor

Row = Dict[str, Any]


@dataclass(frozen=True)
class VoidResult:
    """Result of statements that return nothing."""

    @property
    def rows(self) -> List[Row]:
        return [{"result": "success"}]


@dataclass(frozen=True)
class RowsResult:
    columns: Tuple[ColumnDescriptor, ...]
    rows: List[Row]
    paging_state: Optional[bytes] = None


@dataclass(frozen=True)
class SetKeyspaceResult:
    keyspace: Optional[str]

    @property
    def rows(self) -> List[Row]:
        return [{"keyspace": self.keyspace}]


@dataclass(frozen=True)
class SchemaChangeResult:
    """
    Result of a DDL statement.

    ``options`` holds the affected keyspace; ``name`` and ``argument_types``
    are set for table, type, function and aggregate targets.
    """

    change: Optional[str]
    target: Optional[str]
    options: Optional[str]
    name: Optional[str] = None
    argument_types: List[Optional[str]] = field(default_factory=list)

    @property
    def rows(self) -> List[Row]:
        return [{"change": self.change, "target": self.target, "options": self.options}]


Result = Union[VoidResult, RowsResult, SetKeyspaceResult, PreparedStatement, SchemaChangeResult]


@dataclass
class Response:
    """A decoded result with the frame-level extras the server sent along."""

    result: Result
    warnings: List[str] = field(default_factory=list)
    tracing_id: Optional[uuid.UUID] = None
    custom_payload: Optional[Dict[str, Optional[bytes]]] = None

    @property
    def rows(self) -> List[Row]:
        if isinstance(self.result, PreparedStatement):
            return []
        return list(self.result.rows)


def read_type(cursor: ByteCursor) -> TypeDescriptor:
    """Read an [option] type, recursing into collection sub-types."""
    code = cursor.read_short()
    if code == ColumnType.CUSTOM:
        return TypeDescriptor(cursor.read_string() or "")
    try:
        kind = ColumnType(code)
    except ValueError as e:
        raise ProtocolError(f"Unknown column type returned from server: 0x{code:04X}") from e
    if kind in (ColumnType.LIST, ColumnType.SET):
        return TypeDescriptor(kind, read_type(cursor))
    if kind == ColumnType.MAP:
        key = read_type(cursor)
        return TypeDescriptor(kind, key, read_type(cursor))
    return TypeDescriptor(kind)


def read_metadata(
    cursor: ByteCursor, with_pk_indices: bool = False
) -> Tuple[Tuple[ColumnDescriptor, ...], Optional[bytes], int]:
    """
    Read rows (or prepared bind) metadata.

    Returns:
        The column descriptors, the paging state if any, and the column count
        (which is still known when the server omitted the column specs).
    """
    flags = cursor.read_int()
    columns_count = cursor.read_int()

    if with_pk_indices:
        for _ in range(cursor.read_int()):
            cursor.read_short()

    paging_state = None
    if flags & RowsFlag.HAS_MORE_PAGES:
        paging_state = cursor.read_bytes()

    if flags & RowsFlag.NO_METADATA:
        return (), paging_state, columns_count

    keyspace = table = None
    global_spec = bool(flags & RowsFlag.GLOBAL_TABLES_SPEC)
    if global_spec:
        keyspace = cursor.read_string()
        table = cursor.read_string()

    columns = []
    for _ in range(columns_count):
        if not global_spec:
            keyspace = cursor.read_string()
            table = cursor.read_string()
        name = cursor.read_string() or ""
        columns.append(ColumnDescriptor(keyspace, table, name, read_type(cursor)))
    return tuple(columns), paging_state, columns_count


def read_rows(
    cursor: ByteCursor, fallback_columns: Sequence[ColumnDescriptor] = ()
) -> RowsResult:
    columns, paging_state, columns_count = read_metadata(cursor)
    if not columns and columns_count:
        columns = tuple(fallback_columns)

    rows = []
    for _ in range(cursor.read_int()):
        if columns:
            row = {col.name: unpack_value(cursor.read_bytes(), col.type) for col in columns}
        else:
            # no metadata to decode against; keep the raw cells
            row = {f"column_{i}": cursor.read_bytes() for i in range(columns_count)}
        rows.append(row)
    return RowsResult(columns, rows, paging_state)


def read_prepared(cursor: ByteCursor) -> PreparedStatement:
    statement_id = base64.b64encode(cursor.read_short_bytes()).decode("ascii")
    bind_columns, _, _ = read_metadata(cursor, with_pk_indices=True)
    result_columns: Tuple[ColumnDescriptor, ...] = ()
    if not cursor.at_end():
        result_columns, _, _ = read_metadata(cursor)
    return PreparedStatement(statement_id, bind_columns, result_columns)


def read_schema_change(cursor: ByteCursor) -> SchemaChangeResult:
    change = cursor.read_string()
    target = cursor.read_string()
    options = cursor.read_string()
    name = None
    argument_types: List[Optional[str]] = []
    if target in ("TABLE", "TYPE", "FUNCTION", "AGGREGATE") and not cursor.at_end():
        name = cursor.read_string()
        if target in ("FUNCTION", "AGGREGATE") and not cursor.at_end():
            argument_types = cursor.read_string_list()
    return SchemaChangeResult(change, target, options, name, argument_types)


def parse_result(
    body: bytes, raw_frame: bytes = b"", fallback_columns: Sequence[ColumnDescriptor] = ()
) -> Result:
    """
    Decode a RESULT frame body.

    Args:
        body: Frame body, after decompression and warning removal.
        raw_frame: Whole frame, quoted in errors for diagnostics.
        fallback_columns: Columns to decode rows with when the server omits
            the metadata.

    Raises:
        ProtocolError: On an unknown result kind or malformed body.
    """
    cursor = ByteCursor(body)
    kind = cursor.read_int()

    if kind == ResultKind.VOID:
        return VoidResult()
    if kind == ResultKind.ROWS:
        return read_rows(cursor, fallback_columns)
    if kind == ResultKind.SET_KEYSPACE:
        return SetKeyspaceResult(cursor.read_string())
    if kind == ResultKind.PREPARED:
        return read_prepared(cursor)
    if kind == ResultKind.SCHEMA_CHANGE:
        return read_schema_change(cursor)

    raise ProtocolError(f"Unknown result kind {kind}, full frame: {(raw_frame or body).hex()}")


class AsyncResultSet:
    """
    Async wrapper for query results.

    Provides async iteration over result rows and access to the decoded
    result and any server warnings.
    """

    def __init__(
        self,
        rows: List[Any],
        result: Optional[Result] = None,
        warnings: Optional[List[str]] = None,
    ):
        self._rows = rows
        self._index = 0
        self.result = result
        self.warnings = warnings or []
        self.tracing_id: Optional[uuid.UUID] = None

    @classmethod
    def from_response(cls, response: Response) -> "AsyncResultSet":
        result_set = cls(response.rows, response.result, response.warnings)
        result_set.tracing_id = response.tracing_id
        return result_set

    def __aiter__(self) -> AsyncIterator[Any]:
        self._index = 0
        return self

    async def __anext__(self) -> Any:
        if self._index >= len(self._rows):
            raise StopAsyncIteration

        row = self._rows[self._index]
        self._index += 1
        return row

    def __len__(self) -> int:
        return len(self._rows)

    @property
    def rows(self) -> List[Any]:
        return self._rows

    @property
    def column_names(self) -> List[str]:
        if isinstance(self.result, RowsResult):
            return [column.name for column in self.result.columns]
        return []

    def one(self) -> Optional[Any]:
        """
        Get the first row or None if empty.

        Returns:
            First row from the result set or None.
        """
        return self._rows[0] if self._rows else None

    def all(self) -> List[Any]:
        return self._rows
