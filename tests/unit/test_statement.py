"""
Unit tests for statements and request bodies.
"""

import pytest

from async_cql.buffer import ByteCursor
from async_cql.constants import ConsistencyLevel, QueryFlag
from async_cql.exceptions import InvalidArgumentError, QueryError
from async_cql.statement import (
    PreparedStatement,
    SimpleStatement,
    execute_body,
    prepare_body,
    query_body,
)
from async_cql.types import ColumnDescriptor, ColumnType, TypeDescriptor


def column(name, type_):
    return ColumnDescriptor("ks", "users", name, TypeDescriptor(type_))


@pytest.fixture
def prepared():
    return PreparedStatement(
        "AQID",
        (column("id", ColumnType.INT), column("name", ColumnType.TEXT)),
        query="INSERT INTO users (id, name) VALUES (?, ?)",
    )


class TestQueryBody:
    """Test QUERY bodies."""

    def test_without_values(self):
        cursor = ByteCursor(query_body("SELECT now() FROM system.local", None, ConsistencyLevel.ONE))
        assert cursor.read_long_string() == "SELECT now() FROM system.local"
        assert cursor.read_short() == ConsistencyLevel.ONE
        assert cursor.read_byte() == 0
        assert cursor.at_end()

    def test_positional_values(self):
        body = query_body("SELECT * FROM t WHERE a = ? AND b = ?", [7, "x"], ConsistencyLevel.QUORUM)
        cursor = ByteCursor(body)
        cursor.read_long_string()
        assert cursor.read_short() == ConsistencyLevel.QUORUM
        assert cursor.read_byte() == QueryFlag.VALUES
        assert cursor.read_short() == 2
        assert cursor.read_bytes() == (7).to_bytes(8, "big")
        assert cursor.read_bytes() == b"x"

    def test_named_values_set_flag(self):
        body = query_body("SELECT * FROM t WHERE a = :a", {"a": None}, ConsistencyLevel.ONE)
        cursor = ByteCursor(body)
        cursor.read_long_string()
        cursor.read_short()
        assert cursor.read_byte() == QueryFlag.VALUES | QueryFlag.WITH_NAMES_FOR_VALUES
        assert cursor.read_short() == 1
        assert cursor.read_string() == "a"
        assert cursor.read_bytes() is None

    def test_explicit_type(self):
        body = query_body("SELECT * FROM t WHERE a = ?", [(7, ColumnType.INT)], ConsistencyLevel.ONE)
        cursor = ByteCursor(body)
        cursor.read_long_string()
        cursor.read(2 + 1 + 2)
        assert cursor.read_bytes() == b"\x00\x00\x00\x07"

    @pytest.mark.parametrize(
        "typed,expected",
        [
            ((7, "int"), b"\x00\x00\x00\x07"),
            ((7, "SMALLINT"), b"\x00\x07"),
            (("a", "ascii"), b"a"),
        ],
    )
    def test_explicit_type_name(self, typed, expected):
        body = query_body("SELECT * FROM t WHERE a = ?", [typed], ConsistencyLevel.ONE)
        cursor = ByteCursor(body)
        cursor.read_long_string()
        cursor.read(2 + 1 + 2)
        assert cursor.read_bytes() == expected

    def test_pair_of_plain_strings_is_a_list(self):
        body = query_body("SELECT * FROM t WHERE a = ?", [("x", "y")], ConsistencyLevel.ONE)
        cursor = ByteCursor(body)
        cursor.read_long_string()
        cursor.read(2 + 1 + 2)
        items = ByteCursor(cursor.read_bytes())
        assert items.read_int() == 2
        assert [items.read_bytes(), items.read_bytes()] == [b"x", b"y"]

    def test_uninferable_value(self):
        with pytest.raises(InvalidArgumentError):
            query_body("SELECT ?", [object()], ConsistencyLevel.ONE)


class TestPreparedStatement:
    """Test binding and EXECUTE bodies."""

    def test_bind_positional(self, prepared):
        assert prepared.bind([1, "bob"]) == [b"\x00\x00\x00\x01", b"bob"]

    def test_bind_named(self, prepared):
        assert prepared.bind({"name": "bob", "id": 1}) == [b"\x00\x00\x00\x01", b"bob"]

    def test_bind_null(self, prepared):
        assert prepared.bind([1, None]) == [b"\x00\x00\x00\x01", None]

    def test_missing_named_value(self, prepared):
        with pytest.raises(QueryError) as exc_info:
            prepared.bind({"id": 1})
        assert "name" in str(exc_info.value)

    def test_wrong_positional_count(self, prepared):
        with pytest.raises(QueryError):
            prepared.bind([1])

    def test_execute_body(self, prepared):
        cursor = ByteCursor(execute_body(prepared, [1, "bob"], ConsistencyLevel.LOCAL_QUORUM))
        assert cursor.read_short_bytes() == b"\x01\x02\x03"
        assert cursor.read_short() == ConsistencyLevel.LOCAL_QUORUM
        assert cursor.read_byte() == QueryFlag.VALUES
        assert cursor.read_short() == 2
        assert cursor.read_bytes() == b"\x00\x00\x00\x01"
        assert cursor.read_bytes() == b"bob"
        assert cursor.at_end()

    def test_reusable_and_immutable(self, prepared):
        with pytest.raises(AttributeError):
            prepared.id = "other"
        assert str(prepared) == "INSERT INTO users (id, name) VALUES (?, ?)"


def test_prepare_body():
    assert ByteCursor(prepare_body("SELECT 1")).read_long_string() == "SELECT 1"


def test_simple_statement_str():
    assert str(SimpleStatement("SELECT 1", ConsistencyLevel.ALL)) == "SELECT 1"
