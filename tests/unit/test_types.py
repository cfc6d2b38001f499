"""
Unit tests for type descriptors and credential providers.
"""

import pytest

from async_cql.auth import AuthProvider, PlainTextAuthProvider
from async_cql.types import ColumnType, TypeDescriptor, as_type


class TestTypeDescriptor:
    """Test type descriptor construction."""

    def test_collection_requires_subtypes(self):
        with pytest.raises(ValueError):
            TypeDescriptor(ColumnType.MAP, TypeDescriptor(ColumnType.INT))
        with pytest.raises(ValueError):
            TypeDescriptor(ColumnType.LIST)

    def test_scalar_rejects_subtypes(self):
        with pytest.raises(ValueError):
            TypeDescriptor(ColumnType.INT, TypeDescriptor(ColumnType.INT))

    def test_cql_name(self):
        type_ = TypeDescriptor.map_of("text", TypeDescriptor.set_of(ColumnType.INT))
        assert str(type_) == "map<text, set<int>>"

    def test_custom(self):
        type_ = as_type("org.apache.cassandra.db.marshal.DurationType")
        assert type_.is_custom
        assert not type_.is_collection

    def test_as_type(self):
        assert as_type(0x0009) == TypeDescriptor(ColumnType.INT)
        assert as_type("VARCHAR") == TypeDescriptor(ColumnType.VARCHAR)
        list_type = TypeDescriptor.list_of("int")
        assert as_type(list_type) is list_type


class TestPlainTextAuthProvider:
    """Test password credentials."""

    def test_initial_response(self):
        provider = PlainTextAuthProvider("cassandra", "s3cret")
        assert isinstance(provider, AuthProvider)
        assert provider.mechanism() == "org.apache.cassandra.auth.PasswordAuthenticator"
        assert provider.initial_response() == b"\x00cassandra\x00s3cret"

    def test_repr_hides_password(self):
        assert "s3cret" not in repr(PlainTextAuthProvider("cassandra", "s3cret"))
