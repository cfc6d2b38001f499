"""
Unit tests for the startup and authentication handshake.
"""

import pytest
from protocol_fakes import (
    FakeTransport,
    authenticate_frame,
    error_frame,
    ready_frame,
    response_frame,
    supported_frame,
    void_frame,
)

from async_cql.auth import ChallengeAuthProvider, PlainTextAuthProvider
from async_cql.buffer import ByteCursor, pack_bytes
from async_cql.compression import LZ4Compressor
from async_cql.constants import Opcode
from async_cql.exceptions import AuthenticationError, ProtocolError
from async_cql.frame import FrameCodec
from async_cql.handshake import Handshake, HandshakeState

PASSWORD_AUTHENTICATOR = "org.apache.cassandra.auth.PasswordAuthenticator"


class TokenProvider(ChallengeAuthProvider):
    """Answers each challenge by echoing it reversed."""

    def __init__(self, mechanism="com.example.TokenAuthenticator"):
        self._mechanism = mechanism
        self.challenges = []

    def mechanism(self):
        return self._mechanism

    def initial_response(self):
        return b"hello"

    def challenge_response(self, challenge):
        self.challenges.append(challenge)
        return challenge[::-1]


def run(transport, **kwargs):
    compressor = kwargs.get("compressor")
    handshake = Handshake(transport, FrameCodec(compressor), **kwargs)
    return handshake, handshake.run()


class TestStartup:
    """Test STARTUP without authentication."""

    def test_ready(self):
        transport = FakeTransport([ready_frame()])
        handshake, state = run(transport)

        assert state == HandshakeState.READY
        assert transport.sent_opcodes() == [Opcode.STARTUP]
        _, _, _, body = transport.sent()[0]
        assert ByteCursor(body).read_string_map() == {"CQL_VERSION": "3.0.0"}

    def test_ready_with_auth_provider_is_refused(self):
        transport = FakeTransport([ready_frame()])
        with pytest.raises(AuthenticationError):
            run(transport, auth_provider=PlainTextAuthProvider("user", "pass"))

    def test_unexpected_reply(self):
        transport = FakeTransport([void_frame()])
        with pytest.raises(ProtocolError) as exc_info:
            run(transport)
        assert exc_info.value.opcode == Opcode.RESULT

    def test_error_reply_raises_mapped_kind(self):
        transport = FakeTransport([error_frame(0x000A, "Invalid or unsupported protocol version")])
        with pytest.raises(ProtocolError) as exc_info:
            run(transport)
        assert exc_info.value.code == 0x000A

    def test_warm_persistent_transport_skips(self):
        transport = FakeTransport(warm=True)
        _, state = run(transport, auth_provider=PlainTextAuthProvider("user", "pass"))
        assert state == HandshakeState.SKIPPED
        assert transport.written == []


class TestCompressionNegotiation:
    """Test OPTIONS/SUPPORTED before STARTUP."""

    def test_supported_compression(self):
        transport = FakeTransport(
            [supported_frame({"COMPRESSION": ["snappy", "lz4"]}), ready_frame()]
        )
        handshake, state = run(transport, compressor=LZ4Compressor())

        assert state == HandshakeState.READY
        assert transport.sent_opcodes() == [Opcode.OPTIONS, Opcode.STARTUP]
        flags, _, _, body = transport.sent()[1]
        assert flags == 0
        assert ByteCursor(body).read_string_map() == {
            "CQL_VERSION": "3.0.0",
            "COMPRESSION": "lz4",
        }

    def test_unsupported_compression(self):
        transport = FakeTransport([supported_frame({"COMPRESSION": ["snappy"]})])
        with pytest.raises(ProtocolError) as exc_info:
            run(transport, compressor=LZ4Compressor())
        assert "lz4" in str(exc_info.value)
        assert transport.sent_opcodes() == [Opcode.OPTIONS]

    def test_options_needs_supported(self):
        transport = FakeTransport([ready_frame()])
        with pytest.raises(ProtocolError):
            run(transport, compressor=LZ4Compressor())


class TestAuthentication:
    """Test the SASL exchange."""

    def test_password_authentication(self):
        transport = FakeTransport(
            [authenticate_frame(PASSWORD_AUTHENTICATOR), response_frame(Opcode.AUTH_SUCCESS)]
        )
        _, state = run(transport, auth_provider=PlainTextAuthProvider("cassandra", "secret"))

        assert state == HandshakeState.AUTHENTICATED
        assert transport.sent_opcodes() == [Opcode.STARTUP, Opcode.AUTH_RESPONSE]
        _, _, _, body = transport.sent()[1]
        assert ByteCursor(body).read_bytes() == b"\x00cassandra\x00secret"

    def test_missing_provider(self):
        transport = FakeTransport([authenticate_frame(PASSWORD_AUTHENTICATOR)])
        with pytest.raises(AuthenticationError):
            run(transport)
        assert transport.sent_opcodes() == [Opcode.STARTUP]

    def test_mechanism_mismatch(self):
        transport = FakeTransport([authenticate_frame("com.example.KerberosAuthenticator")])
        with pytest.raises(AuthenticationError) as exc_info:
            run(transport, auth_provider=PlainTextAuthProvider("user", "pass"))
        assert "KerberosAuthenticator" in str(exc_info.value)
        assert transport.sent_opcodes() == [Opcode.STARTUP]

    def test_challenge_rounds(self):
        provider = TokenProvider()
        transport = FakeTransport(
            [
                authenticate_frame(provider.mechanism()),
                response_frame(Opcode.AUTH_CHALLENGE, pack_bytes(b"abc")),
                response_frame(Opcode.AUTH_CHALLENGE, pack_bytes(b"xyz")),
                response_frame(Opcode.AUTH_SUCCESS),
            ]
        )
        _, state = run(transport, auth_provider=provider)

        assert state == HandshakeState.AUTHENTICATED
        assert provider.challenges == [b"abc", b"xyz"]
        tokens = [ByteCursor(body).read_bytes() for _, _, _, body in transport.sent()[1:]]
        assert tokens == [b"hello", b"cba", b"zyx"]

    def test_challenge_without_challenge_provider(self):
        transport = FakeTransport(
            [
                authenticate_frame(PASSWORD_AUTHENTICATOR),
                response_frame(Opcode.AUTH_CHALLENGE, pack_bytes(b"abc")),
            ]
        )
        with pytest.raises(AuthenticationError):
            run(transport, auth_provider=PlainTextAuthProvider("user", "pass"))

    def test_bad_credentials(self):
        transport = FakeTransport(
            [
                authenticate_frame(PASSWORD_AUTHENTICATOR),
                error_frame(0x0100, "Provided username user and/or password are incorrect"),
            ]
        )
        with pytest.raises(AuthenticationError) as exc_info:
            run(transport, auth_provider=PlainTextAuthProvider("user", "wrong"))
        assert exc_info.value.code == 0x0100

    def test_unexpected_reply_during_auth(self):
        transport = FakeTransport([authenticate_frame(PASSWORD_AUTHENTICATOR), ready_frame()])
        with pytest.raises(ProtocolError):
            run(transport, auth_provider=PlainTextAuthProvider("user", "pass"))
