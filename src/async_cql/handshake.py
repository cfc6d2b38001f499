"""
Connection startup and authentication.

The handshake moves through::

    START -> OPTIONS_NEGOTIATED -> STARTUP_SENT -> READY
                                               -> AUTHENTICATING -> AUTH_CHALLENGE* -> AUTHENTICATED

OPTIONS is only exchanged when compression is configured, to check that the
server supports the chosen algorithm.
"""

import logging
from enum import Enum
from typing import Dict, List, Optional

from .auth import AuthProvider, ChallengeAuthProvider
from .buffer import ByteCursor, pack_bytes, pack_string_map
from .compression import Compressor
from .constants import DEFAULT_CQL_VERSION, Opcode
from .exceptions import AuthenticationError, ProtocolError
from .frame import Frame, FrameCodec
from .transport import Transport

logger = logging.getLogger(__name__)


class HandshakeState(Enum):
    START = "start"
    OPTIONS_NEGOTIATED = "options_negotiated"
    STARTUP_SENT = "startup_sent"
    READY = "ready"
    AUTHENTICATING = "authenticating"
    AUTH_CHALLENGE = "auth_challenge"
    AUTHENTICATED = "authenticated"
    SKIPPED = "skipped"


class Handshake:
    """
    Runs the startup exchange on a freshly opened transport.

    Args:
        transport: Connected transport.
        codec: Frame codec carrying the negotiated compressor.
        auth_provider: Credentials, required when the server asks for them.
        compressor: Compressor to negotiate, if any.
        cql_version: Value of the STARTUP ``CQL_VERSION`` option.
    """

    def __init__(
        self,
        transport: Transport,
        codec: FrameCodec,
        auth_provider: Optional[AuthProvider] = None,
        compressor: Optional[Compressor] = None,
        cql_version: str = DEFAULT_CQL_VERSION,
    ):
        self.transport = transport
        self.codec = codec
        self.auth_provider = auth_provider
        self.compressor = compressor
        self.cql_version = cql_version
        self.state = HandshakeState.START
        self.supported: Dict[str, List[Optional[str]]] = {}

    def run(self) -> HandshakeState:
        """
        Drive the handshake to a terminal state.

        Returns:
            READY, AUTHENTICATED, or SKIPPED when a warm persistent
            connection is reused.

        Raises:
            ProtocolError: On an unexpected reply or unsupported compression.
            AuthenticationError: When credentials are missing, refused or
                do not match the server's authenticator.
        """
        if self.transport.is_persistent_and_warm():
            logger.debug("Reusing warm persistent connection, skipping handshake")
            self._transition(HandshakeState.SKIPPED)
            return self.state

        if self.compressor is not None:
            self._negotiate_options(self.compressor)

        reply = self._request(Opcode.STARTUP, pack_string_map(self.startup_options()))
        self._transition(HandshakeState.STARTUP_SENT)

        if reply.opcode == Opcode.READY:
            if self.auth_provider is not None:
                raise AuthenticationError(
                    "Server did not request authentication but an auth provider is configured"
                )
            self._transition(HandshakeState.READY)
            return self.state

        if reply.opcode == Opcode.AUTHENTICATE:
            self._authenticate(ByteCursor(reply.body).read_string() or "")
            return self.state

        raise ProtocolError(
            f"Unexpected reply to STARTUP: opcode 0x{reply.opcode:02X}", opcode=reply.opcode
        )

    def startup_options(self) -> Dict[str, str]:
        options = {"CQL_VERSION": self.cql_version}
        if self.compressor is not None:
            options["COMPRESSION"] = self.compressor.name
        return options

    def _negotiate_options(self, compressor: Compressor) -> None:
        reply = self._request(Opcode.OPTIONS)
        if reply.opcode != Opcode.SUPPORTED:
            raise ProtocolError(
                f"Expected SUPPORTED in reply to OPTIONS, got opcode 0x{reply.opcode:02X}",
                opcode=reply.opcode,
            )
        self.supported = ByteCursor(reply.body).read_string_multimap()
        available = self.supported.get("COMPRESSION", [])
        if compressor.name not in available:
            raise ProtocolError(
                f"Compression {compressor.name!r} is not supported by the server "
                f"(supported: {', '.join(c for c in available if c) or 'none'})"
            )
        self._transition(HandshakeState.OPTIONS_NEGOTIATED)

    def _authenticate(self, authenticator: str) -> None:
        self._transition(HandshakeState.AUTHENTICATING)
        provider = self.auth_provider
        if provider is None:
            raise AuthenticationError(
                f"Server requires authentication with {authenticator} but no auth provider is configured"
            )
        if provider.mechanism() != authenticator:
            raise AuthenticationError(
                f"Server authenticator {authenticator} does not match "
                f"the configured mechanism {provider.mechanism()}"
            )

        token = provider.initial_response()
        while True:
            reply = self._request(Opcode.AUTH_RESPONSE, pack_bytes(token))
            if reply.opcode == Opcode.AUTH_SUCCESS:
                self._transition(HandshakeState.AUTHENTICATED)
                return
            if reply.opcode != Opcode.AUTH_CHALLENGE:
                raise ProtocolError(
                    f"Unexpected reply during authentication: opcode 0x{reply.opcode:02X}",
                    opcode=reply.opcode,
                )
            if not isinstance(provider, ChallengeAuthProvider):
                raise AuthenticationError(
                    f"Server sent an authentication challenge that {type(provider).__name__} cannot answer"
                )
            self._transition(HandshakeState.AUTH_CHALLENGE)
            token = provider.challenge_response(ByteCursor(reply.body).read_bytes() or b"")

    def _request(self, opcode: Opcode, body: bytes = b"") -> Frame:
        self.transport.write(self.codec.encode(opcode, body))
        return self.codec.read_frame(self.transport)

    def _transition(self, state: HandshakeState) -> None:
        logger.debug(f"Handshake {self.state.value} -> {state.value}")
        self.state = state
