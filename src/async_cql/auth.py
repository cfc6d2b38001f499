"""
Credential providers for SASL authentication.

The server names its authenticator class in the AUTHENTICATE frame; the
configured provider must announce the same class name as its mechanism.
"""

from abc import ABC, abstractmethod


class AuthProvider(ABC):
    """Supplies the initial token of a SASL exchange."""

    @abstractmethod
    def mechanism(self) -> str:
        """Fully qualified class name of the server authenticator."""

    @abstractmethod
    def initial_response(self) -> bytes:
        """Token sent in the first AUTH_RESPONSE."""


class ChallengeAuthProvider(AuthProvider):
    """Provider for mechanisms that answer AUTH_CHALLENGE rounds."""

    @abstractmethod
    def challenge_response(self, challenge: bytes) -> bytes:
        """
        Answer one server challenge.

        Args:
            challenge: Token from the AUTH_CHALLENGE frame.

        Returns:
            Token for the next AUTH_RESPONSE.
        """


class PlainTextAuthProvider(AuthProvider):
    """
    Username/password credentials for Cassandra's PasswordAuthenticator.

    Example:
        >>> provider = PlainTextAuthProvider("cassandra", "cassandra")
        >>> cluster = AsyncCluster(["localhost"], auth_provider=provider)
    """

    MECHANISM = "org.apache.cassandra.auth.PasswordAuthenticator"

    def __init__(self, username: str, password: str):
        self.username = username
        self.password = password

    def mechanism(self) -> str:
        return self.MECHANISM

    def initial_response(self) -> bytes:
        return b"\x00" + self.username.encode("utf-8") + b"\x00" + self.password.encode("utf-8")

    def __repr__(self) -> str:
        return f"PlainTextAuthProvider(username={self.username!r})"
