"""Shared-secret access control for hosts reaching the tracker over HTTP.

With ``MCP_AUTH_TOKEN`` set, the device shell pushing fixes and the UI
reading status both present the same bearer token. Only its SHA-256 digest
is kept in memory after startup.
"""

import hashlib
import hmac

from fastmcp.server.auth import AccessToken, TokenVerifier

from src.config import Settings

MIN_TOKEN_LENGTH = 32
DEFAULT_CLIENT_ID = "trip-tracker-host"


def _digest(token: str) -> bytes:
    return hashlib.sha256(token.encode()).digest()


class BearerTokenVerifier(TokenVerifier):
    """Grant tracking read/write access to holders of the shared secret.

    Args:
        token: The shared secret (at least 32 characters).
        client_id: Identity recorded on accepted tokens.

    Raises:
        ValueError: If *token* is missing or too short.
    """

    GRANTED_SCOPES = ["tracking:read", "tracking:write"]

    def __init__(self, token: str, client_id: str = DEFAULT_CLIENT_ID) -> None:
        super().__init__()
        if not token or len(token) < MIN_TOKEN_LENGTH:
            raise ValueError(
                f"MCP auth token must be at least {MIN_TOKEN_LENGTH} characters, "
                f"got {len(token) if token else 0}"
            )
        self._digest = _digest(token)
        self.client_id = client_id

    @classmethod
    def from_settings(cls, settings: Settings) -> "BearerTokenVerifier | None":
        """Verifier for ``settings.mcp_auth_token``, or ``None`` when unset."""
        if not settings.mcp_auth_token:
            return None
        return cls(settings.mcp_auth_token)

    async def verify_token(self, token: str) -> AccessToken | None:
        if not hmac.compare_digest(_digest(token), self._digest):
            return None
        return AccessToken(
            token=token, client_id=self.client_id, scopes=list(self.GRANTED_SCOPES)
        )
