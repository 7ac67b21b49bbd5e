"""
Join-credential minting for token-based call providers.

Tokens are HS256 JWTs; the signing secret stays on the server and only the
encoded token is handed to clients.
"""
import time
from typing import Iterable, Optional

from jose import jwt

from core.exceptions import ConfigurationError

SERVER_PERMISSIONS = ["allow_join", "allow_mod"]
PARTICIPANT_PERMISSIONS = ["allow_join"]
DEFAULT_EXPIRY_SECONDS = 24 * 60 * 60
TOKEN_VERSION = 2


class TokenMinter:
    """Mints provider join tokens bound to one API identity."""

    def __init__(self, api_key: Optional[str], secret: Optional[str]):
        if not api_key or not secret:
            raise ConfigurationError("Call provider credentials not configured")
        self.api_key = api_key
        self._secret = secret

    def mint(
        self,
        permissions: Iterable[str],
        expiry_seconds: int = DEFAULT_EXPIRY_SECONDS,
        issued_at: Optional[int] = None
    ) -> str:
        """
        Encode {apikey, permissions, version, iat, exp}.

        Args:
            permissions: e.g. PARTICIPANT_PERMISSIONS
            expiry_seconds: validity; exp is exactly iat + expiry_seconds
            issued_at: epoch seconds, defaults to now

        Returns:
            Compact JWT string
        """
        iat = int(time.time()) if issued_at is None else int(issued_at)
        payload = {
            "apikey": self.api_key,
            "permissions": list(permissions),
            "version": TOKEN_VERSION,
            "iat": iat,
            "exp": iat + int(expiry_seconds),
        }
        return jwt.encode(payload, self._secret, algorithm="HS256", headers={"typ": "JWT"})
