"""Bearer token verification with PyJWT."""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Mapping, Optional

import jwt

from .config import AuthConfig
from .errors import AuthenticationError

logger = logging.getLogger(__name__)


class TokenVerifier:
    """Validates signed JWTs and yields the caller's user id (``sub``).

    There is no anonymous or fallback identity: without a configured secret
    every token is rejected.
    """

    def __init__(self, config: Optional[AuthConfig] = None) -> None:
        self.config = config or AuthConfig()

    def decode(self, token: str) -> Mapping[str, Any]:
        if not self.config.secret:
            raise AuthenticationError("Token verification is not configured")
        options = {"require": ["sub", "exp"], "verify_aud": self.config.audience is not None}
        try:
            return jwt.decode(
                token,
                self.config.secret,
                algorithms=[self.config.algorithm],
                audience=self.config.audience,
                issuer=self.config.issuer,
                leeway=self.config.leeway,
                options=options,
            )
        except jwt.PyJWTError as e:
            logger.info(f"Rejected bearer token: {e}")
            raise AuthenticationError(str(e)) from e

    def verify_token(self, token: str) -> str:
        """Return the user id the token was issued to."""
        subject = self.decode(token).get("sub")
        if not subject:
            raise AuthenticationError("Token has no subject")
        return str(subject)


def issue_token(
    subject: str, config: AuthConfig, expires_in: int = 3600, **claims: Any
) -> str:
    """Sign a token for ``subject``; used by the CLI and tests."""
    if not config.secret:
        raise AuthenticationError("Cannot issue tokens without a secret")
    now = int(time.time())
    payload: Dict[str, Any] = {"sub": subject, "iat": now, "exp": now + expires_in, **claims}
    if config.audience:
        payload["aud"] = config.audience
    if config.issuer:
        payload["iss"] = config.issuer
    return jwt.encode(payload, config.secret, algorithm=config.algorithm)
