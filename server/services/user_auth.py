"""Bearer token verification.

Tokens are issued by the account service; this server only checks the
signature and expiry and reads the caller's id from the ``sub`` claim.
"""

from typing import Optional, Dict, Any

from jose import jwt, JWTError

from core.config import Settings
from core.logging import get_logger

logger = get_logger(__name__)


class UserAuthService:
    """Verifies JWTs signed with the shared secret."""

    def __init__(self, settings: Settings):
        self.settings = settings

    def extract_token(self, authorization: Optional[str], cookie: Optional[str]) -> Optional[str]:
        """Prefer an ``Authorization: Bearer`` header, fall back to the session cookie."""
        if authorization:
            scheme, _, credentials = authorization.partition(" ")
            if scheme.lower() == "bearer" and credentials.strip():
                return credentials.strip()
        return cookie or None

    def verify_token(self, token: str) -> Optional[Dict[str, Any]]:
        """
        Verify JWT token and return payload.
        Returns None if token is invalid, expired, or has no subject.
        """
        try:
            payload = jwt.decode(
                token,
                self.settings.jwt_secret_key,
                algorithms=[self.settings.jwt_algorithm]
            )
        except JWTError as e:
            logger.debug("Token verification failed", error=str(e))
            return None

        if not payload.get("sub"):
            logger.debug("Token has no subject")
            return None
        return payload
