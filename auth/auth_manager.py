"""
Bearer token issuing and verification.

Credentials live in the external registration flow; this module only mints
and checks the HS256 tokens the gateway accepts. The token carries the actor
id in "sub" and nothing else that is trusted: roles are always re-read from
the identity store.
"""

import os
from datetime import timedelta
from typing import Optional

import dotenv
import jwt
from loguru import logger

from core.timeutils import utcnow

dotenv.load_dotenv()


class AuthManager:
    """Authentication manager"""

    def __init__(self, jwt_secret: Optional[str] = None, jwt_expiry: Optional[int] = None):
        self.jwt_secret = jwt_secret or os.getenv("JWT_SECRET")
        if not self.jwt_secret:
            raise ValueError("JWT_SECRET environment variable not set. Cannot initialize auth system.")
        if len(self.jwt_secret) < 32:
            logger.warning("JWT_SECRET is less than 32 bytes - use a stronger secret!")
        self.jwt_expiry = jwt_expiry or int(os.getenv("JWT_EXPIRY_SECONDS", "3600"))
        logger.info("AuthManager initialized")

    # ==================== TOKENS ====================

    def create_access_token(self, actor_id: str, expires_in: Optional[int] = None) -> str:
        """Issue an access token for an actor id."""
        expiry = expires_in if expires_in is not None else self.jwt_expiry
        now = utcnow()
        token = jwt.encode(
            {
                "sub": actor_id,
                "iat": now,
                "exp": now + timedelta(seconds=expiry)
            },
            self.jwt_secret,
            algorithm="HS256"
        )
        logger.debug(f"[TOKEN] Issued access token for {actor_id}")
        return token

    def verify_token(self, token: str) -> Optional[dict]:
        """Verify JWT token and return payload"""
        try:
            logger.debug("[TOKEN_VERIFY] Verifying JWT token")
            payload = jwt.decode(token, self.jwt_secret, algorithms=["HS256"])
        except jwt.ExpiredSignatureError:
            logger.warning("[TOKEN_VERIFY] Token expired")
            return None
        except jwt.InvalidTokenError as e:
            logger.warning(f"[TOKEN_VERIFY] Invalid token: {e}")
            return None

        if not payload.get("sub"):
            logger.warning("[TOKEN_VERIFY] Token has no subject")
            return None
        return payload


_auth_manager: Optional[AuthManager] = None


def get_auth_manager() -> AuthManager:
    """Process-wide AuthManager, created on first use."""
    global _auth_manager
    if _auth_manager is None:
        _auth_manager = AuthManager()
    return _auth_manager


def reset_auth_manager():
    """Forget the cached manager so a changed JWT_SECRET takes effect."""
    global _auth_manager
    _auth_manager = None
