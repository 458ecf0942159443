"""
JWT service for Bookings Service.
Validates tokens issued by the auth service and turns them into identities.
"""

from typing import Optional, Dict, Any
import jwt
import logging

from bookings.core.config import config
from bookings.schemas.auth import Identity, UserRole

logger = logging.getLogger(__name__)


class TokenError(Exception):
    """Token could not be decoded or lacks required claims."""
    pass


class JWTService:
    """
    JWT service for token validation.
    """

    def __init__(self):
        self.secret_key: Optional[str] = None
        self.algorithm: Optional[str] = None
        self._initialized = False

    async def initialize(self):
        """Initialize JWT configuration from secrets."""
        if self._initialized:
            return
        self.secret_key = await config.get_jwt_secret()
        self.algorithm = await config.get_jwt_algorithm()
        self._initialized = True

    def decode_token(self, token: str) -> Dict[str, Any]:
        """
        Verify and decode a JWT token.

        Raises:
            jwt.ExpiredSignatureError: Token has expired
            TokenError: Token is invalid or misses user_id/role claims
        """
        if not self._initialized:
            raise TokenError("JWT service not initialized")

        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            raise
        except jwt.InvalidTokenError as e:
            logger.warning(f"JWT verification failed: {e}")
            raise TokenError("Invalid token")

        if not payload.get("user_id"):
            raise TokenError("Invalid token: missing user_id")
        if not payload.get("role"):
            raise TokenError("Invalid token: missing role")

        return payload

    async def get_identity(
        self,
        token: str,
        client_ip: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> Identity:
        """Decode a token into the caller's identity."""
        await self.initialize()
        payload = self.decode_token(token)

        try:
            role = UserRole(str(payload["role"]).lower())
        except ValueError:
            raise TokenError(f"Invalid token: unknown role {payload['role']}")

        return Identity(
            user_id=int(payload["user_id"]),
            role=role,
            client_ip=client_ip,
            user_agent=user_agent
        )


# Global JWT service instance
jwt_service = JWTService()
