"""
HS256 JWT verification.

Tokens are issued by the external auth service. The user id is read from
``sub`` (falling back to ``id``), the role from ``role``; ``admin`` roles are
treated as moderators.
"""
from typing import Any
from uuid import UUID

import jwt
import structlog

from classifieds.application.interfaces.auth_provider import AuthenticationError, AuthProvider
from classifieds.config import settings
from classifieds.domain.entities.actor import Actor
from classifieds.domain.enums.actor_role import ActorRole

logger = structlog.get_logger(__name__)


class JwtAuthProvider(AuthProvider):
    def __init__(
        self,
        secret: str = settings.jwt_secret,
        algorithm: str = settings.jwt_algorithm,
    ) -> None:
        self._secret = secret
        self._algorithm = algorithm

    def decode(self, token: str) -> dict[str, Any]:
        try:
            return jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except jwt.ExpiredSignatureError as exc:
            raise AuthenticationError("Token has expired") from exc
        except jwt.InvalidTokenError as exc:
            raise AuthenticationError("Invalid token") from exc

    async def authenticate(self, token: str) -> Actor:
        if not token:
            raise AuthenticationError("Missing token")
        claims = self.decode(token)

        subject = claims.get("sub") or claims.get("id")
        try:
            user_id = UUID(str(subject))
        except (TypeError, ValueError) as exc:
            logger.warning("token_subject_invalid", subject=subject)
            raise AuthenticationError("Invalid token subject") from exc

        return Actor(user_id=user_id, role=ActorRole.from_claim(claims.get("role")))
