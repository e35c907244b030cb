"""
JWT issuing and verification.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt

from shared.errors import AuthenticationError
from shared.logging import get_logger

from ..models import Role, User


@dataclass(frozen=True)
class IssuedToken:
    """A freshly signed access token."""
    token: str
    token_id: str
    expires_at: datetime
    token_type: str = "Bearer"


@dataclass(frozen=True)
class TokenClaims:
    """Verified claims of an access token."""
    user_id: int
    role: Role
    token_id: str
    expires_at: datetime


class TokenManager:
    """Signs and verifies access tokens."""

    def __init__(self, secret: str, algorithm: str = "HS256", issuer: str = "task-manager", ttl_seconds: int = 3600):
        self.secret = secret
        self.algorithm = algorithm
        self.issuer = issuer
        self.ttl_seconds = ttl_seconds
        self.logger = get_logger("task-manager.auth.tokens")

    def issue(self, user: User, now: Optional[datetime] = None) -> IssuedToken:
        """Sign a token for ``user``."""
        issued_at = now or datetime.now(timezone.utc)
        expires_at = issued_at + timedelta(seconds=self.ttl_seconds)
        token_id = uuid.uuid4().hex
        payload: Dict[str, Any] = {
            "iss": self.issuer,
            "sub": str(user.id),
            "role": user.role.value,
            "jti": token_id,
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
        token = jwt.encode(payload, self.secret, algorithm=self.algorithm)
        return IssuedToken(token=token, token_id=token_id, expires_at=expires_at)

    def verify(self, token: str) -> TokenClaims:
        """Decode and validate ``token``; any failure is an ``AuthenticationError``."""
        if token.startswith("Bearer "):
            token = token[7:]

        try:
            claims = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                issuer=self.issuer,
                options={"require": ["sub", "jti", "exp", "iat", "iss"]},
            )
        except jwt.ExpiredSignatureError as e:
            raise AuthenticationError("Token has expired") from e
        except jwt.InvalidTokenError as e:
            self.logger.warning("Token verification failed", error=str(e))
            raise AuthenticationError("Invalid token") from e

        try:
            return TokenClaims(
                user_id=int(claims["sub"]),
                role=Role(claims.get("role")),
                token_id=claims["jti"],
                expires_at=datetime.fromtimestamp(claims["exp"], tz=timezone.utc),
            )
        except ValueError as e:
            raise AuthenticationError("Invalid token claims") from e
