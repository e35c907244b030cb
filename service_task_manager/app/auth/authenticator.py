"""
Identity provider: credential login, bearer-token authentication, logout.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

from shared.errors import AuthenticationError
from shared.logging import get_logger, set_user_context
from shared.metrics import MetricsCollector

from ..models import Actor, Role, User
from ..persistence import TaskStore
from .passwords import PasswordHasher
from .tokens import IssuedToken, TokenManager

DEMO_USERS = (
    ("Manager", "manager@example.com", Role.MANAGER),
    ("User", "user@example.com", Role.USER),
)


@dataclass(frozen=True)
class AuthContext:
    """The authenticated user plus the token that proved it."""
    user: User
    token_id: str
    expires_at: datetime

    @property
    def actor(self) -> Actor:
        return self.user.as_actor()


class Authenticator:
    """Authenticates requests against the store."""

    def __init__(
        self,
        store: TaskStore,
        tokens: TokenManager,
        hasher: PasswordHasher,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.store = store
        self.tokens = tokens
        self.hasher = hasher
        self.metrics = metrics
        self.logger = get_logger("task-manager.auth")

    def _record(self, status: str):
        if self.metrics:
            self.metrics.increment_counter("token_validations_total", status=status)

    async def login(self, email: str, password: str) -> Tuple[IssuedToken, User]:
        """Exchange credentials for an access token."""
        async with self.store.unit_of_work(readonly=True) as repo:
            user = await repo.get_user_by_email(email)

        if user is None or not self.hasher.verify(password, user.password_hash):
            self.logger.info("Login rejected", email=email.strip().lower())
            raise AuthenticationError("Invalid credentials")

        issued = self.tokens.issue(user)
        self.logger.info("User logged in", user_id=user.id, token_id=issued.token_id)
        return issued, user

    async def authenticate(self, authorization: Optional[str]) -> AuthContext:
        """Resolve an ``Authorization`` header to the calling user."""
        if not authorization or not authorization.startswith("Bearer "):
            self._record("missing")
            raise AuthenticationError("Unauthenticated")

        try:
            claims = self.tokens.verify(authorization)
        except AuthenticationError:
            self._record("invalid")
            raise

        async with self.store.unit_of_work(readonly=True) as repo:
            revoked = await repo.is_token_revoked(claims.token_id)
            user = None if revoked else await repo.get_user(claims.user_id)

        if revoked:
            self._record("revoked")
            raise AuthenticationError("Token has been revoked")
        if user is None:
            self._record("unknown_user")
            raise AuthenticationError("Unauthenticated")

        self._record("valid")
        set_user_context(str(user.id))
        return AuthContext(user=user, token_id=claims.token_id, expires_at=claims.expires_at)

    async def logout(self, context: AuthContext) -> None:
        """Revoke the token used for this request."""
        async with self.store.unit_of_work() as repo:
            await repo.revoke_token(context.token_id, context.expires_at)
        self.logger.info("User logged out", user_id=context.user.id, token_id=context.token_id)


async def seed_demo_users(store: TaskStore, hasher: PasswordHasher, password: str) -> int:
    """Create the demo manager and user accounts if they are missing."""
    created = 0
    async with store.unit_of_work() as repo:
        for name, email, role in DEMO_USERS:
            if await repo.get_user_by_email(email) is None:
                await repo.add_user(name, email, hasher.hash(password), role)
                created += 1
    return created
