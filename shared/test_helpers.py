"""
Test helper functions and factory methods for the Task Manager API.
"""

import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import jwt


class TestDataFactory:
    """Factory for creating test data."""

    @staticmethod
    def task_payload(
        title: str = "Write quarterly report",
        due_in_days: int = 7,
        status: str = "pending",
        assignee_id: Optional[int] = None,
        dependency_ids: Optional[List[int]] = None,
        today: Optional[date] = None,
        **extra: Any,
    ) -> Dict[str, Any]:
        """Build a JSON body for ``POST /tasks``."""
        due = (today or date.today()) + timedelta(days=due_in_days)
        payload: Dict[str, Any] = {
            "title": title,
            "description": f"{title} description",
            "due_date": due.isoformat(),
            "status": status,
        }
        if assignee_id is not None:
            payload["assignee_id"] = assignee_id
        if dependency_ids is not None:
            payload["dependency_ids"] = dependency_ids
        payload.update(extra)
        return payload


class MockTokenGenerator:
    """Generate JWTs outside the service, for forged or expired token tests."""

    def __init__(self, secret: str = "test-secret", issuer: str = "task-manager"):
        self.secret = secret
        self.issuer = issuer

    def generate_access_token(
        self,
        user_id: int,
        role: str = "user",
        expires_in: int = 3600,
        issued_at: Optional[datetime] = None,
        **claims: Any,
    ) -> str:
        """Generate an access token for ``user_id``."""
        now = issued_at or datetime.now(timezone.utc)
        payload: Dict[str, Any] = {
            "iss": self.issuer,
            "sub": str(user_id),
            "role": role,
            "jti": uuid.uuid4().hex,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(seconds=expires_in)).timestamp()),
        }
        payload.update(claims)
        return jwt.encode(payload, self.secret, algorithm="HS256")

    def generate_expired_token(self, user_id: int, role: str = "user") -> str:
        """Generate a token that expired an hour ago."""
        issued_at = datetime.now(timezone.utc) - timedelta(hours=2)
        return self.generate_access_token(user_id, role, expires_in=3600, issued_at=issued_at)


class TestEnvironment:
    """Test environment configuration."""

    @staticmethod
    def get_mock_config() -> Dict[str, Any]:
        """Get configuration overrides used by the test suites."""
        return {
            "env": "test",
            "log_level": "warning",
            "storage_backend": "memory",
            "jwt_secret": "test-secret",
            "password_hash_iterations": 1000,
            "seed_demo_users": True,
        }


def auth_headers(token: str) -> Dict[str, str]:
    """Authorization header for a bearer token."""
    return {"Authorization": f"Bearer {token}"}
