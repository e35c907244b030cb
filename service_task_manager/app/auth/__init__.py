"""
Authentication for the Task Manager service: password hashing, JWT access
tokens, logout revocation and demo-user seeding.
"""

from .authenticator import AuthContext, Authenticator, seed_demo_users
from .passwords import PasswordHasher
from .tokens import IssuedToken, TokenClaims, TokenManager

__all__ = [
    "AuthContext",
    "Authenticator",
    "IssuedToken",
    "PasswordHasher",
    "TokenClaims",
    "TokenManager",
    "seed_demo_users",
]
