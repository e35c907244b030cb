"""
Password hashing.
"""

import hashlib
import hmac
import os

ALGORITHM = "pbkdf2_sha256"


class PasswordHasher:
    """PBKDF2-SHA256 hashes encoded as ``algorithm$iterations$salt$digest``."""

    def __init__(self, iterations: int = 120_000, salt_bytes: int = 16):
        self.iterations = iterations
        self.salt_bytes = salt_bytes

    def hash(self, password: str) -> str:
        salt = os.urandom(self.salt_bytes).hex()
        digest = self._digest(password, salt, self.iterations)
        return f"{ALGORITHM}${self.iterations}${salt}${digest}"

    def verify(self, password: str, encoded: str) -> bool:
        try:
            algorithm, iterations, salt, digest = encoded.split("$")
            rounds = int(iterations)
        except ValueError:
            return False
        if algorithm != ALGORITHM:
            return False
        return hmac.compare_digest(self._digest(password, salt, rounds), digest)

    @staticmethod
    def _digest(password: str, salt: str, iterations: int) -> str:
        return hashlib.pbkdf2_hmac(
            "sha256", password.encode("utf-8"), salt.encode("utf-8"), iterations
        ).hex()
