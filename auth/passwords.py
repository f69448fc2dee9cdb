"""Password hashing with bcrypt.

Login must cost the same whether or not the account exists, so every
attempt runs exactly one bcrypt comparison. When there is no stored hash
the comparison runs against DUMMY_HASH and the result is discarded.
"""

import logging

import bcrypt

logger = logging.getLogger(__name__)

# bcrypt only reads the first 72 bytes of input
BCRYPT_MAX_BYTES = 72

DEFAULT_ROUNDS = 12

# Cost-12 hash of a throwaway value. Never matches a real password.
DUMMY_HASH = "$2a$12$LQv3c1yqBWVHxkd0LHAkCOYz6TtxMQJqhN8/X4.6FU8qB.6gJDOzS"


def _encode(password: str) -> bytes:
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


class PasswordHasher:
    """bcrypt wrapper with a tunable cost factor."""

    def __init__(self, rounds: int = DEFAULT_ROUNDS):
        self.rounds = rounds
        if rounds == DEFAULT_ROUNDS:
            self._dummy_hash = DUMMY_HASH
        else:
            # Dummy must cost the same as real hashes
            self._dummy_hash = self.hash("dummy-password-never-matches")
            logger.info(f"Generated dummy hash for bcrypt cost {rounds}")

    @property
    def dummy_hash(self) -> str:
        return self._dummy_hash

    def hash(self, password: str) -> str:
        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(_encode(password), salt).decode("utf-8")

    def verify(self, password: str, password_hash: str) -> bool:
        """Check password against hash using bcrypt's own comparison.

        Raises ValueError if password_hash is not a bcrypt hash.
        """
        return bcrypt.checkpw(_encode(password), password_hash.encode("utf-8"))

    def verify_or_dummy(self, password: str, password_hash: str | None) -> bool:
        """One comparison, always. False when there was no real hash to match."""
        if password_hash is None:
            self.verify(password, self.dummy_hash)
            return False
        return self.verify(password, password_hash)
