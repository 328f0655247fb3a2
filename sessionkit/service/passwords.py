from __future__ import annotations

from argon2 import PasswordHasher, Type
from argon2.exceptions import HashingError, InvalidHashError, VerificationError, VerifyMismatchError

from sessionkit.logging import get_logger
from sessionkit.service.errors import HashingFailure

logger = get_logger(__name__)


class CredentialHasher:
    """argon2id password hashing.

    Hashes are PHC strings that embed the algorithm version, cost parameters
    and salt, so hashes made under older parameters still verify after the
    defaults change. Stateless; one instance can be shared across threads.
    """

    def __init__(self, hasher: PasswordHasher | None = None) -> None:
        self._pwd_hasher = hasher or PasswordHasher(type=Type.ID)

    def hash(self, secret: str) -> str:
        try:
            return self._pwd_hasher.hash(secret)
        except HashingError as exc:
            logger.error("password_hash_failed", error=str(exc))
            raise HashingFailure("unable to hash credential") from exc

    def verify(self, secret: str, password_hash: str) -> bool:
        """Check ``secret`` against a stored hash in constant time.

        A mismatch is ``False``; only a hash that cannot be parsed raises.
        """
        try:
            return self._pwd_hasher.verify(password_hash, secret)
        except VerifyMismatchError:
            return False
        except InvalidHashError as exc:
            logger.warning("password_hash_unparsable")
            raise HashingFailure("stored credential hash is malformed") from exc
        except VerificationError:
            # Well-formed hash that fails for a reason other than a plain mismatch
            return False

    def needs_rehash(self, password_hash: str) -> bool:
        """Whether ``password_hash`` was made with parameters other than the current ones."""
        try:
            return self._pwd_hasher.check_needs_rehash(password_hash)
        except InvalidHashError as exc:
            raise HashingFailure("stored credential hash is malformed") from exc
