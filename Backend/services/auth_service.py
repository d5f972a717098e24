"""
Password hashing. bcrypt with an explicit cost factor; plaintext never
leaves these functions.
"""
import logging

import bcrypt

from models.errors import InternalError

BCRYPT_ROUNDS = 12

logger = logging.getLogger(__name__)


def get_password_hash(password: str) -> str:
    """Returns a salted bcrypt hash of `password`."""
    try:
        hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS))
    except ValueError as e:
        logger.error("Password hashing failed: %s", type(e).__name__)
        raise InternalError("Failed to process password.") from e
    return hashed.decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """True if `plain_password` matches the stored hash. Malformed hashes never match."""
    if not plain_password or not hashed_password:
        return False
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        return False
