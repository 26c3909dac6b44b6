"""Password hashing (bcrypt) and session token generation."""

import secrets

import bcrypt

from sleep_journal.config import BCRYPT_ROUNDS


def get_password_hash(password: str, rounds: int = BCRYPT_ROUNDS) -> str:
    """Hash a password."""
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hash."""
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


def generate_session_token() -> str:
    return secrets.token_urlsafe(32)
