"""
Credentials

Password hashing (bcrypt), practice API keys and verification tokens.
"""

import hashlib
import secrets

import bcrypt

API_KEY_PREFIXES = ("pf_live_", "pf_test_")
BCRYPT_ROUNDS = 12


def hash_password(password: str) -> str:
    """Hash a password with bcrypt."""
    salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Check a password against a bcrypt hash."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def generate_verification_token() -> str:
    """Random 64-char hex token for email verification links."""
    return secrets.token_hex(32)


def generate_api_key(environment: str = "live") -> str:
    """
    Generate a new practice API key.

    Format: pf_{environment}_{32 random bytes as base64}

    Args:
        environment: "live" for production, "test" for sandbox

    Returns:
        New API key string
    """
    if environment not in ("live", "test"):
        raise ValueError("environment must be 'live' or 'test'")

    return f"pf_{environment}_{secrets.token_urlsafe(32)}"


def hash_api_key(api_key: str) -> str:
    """
    Hash an API key for storage.

    Uses SHA-256.
    """
    return hashlib.sha256(api_key.encode()).hexdigest()


def mask_api_key(api_key: str) -> str:
    """
    Mask API key for logging.

    Shows: pf_live_abc...xyz (prefix + first 3 chars + last 3 chars)
    """
    if len(api_key) < 15:
        return "***"

    return f"{api_key[:11]}...{api_key[-3:]}"


def verify_api_key_format(api_key: str) -> bool:
    """
    Verify API key has correct format.

    Valid formats: pf_live_* or pf_test_*
    """
    return api_key.startswith(API_KEY_PREFIXES)
