"""Practice accounts, client portal logins and credentials."""

from .credentials import (
    generate_api_key,
    hash_api_key,
    hash_password,
    mask_api_key,
    verify_api_key_format,
    verify_password,
)
from .service import AccountService, PracticeSignup

__all__ = [
    # Credentials
    "generate_api_key",
    "hash_api_key",
    "mask_api_key",
    "verify_api_key_format",
    "hash_password",
    "verify_password",
    # Service
    "AccountService",
    "PracticeSignup",
]
