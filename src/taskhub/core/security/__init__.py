"""Security utilities - token handling.

Re-exports all security-related functions for convenience.
"""

from src.taskhub.core.security.tokens import (
    ACCESS_TOKEN_TYPE,
    create_access_token,
    decode_token,
    extract_bearer_token,
)

__all__ = [
    "ACCESS_TOKEN_TYPE",
    "create_access_token",
    "decode_token",
    "extract_bearer_token",
]
