"""Core utilities for the Relay backend."""

from .security import TokenError, create_access_token, decode_access_token, subject_from_token

__all__ = ["TokenError", "create_access_token", "decode_access_token", "subject_from_token"]
