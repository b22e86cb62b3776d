"""Application service helpers."""

from .identity import DatabaseIdentityVerifier, identity_from_user

__all__ = ["DatabaseIdentityVerifier", "identity_from_user"]
