"""Public slug generation."""

import base64
import secrets

SLUG_BYTES = 6


def generate_public_slug() -> str:
    """Return an 8-character URL-safe token from 6 random bytes.

    6 bytes encode to exactly 8 base64 characters, so there is no padding.
    Uniqueness is enforced by the store, not here.
    """
    return base64.urlsafe_b64encode(secrets.token_bytes(SLUG_BYTES)).decode("ascii")
