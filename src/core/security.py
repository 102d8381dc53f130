"""
Signing and identifier utilities.
"""

import base64
import hashlib
import hmac
import uuid


def generate_preview_id() -> str:
    """
    Generate a unique, opaque preview ID.

    Returns:
        A random UUID4 string
    """
    return str(uuid.uuid4())


def b64url_encode(data: bytes) -> str:
    """Base64url-encode without padding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_decode(value: str) -> bytes:
    """
    Decode unpadded base64url.

    Raises:
        ValueError: If the value is not valid base64url
    """
    padding = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode((value + padding).encode("ascii"))


def create_signature(message: str, secret: str) -> str:
    """
    Create an HMAC-SHA256 signature for a message.

    Args:
        message: The message to sign
        secret: Signing secret

    Returns:
        Base64url signature without padding
    """
    digest = hmac.new(secret.encode(), message.encode(), hashlib.sha256).digest()
    return b64url_encode(digest)


def verify_signature(message: str, signature: str, secret: str) -> bool:
    """
    Verify an HMAC signature in constant time.

    Length mismatches are rejected by ``hmac.compare_digest`` as well.
    """
    expected = create_signature(message, secret)
    return hmac.compare_digest(expected.encode(), signature.encode())
