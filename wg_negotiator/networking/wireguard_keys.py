"""
WireGuard key handling.

This module provides functionality for:
- Decoding and encoding the 32-byte keys used in configuration files
- Deriving the authority's public key from its private key

WireGuard uses Curve25519 for key exchange, which uses X25519 keys.
Keys are stored in base64 format as per WireGuard conventions.
"""

import base64
import binascii

from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey
from cryptography.hazmat.primitives import serialization


KEY_LENGTH = 32


class WireGuardKeyError(Exception):
    """Custom exception for WireGuard key operations."""
    pass


def parse_key(text: str) -> bytes:
    """
    Decode a base64 WireGuard key.

    Args:
        text: Base64-encoded key (44 characters including padding)

    Returns:
        bytes: The raw 32-byte key

    Raises:
        WireGuardKeyError: If the text is not valid base64 or has the wrong length
    """
    try:
        raw = base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as e:
        raise WireGuardKeyError(f"Invalid base64 key: {e}")

    if len(raw) != KEY_LENGTH:
        raise WireGuardKeyError(
            f"Invalid key length: expected {KEY_LENGTH} bytes, got {len(raw)}"
        )

    return raw


def format_key(raw: bytes) -> str:
    """Encode a raw 32-byte key in the base64 form used by WireGuard."""
    return base64.b64encode(raw).decode('ascii')


def derive_public_key(private_key: bytes) -> bytes:
    """
    Derive the raw public key for a raw private key.

    Raises:
        WireGuardKeyError: If the private key is invalid
    """
    try:
        private_key_obj = X25519PrivateKey.from_private_bytes(private_key)
    except (ValueError, TypeError) as e:
        raise WireGuardKeyError(f"Invalid private key: {e}")

    return private_key_obj.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw
    )
