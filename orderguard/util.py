"""
Utility functions for OrderGuard.

Provides canonical JSON serialization, hashing, and encoding helpers.
"""

import base64
import hashlib
import json
from typing import Any, Union


def canonicalize(obj: Any) -> bytes:
    """
    Convert object to canonical JSON bytes.

    Canonical JSON:
    - Lexicographically sorted keys
    - No whitespace
    - UTF-8 encoded
    """
    s = json.dumps(obj, sort_keys=True, separators=(',', ':'), ensure_ascii=False)
    return s.encode('utf-8')


def canonicalize_str(obj: Any) -> str:
    """Return canonical JSON as string."""
    return canonicalize(obj).decode('utf-8')


def sha256_hex(data: Union[bytes, str]) -> str:
    """Compute SHA-256 hash and return as hex string."""
    if isinstance(data, str):
        data = data.encode('utf-8')
    return hashlib.sha256(data).hexdigest()


def key_fingerprint(public_key: bytes, length: int = 16) -> str:
    """Short hex fingerprint of public key bytes, for log correlation."""
    return sha256_hex(public_key)[:length]


def b64e(b: bytes) -> str:
    """Base64 encode bytes to string."""
    return base64.b64encode(b).decode('ascii')


def b64d(s: str) -> bytes:
    """Base64 decode string to bytes. Rejects non-alphabet characters."""
    return base64.b64decode(s.encode('ascii'), validate=True)
