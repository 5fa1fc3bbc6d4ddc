"""Content hashing utilities for fingerprinting and deduplication."""

import hashlib
from typing import BinaryIO

_READ_SIZE = 65536


def sha256(text: str) -> str:
    """
    Generate SHA-256 hash of text content.

    Args:
        text: Text to hash

    Returns:
        Hexadecimal string representation of SHA-256 hash
    """
    if not isinstance(text, str):
        raise TypeError("Input must be a string")

    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def fingerprint(data: bytes) -> str:
    """
    Fingerprint raw uploaded bytes.

    Args:
        data: File content as bytes

    Returns:
        Hex-encoded SHA-256 digest of the bytes
    """
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise TypeError("Input must be bytes")

    return hashlib.sha256(data).hexdigest()


def fingerprint_stream(stream: BinaryIO) -> str:
    """Fingerprint a binary file object without loading it fully into memory."""
    hash_obj = hashlib.sha256()
    for block in iter(lambda: stream.read(_READ_SIZE), b""):
        hash_obj.update(block)
    return hash_obj.hexdigest()
