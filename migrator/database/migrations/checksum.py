"""
Checksums used to detect edits to applied migrations.
"""

import hashlib

CHECKSUM_LENGTH = 64


def compute_checksum(content: str) -> str:
    """
    Calculate the SHA-256 checksum of migration content.

    Args:
        content: Script text

    Returns:
        Hex string of the SHA-256 hash (64 characters)
    """
    return hashlib.sha256(content.encode("utf-8")).hexdigest()
