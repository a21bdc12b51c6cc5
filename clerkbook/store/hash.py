"""Content hashing utilities for capture deduplication.

File and paste captures are fingerprinted by a SHA-256 digest so that
resubmitting the same bytes resolves to the existing item.
"""

import hashlib


def compute_content_hash(data: bytes) -> str:
    """Compute the SHA-256 hex digest of raw bytes.

    Args:
        data: Raw content bytes (e.g. an uploaded file).

    Returns:
        Full 64-character hex digest.

    Examples:
        >>> compute_content_hash(b"")
        'e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855'
    """
    return hashlib.sha256(data).hexdigest()


def compute_text_hash(text: str) -> str:
    """Compute the SHA-256 hex digest of text, ignoring surrounding whitespace.

    Args:
        text: Text content (e.g. a paste).

    Returns:
        Full 64-character hex digest of the stripped UTF-8 text.
    """
    return compute_content_hash(text.strip().encode("utf-8"))
