"""Fingerprints used by the dedup index."""

from clerkbook.store.hash import compute_content_hash, compute_text_hash
from clerkbook.store.url import canonicalize_url


def url_fingerprint(url: str) -> str:
    """Fingerprint a URL capture by its canonical form."""
    return canonicalize_url(url)


def file_fingerprint(content: bytes) -> str:
    """Fingerprint a file capture by the SHA-256 of its bytes."""
    return compute_content_hash(content)


def paste_fingerprint(text: str) -> str:
    """Fingerprint a paste by the SHA-256 of its stripped text."""
    return compute_text_hash(text)
