"""Idempotency cache guarding capture operations against client retries."""

from clerkbook.idempotency.cache import (
    MAX_KEY_LENGTH,
    CachedResponse,
    IdempotencyCache,
    InvalidIdempotencyKeyError,
    sanitize_idempotency_key,
)


__all__ = [
    "MAX_KEY_LENGTH",
    "CachedResponse",
    "IdempotencyCache",
    "InvalidIdempotencyKeyError",
    "sanitize_idempotency_key",
]
