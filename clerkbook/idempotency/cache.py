"""Per-owner idempotency cache for capture responses."""

import re
from datetime import datetime

import structlog
from pydantic import BaseModel, ConfigDict

from clerkbook.store.store import StateStore
from clerkbook.store.timestamps import format_ts, parse_ts, utc_now


logger = structlog.get_logger()

MAX_KEY_LENGTH = 128
KEY_PATTERN = re.compile(r"^[A-Za-z0-9._:-]+$")


class InvalidIdempotencyKeyError(ValueError):
    """Raised when a client-supplied idempotency key is malformed."""

    def __init__(self, reason: str) -> None:
        """Initialize the error.

        Args:
            reason: Why the key was rejected.
        """
        self.reason = reason
        super().__init__(f"Invalid idempotency key: {reason}")


class CachedResponse(BaseModel):
    """A response stored under an idempotency key."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    status_code: int
    body: str
    created_at: datetime


def sanitize_idempotency_key(key: str | None) -> str | None:
    """Validate and normalize an idempotency key.

    Args:
        key: Raw key from the caller, or None.

    Returns:
        The stripped key, or None when no key was supplied.

    Raises:
        InvalidIdempotencyKeyError: If the key is empty, too long, or uses
            characters outside ``[A-Za-z0-9._:-]``.
    """
    if key is None:
        return None
    cleaned = key.strip()
    if not cleaned:
        raise InvalidIdempotencyKeyError("empty")
    if len(cleaned) > MAX_KEY_LENGTH:
        raise InvalidIdempotencyKeyError(f"longer than {MAX_KEY_LENGTH} characters")
    if not KEY_PATTERN.match(cleaned):
        raise InvalidIdempotencyKeyError("unsupported characters")
    return cleaned


class IdempotencyCache:
    """Stores the first response produced for each (owner, key).

    Records are permanent and never overwritten; a replay returns the stored
    status code and body text unchanged.
    """

    def __init__(self, store: StateStore) -> None:
        """Initialize the cache.

        Args:
            store: Connected state store.
        """
        self._store = store
        self._log = logger.bind(component="idempotency")

    def get(self, owner_id: str, key: str) -> CachedResponse | None:
        """Look up a stored response.

        Args:
            owner_id: Request owner.
            key: Sanitized idempotency key.

        Returns:
            The cached response, or None on a miss.
        """
        row = self._store.connection.execute(
            """
            SELECT status_code, body, created_at FROM idempotency_keys
            WHERE owner_id = ? AND key = ?
            """,
            (owner_id, key),
        ).fetchone()
        if row is None:
            return None
        return CachedResponse(
            status_code=row["status_code"],
            body=row["body"],
            created_at=parse_ts(row["created_at"]),
        )

    def put(
        self,
        owner_id: str,
        key: str,
        status_code: int,
        body: str,
        now: datetime | None = None,
    ) -> bool:
        """Store a response unless one already exists for the key.

        Args:
            owner_id: Request owner.
            key: Sanitized idempotency key.
            status_code: Response status code.
            body: Exact response body text.
            now: Clock override.

        Returns:
            True if this call stored the response, False if another writer won.
        """
        with self._store.transaction("idempotency_put"):
            cursor = self._store.connection.execute(
                """
                INSERT OR IGNORE INTO idempotency_keys (
                    owner_id, key, status_code, body, created_at
                ) VALUES (?, ?, ?, ?, ?)
                """,
                (owner_id, key, status_code, body, format_ts(now or utc_now())),
            )
            stored = cursor.rowcount == 1

        if not stored:
            self._log.info("idempotency_key_exists", owner_id=owner_id, key=key)
        return stored
