"""Domain exceptions for the state store.

This module defines a hierarchy of exceptions for the state store layer,
separating infrastructure errors (database issues) from domain errors
(missing rows, uniqueness conflicts).
"""


class StateStoreError(Exception):
    """Base exception for all state store errors.

    All exceptions raised by the state store should inherit from this class
    to enable consistent error handling at the application level.
    """


class ConnectionError(StateStoreError):
    """Raised when database connection fails or is not established.

    This exception indicates an infrastructure-level failure in connecting
    to or communicating with the SQLite database.
    """

    def __init__(self, message: str = "Database not connected") -> None:
        """Initialize the connection error.

        Args:
            message: Human-readable error message.
        """
        super().__init__(message)


class ItemNotFoundError(StateStoreError):
    """Raised when a requested item is not found (or not owned by the caller)."""

    def __init__(self, item_id: str) -> None:
        """Initialize the error with the missing item ID.

        Args:
            item_id: The item ID that was not found.
        """
        self.item_id = item_id
        super().__init__(f"Item not found: {item_id}")


class JobNotFoundError(StateStoreError):
    """Raised when a requested job is not found."""

    def __init__(self, job_id: str) -> None:
        """Initialize the error with the missing job ID.

        Args:
            job_id: The job ID that was not found.
        """
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class CollectionNotFoundError(StateStoreError):
    """Raised when a capture targets a collection the owner does not have."""

    def __init__(self, collection_id: str) -> None:
        """Initialize the error with the missing collection ID.

        Args:
            collection_id: The collection ID that was not found.
        """
        self.collection_id = collection_id
        super().__init__(f"Collection not found: {collection_id}")


class DuplicateFingerprintError(StateStoreError):
    """Raised when an item insert loses the (owner, source_type, fingerprint) race.

    Capture handlers catch this specific conflict and re-query the winner.
    """

    def __init__(self, owner_id: str, source_type: str, fingerprint: str) -> None:
        """Initialize the conflict error.

        Args:
            owner_id: Owner of the conflicting item.
            source_type: Source type of the conflicting item.
            fingerprint: The fingerprint that already exists.
        """
        self.owner_id = owner_id
        self.source_type = source_type
        self.fingerprint = fingerprint
        super().__init__(
            f"Item already exists for {source_type} fingerprint {fingerprint[:16]}"
        )


class MigrationError(StateStoreError):
    """Raised when a schema migration fails.

    This exception indicates that a database migration could not be
    applied or rolled back successfully.
    """

    def __init__(self, version: int, message: str) -> None:
        """Initialize the migration error.

        Args:
            version: The migration version that failed.
            message: Human-readable error message.
        """
        self.version = version
        super().__init__(f"Migration {version} failed: {message}")
