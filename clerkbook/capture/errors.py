"""Error types raised synchronously by capture operations."""


class CaptureValidationError(ValueError):
    """Raised when capture input is rejected before anything is stored.

    Attributes:
        field: Input field that failed validation.
    """

    def __init__(self, field: str, message: str) -> None:
        """Initialize the error.

        Args:
            field: Input field name.
            message: User-facing message.
        """
        self.field = field
        self.message = message
        super().__init__(message)


class InsufficientCreditsError(Exception):
    """Raised when a requested enrichment cannot be paid for.

    This is an accounting rejection: no job was created, so there is
    nothing to retry until the balance changes.
    """

    def __init__(self, item_id: str, required: int, balance: int) -> None:
        """Initialize the error.

        Args:
            item_id: Item the enrichment was requested for.
            required: Credits the enrichment costs.
            balance: Balance at the time of the request.
        """
        self.item_id = item_id
        self.required = required
        self.balance = balance
        super().__init__(
            f"Insufficient credits for item {item_id}: "
            f"requires {required}, balance {balance}"
        )
