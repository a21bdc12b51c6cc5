"""Runner error types and the user-facing messages they carry."""

from clerkbook.fetch.models import FetchError, FetchErrorClass
from clerkbook.jobs.runner import FailureKind, RunnerError


EMPTY_TEXT_MESSAGE = "No readable text found; try pasting the text instead"
ITEM_MISSING_MESSAGE = "Item no longer exists"


class EnrichmentError(RunnerError):
    """Raised when the enrichment call or its output is unusable."""


class ItemMissingError(RunnerError):
    """Raised when a job's item has been removed."""

    def __init__(self, item_id: str) -> None:
        """Initialize the error.

        Args:
            item_id: The missing item.
        """
        super().__init__(ITEM_MISSING_MESSAGE, kind=FailureKind.CONTENT)
        self.item_id = item_id


# (message, kind) per fetch error class.
_FETCH_FAILURES: dict[FetchErrorClass, tuple[str, FailureKind]] = {
    FetchErrorClass.NETWORK_TIMEOUT: (
        "Network error fetching URL (timed out); retry later",
        FailureKind.TRANSIENT,
    ),
    FetchErrorClass.CONNECTION_ERROR: (
        "Network error fetching URL; retry later",
        FailureKind.TRANSIENT,
    ),
    FetchErrorClass.HTTP_5XX: (
        "The site returned a server error; retry later",
        FailureKind.TRANSIENT,
    ),
    FetchErrorClass.RATE_LIMITED: (
        "The site is rate limiting requests; retry later",
        FailureKind.TRANSIENT,
    ),
    FetchErrorClass.SSL_ERROR: (
        "Could not open a secure connection to the site; try pasting the text instead",
        FailureKind.CONTENT,
    ),
    FetchErrorClass.TOO_MANY_REDIRECTS: (
        "The page redirects too many times; try pasting the text instead",
        FailureKind.CONTENT,
    ),
    FetchErrorClass.RESPONSE_SIZE_EXCEEDED: (
        "The page is too large to capture; try pasting the text instead",
        FailureKind.CONTENT,
    ),
    FetchErrorClass.UNKNOWN: (
        "Could not fetch URL; retry later",
        FailureKind.TRANSIENT,
    ),
}


def fetch_failure(error: FetchError) -> RunnerError:
    """Map a classified fetch error to a runner error with a retry hint.

    Args:
        error: Fetch error from ``HttpFetcher``.

    Returns:
        Runner error to raise from the extraction runner.
    """
    if error.error_class == FetchErrorClass.HTTP_4XX:
        status = error.status_code or 400
        return RunnerError(
            f"The site refused the request (HTTP {status}); it may need a login "
            "or block automated access. Try pasting the text instead",
            kind=FailureKind.CONTENT,
        )
    message, kind = _FETCH_FAILURES.get(
        error.error_class, _FETCH_FAILURES[FetchErrorClass.UNKNOWN]
    )
    return RunnerError(message, kind=kind)
