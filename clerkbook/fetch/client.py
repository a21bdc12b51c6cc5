"""HTTP client for URL captures, with retries and a response size cap."""

import time
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from io import BytesIO
from typing import Protocol
from urllib.parse import urlsplit

import httpx
import structlog

from clerkbook.fetch.config import FetchConfig
from clerkbook.fetch.constants import (
    DEFAULT_CHUNK_SIZE,
    HTTP_STATUS_BAD_REQUEST,
    HTTP_STATUS_OK_MAX,
    HTTP_STATUS_OK_MIN,
    HTTP_STATUS_SERVER_ERROR_MAX,
    HTTP_STATUS_SERVER_ERROR_MIN,
    HTTP_STATUS_TOO_MANY_REQUESTS,
    MAX_RETRY_AFTER_SECONDS,
)
from clerkbook.fetch.metrics import FetchMetrics
from clerkbook.fetch.models import (
    FetchError,
    FetchErrorClass,
    FetchResult,
    ResponseSizeExceededError,
)
from clerkbook.fetch.redact import redact_headers, redact_url_credentials


logger = structlog.get_logger()


class Fetcher(Protocol):
    """Anything that can GET a URL into a ``FetchResult``."""

    def fetch(self, url: str) -> FetchResult:
        """Fetch a URL; errors are reported in ``FetchResult.error``."""
        ...


class HttpFetcher:
    """HTTP GET with bounded timeout, redirects, retries and size limit.

    Never raises for network or HTTP problems; every failure is returned as
    a classified ``FetchError`` so callers can map it to a user message.
    """

    def __init__(
        self,
        config: FetchConfig | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the HTTP fetcher.

        Args:
            config: Fetch configuration.
            transport: Optional httpx transport (tests use ``httpx.MockTransport``).
        """
        self._config = config or FetchConfig()
        self._transport = transport
        self._metrics = FetchMetrics.get_instance()
        self._log = logger.bind(component="fetch")

    @property
    def config(self) -> FetchConfig:
        """Get the fetch configuration."""
        return self._config

    def fetch(self, url: str) -> FetchResult:
        """Fetch a URL with retry support.

        Args:
            url: The URL to fetch.

        Returns:
            FetchResult with status and body, or a classified error.
        """
        start_time_ns = time.perf_counter_ns()
        domain = urlsplit(url).hostname or ""

        log = self._log.bind(url=redact_url_credentials(url), domain=domain)

        headers = {
            "User-Agent": self._config.user_agent,
            "Accept": self._config.accept,
            "Accept-Encoding": "gzip, deflate",
        }

        result = self._execute_with_retry(url=url, headers=headers, log=log)

        duration_ms = (time.perf_counter_ns() - start_time_ns) / 1_000_000
        self._metrics.record_duration(duration_ms)

        log.info(
            "fetch_complete",
            status_code=result.status_code,
            bytes=result.body_size,
            duration_ms=round(duration_ms, 2),
            error_class=result.error.error_class.value if result.error else None,
        )

        return result

    def _execute_with_retry(
        self,
        url: str,
        headers: dict[str, str],
        log: structlog.stdlib.BoundLogger,
    ) -> FetchResult:
        """Execute request with retry logic.

        Args:
            url: URL to fetch.
            headers: Request headers.
            log: Bound logger.

        Returns:
            FetchResult from the last attempt.
        """
        policy = self._config.retry_policy
        attempt = 0
        result = self._execute_single(url=url, headers=headers, log=log, attempt=attempt)

        while result.error is not None and policy.should_retry(result.error, attempt):
            if result.error.error_class == FetchErrorClass.RATE_LIMITED:
                retry_after = result.error.retry_after
                if retry_after and retry_after > 0:
                    log.info("rate_limited", retry_after=retry_after, attempt=attempt)
                    time.sleep(min(retry_after, MAX_RETRY_AFTER_SECONDS))

            delay_ms = policy.get_delay_ms(attempt)
            attempt += 1
            self._metrics.record_retry()
            log.debug(
                "retry_attempt",
                attempt=attempt,
                delay_ms=delay_ms,
                max_retries=policy.max_retries,
            )
            time.sleep(delay_ms / 1000.0)
            result = self._execute_single(url=url, headers=headers, log=log, attempt=attempt)

        if result.error is not None:
            self._metrics.record_failure(result.error.error_class)
        return result

    def _execute_single(
        self,
        url: str,
        headers: dict[str, str],
        log: structlog.stdlib.BoundLogger,
        attempt: int,
    ) -> FetchResult:
        """Execute a single streamed HTTP request.

        Args:
            url: URL to fetch.
            headers: Request headers.
            log: Bound logger.
            attempt: Current attempt number.

        Returns:
            FetchResult from the request.
        """
        log.debug("fetch_attempt", attempt=attempt, headers=redact_headers(headers))

        try:
            with (
                httpx.Client(
                    timeout=self._config.timeout_seconds,
                    follow_redirects=True,
                    max_redirects=self._config.max_redirects,
                    transport=self._transport,
                ) as client,
                client.stream("GET", url, headers=headers) as response,
            ):
                response_headers = dict(response.headers)
                final_url = str(response.url)

                content_length = response.headers.get("content-length")
                if content_length and content_length.isdigit():
                    size = int(content_length)
                    if size > self._config.max_response_size_bytes:
                        return self._error_result(
                            url,
                            FetchErrorClass.RESPONSE_SIZE_EXCEEDED,
                            f"Response size {size} exceeds limit "
                            f"{self._config.max_response_size_bytes}",
                            status_code=response.status_code,
                            final_url=final_url,
                        )

                body = self._read_body_with_limit(response)
                self._metrics.record_request(response.status_code, len(body))

                return FetchResult(
                    status_code=response.status_code,
                    final_url=final_url,
                    headers=response_headers,
                    body_bytes=body,
                    error=self._classify_http_error(response.status_code, response.headers),
                )

        except ResponseSizeExceededError as e:
            return self._error_result(url, FetchErrorClass.RESPONSE_SIZE_EXCEEDED, str(e))

        except httpx.TimeoutException as e:
            return self._error_result(
                url, FetchErrorClass.NETWORK_TIMEOUT, f"Request timed out: {e}"
            )

        except httpx.TooManyRedirects as e:
            return self._error_result(
                url, FetchErrorClass.TOO_MANY_REDIRECTS, f"Too many redirects: {e}"
            )

        except httpx.ConnectError as e:
            text = str(e).lower()
            error_class = (
                FetchErrorClass.SSL_ERROR
                if "ssl" in text or "certificate" in text
                else FetchErrorClass.CONNECTION_ERROR
            )
            return self._error_result(url, error_class, f"Connection failed: {e}")

        except httpx.TransportError as e:
            return self._error_result(
                url, FetchErrorClass.CONNECTION_ERROR, f"Transport error: {e}"
            )

        except Exception as e:  # noqa: BLE001
            return self._error_result(url, FetchErrorClass.UNKNOWN, f"Unexpected error: {e}")

    def _error_result(
        self,
        url: str,
        error_class: FetchErrorClass,
        message: str,
        status_code: int = 0,
        final_url: str | None = None,
    ) -> FetchResult:
        return FetchResult(
            status_code=status_code,
            final_url=final_url or url,
            error=FetchError(
                error_class=error_class,
                message=message,
                status_code=status_code or None,
            ),
        )

    def _read_body_with_limit(self, response: httpx.Response) -> bytes:
        """Read response body with size limit.

        Args:
            response: Streaming HTTP response.

        Returns:
            Response body bytes.

        Raises:
            ResponseSizeExceededError: If the size limit is exceeded.
        """
        buffer = BytesIO()
        total_read = 0
        max_size = self._config.max_response_size_bytes

        for chunk in response.iter_bytes(chunk_size=DEFAULT_CHUNK_SIZE):
            total_read += len(chunk)
            if total_read > max_size:
                msg = (
                    f"Response size exceeded limit of {max_size} bytes "
                    f"(read {total_read} bytes)"
                )
                raise ResponseSizeExceededError(msg)
            buffer.write(chunk)

        return buffer.getvalue()

    def _classify_http_error(
        self,
        status_code: int,
        headers: httpx.Headers,
    ) -> FetchError | None:
        """Classify HTTP status code as error.

        Args:
            status_code: HTTP status code.
            headers: Response headers.

        Returns:
            FetchError if status indicates error, None otherwise.
        """
        if HTTP_STATUS_OK_MIN <= status_code < HTTP_STATUS_OK_MAX:
            return None

        if status_code == HTTP_STATUS_TOO_MANY_REQUESTS:
            return FetchError(
                error_class=FetchErrorClass.RATE_LIMITED,
                message="Rate limited (429 Too Many Requests)",
                status_code=status_code,
                retry_after=self._parse_retry_after(headers.get("retry-after")),
            )

        if HTTP_STATUS_BAD_REQUEST <= status_code < HTTP_STATUS_SERVER_ERROR_MIN:
            return FetchError(
                error_class=FetchErrorClass.HTTP_4XX,
                message=f"Client error ({status_code})",
                status_code=status_code,
            )

        if HTTP_STATUS_SERVER_ERROR_MIN <= status_code < HTTP_STATUS_SERVER_ERROR_MAX:
            return FetchError(
                error_class=FetchErrorClass.HTTP_5XX,
                message=f"Server error ({status_code})",
                status_code=status_code,
            )

        return FetchError(
            error_class=FetchErrorClass.UNKNOWN,
            message=f"Unexpected status ({status_code})",
            status_code=status_code,
        )

    def _parse_retry_after(self, value: str | None) -> int | None:
        """Parse Retry-After header value.

        Args:
            value: Header value (seconds or HTTP date).

        Returns:
            Seconds to wait, or None if not parseable.
        """
        if not value:
            return None

        try:
            return int(value)
        except ValueError:
            pass

        try:
            dt = parsedate_to_datetime(value)
            delta = dt - datetime.now(UTC)
            return max(0, int(delta.total_seconds()))
        except (ValueError, TypeError):
            pass

        return None
