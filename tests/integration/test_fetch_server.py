"""Integration tests for HttpFetcher against a local HTTP server."""

import socket
import tempfile
import threading
from collections.abc import Generator
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

import pytest

from clerkbook.app import build_app
from clerkbook.extraction.content_store import LocalContentStore
from clerkbook.fetch.client import HttpFetcher
from clerkbook.fetch.config import FetchConfig
from clerkbook.fetch.metrics import FetchMetrics
from clerkbook.fetch.models import FetchErrorClass, RetryPolicy
from clerkbook.items.models import ItemStatus
from clerkbook.jobs.metrics import QueueMetrics
from clerkbook.ledger.metrics import LedgerMetrics
from clerkbook.settings.app import AppSettings
from clerkbook.store.metrics import StoreMetrics
from clerkbook.store.store import StateStore
from tests.helpers.fakes import LONG_TEXT, FakeEnricher, article_html


NO_RETRY = RetryPolicy(max_retries=0, base_delay_ms=0, jitter_factor=0.0)

ARTICLE = article_html("Local Article", LONG_TEXT).encode("utf-8")


class _Handler(BaseHTTPRequestHandler):
    protocol_version = "HTTP/1.0"

    def do_GET(self) -> None:  # noqa: N802
        if self.path == "/article":
            self._send(200, ARTICLE, "text/html; charset=utf-8")
        elif self.path == "/moved":
            self.send_response(301)
            self.send_header("Location", "/article")
            self.end_headers()
        elif self.path == "/loop":
            self.send_response(302)
            self.send_header("Location", "/loop")
            self.end_headers()
        elif self.path == "/huge":
            # No Content-Length, so the limit is enforced while streaming.
            self.send_response(200)
            self.send_header("Content-Type", "text/plain")
            self.end_headers()
            for _ in range(64):
                self.wfile.write(b"x" * 1024)
        else:
            self._send(404, b"missing", "text/plain")

    def _send(self, status: int, body: bytes, content_type: str) -> None:
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format: str, *args: object) -> None:  # noqa: A002
        pass


@pytest.fixture
def base_url() -> Generator[str]:
    """Serve test pages on a random local port."""
    FetchMetrics.reset()
    server = ThreadingHTTPServer(("127.0.0.1", 0), _Handler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{server.server_address[1]}"
    finally:
        server.shutdown()
        server.server_close()


def _fetcher(**config: object) -> HttpFetcher:
    return HttpFetcher(FetchConfig(retry_policy=NO_RETRY, **config))  # type: ignore[arg-type]


class TestLocalServer:
    """Tests against a real socket."""

    def test_fetches_page(self, base_url: str) -> None:
        """A page is read with its content type."""
        result = _fetcher().fetch(f"{base_url}/article")

        assert result.error is None
        assert result.status_code == 200
        assert result.body_bytes == ARTICLE
        assert result.content_type == "text/html"

    def test_follows_redirect(self, base_url: str) -> None:
        """Redirects are followed and the final URL reported."""
        result = _fetcher().fetch(f"{base_url}/moved")

        assert result.error is None
        assert result.final_url == f"{base_url}/article"

    def test_redirect_loop(self, base_url: str) -> None:
        """Redirect chains beyond the limit are classified."""
        result = _fetcher(max_redirects=3).fetch(f"{base_url}/loop")

        assert result.error is not None
        assert result.error.error_class == FetchErrorClass.TOO_MANY_REDIRECTS

    def test_streamed_body_over_limit(self, base_url: str) -> None:
        """A body without Content-Length is cut off at the size limit."""
        result = _fetcher(max_response_size_bytes=4096).fetch(f"{base_url}/huge")

        assert result.error is not None
        assert result.error.error_class == FetchErrorClass.RESPONSE_SIZE_EXCEEDED

    def test_not_found(self, base_url: str) -> None:
        """A 404 is a client error."""
        result = _fetcher().fetch(f"{base_url}/nope")

        assert result.error is not None
        assert result.error.error_class == FetchErrorClass.HTTP_4XX
        assert result.error.status_code == 404

    def test_connection_refused(self) -> None:
        """A closed port is a connection error."""
        with socket.socket() as sock:
            sock.bind(("127.0.0.1", 0))
            port = sock.getsockname()[1]

        result = _fetcher(timeout_seconds=2.0).fetch(f"http://127.0.0.1:{port}/")

        assert result.error is not None
        assert result.error.error_class == FetchErrorClass.CONNECTION_ERROR


class TestCaptureFromServer:
    """Tests for the URL pipeline over real HTTP."""

    def test_capture_and_extract(self, base_url: str) -> None:
        """A captured URL is fetched, extracted and enriched."""
        StoreMetrics.reset()
        QueueMetrics.reset()
        LedgerMetrics.reset()
        with tempfile.TemporaryDirectory() as tmpdir, StateStore(
            Path(tmpdir) / "state.sqlite"
        ) as store:
            app = build_app(
                store,
                AppSettings(_env_file=None),
                enricher=FakeEnricher(),
                fetcher=_fetcher(),
                content_store=LocalContentStore(Path(tmpdir) / "files"),
            )
            capture = app.capture.capture_url("alice", f"{base_url}/moved").result()

            app.runner.run_due()
            app.runner.run_due()

            item = app.items.get(capture.item_id)
            assert item.status == ItemStatus.ENRICHED
            assert item.title == "Local Article"
            assert item.domain == "127.0.0.1"
            assert app.queue.get_job(capture.job_id).result["final_url"] == (
                f"{base_url}/article"
            )
