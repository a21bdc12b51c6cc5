"""Integration tests for capture, dedup and idempotent replay."""

import json
import tempfile
from collections.abc import Generator
from pathlib import Path
from unittest.mock import patch

import pytest

from clerkbook.app import App, build_app
from clerkbook.capture.errors import CaptureValidationError
from clerkbook.capture.models import HTTP_CREATED, HTTP_OK
from clerkbook.extraction.content_store import LocalContentStore
from clerkbook.fetch.metrics import FetchMetrics
from clerkbook.idempotency.cache import InvalidIdempotencyKeyError
from clerkbook.items.fingerprint import url_fingerprint
from clerkbook.items.models import ItemStatus, SourceType
from clerkbook.jobs.metrics import QueueMetrics
from clerkbook.jobs.models import JobStatus, JobType
from clerkbook.ledger.metrics import LedgerMetrics
from clerkbook.settings.app import AppSettings
from clerkbook.store.errors import CollectionNotFoundError
from clerkbook.store.metrics import StoreMetrics
from clerkbook.store.store import StateStore
from tests.helpers.fakes import FakeEnricher, FakeFetcher
from tests.helpers.time import FIXED_NOW


URL = "https://example.com/posts/tidy-notes"


@pytest.fixture
def tmp_dir() -> Generator[Path]:
    """Create a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def app(tmp_dir: Path) -> Generator[App]:
    """Build the application over a fresh store with fake collaborators."""
    StoreMetrics.reset()
    QueueMetrics.reset()
    LedgerMetrics.reset()
    FetchMetrics.reset()
    with StateStore(tmp_dir / "state.sqlite") as store:
        yield build_app(
            store,
            AppSettings(_env_file=None, max_upload_bytes=1024),
            enricher=FakeEnricher(),
            fetcher=FakeFetcher(),
            content_store=LocalContentStore(tmp_dir / "files"),
        )


class TestCaptureUrl:
    """Tests for capture_url."""

    def test_new_url_creates_item_and_job(self, app: App) -> None:
        """A new URL yields 201, a captured item and a queued extraction."""
        response = app.capture.capture_url("alice", URL, title="  My   notes ")

        assert response.status_code == HTTP_CREATED
        assert not response.replayed
        result = response.result()
        assert result.status == ItemStatus.CAPTURED
        assert not result.deduped

        item = app.items.get(result.item_id)
        assert item.source_type == SourceType.URL
        assert item.title == "My notes"
        assert item.domain == "example.com"

        job = app.queue.get_job(result.job_id)
        assert job.type == JobType.EXTRACT_URL
        assert job.status == JobStatus.QUEUED
        assert job.payload == {"item_id": item.id, "url": URL}

    def test_equivalent_url_is_dedup_hit(self, app: App) -> None:
        """Cosmetic URL differences resolve to the same item without a job."""
        first = app.capture.capture_url("alice", URL).result()

        response = app.capture.capture_url(
            "alice", "HTTPS://Example.com:443/posts/tidy-notes/?utm_source=x#top"
        )

        assert response.status_code == HTTP_OK
        result = response.result()
        assert result.deduped
        assert result.item_id == first.item_id
        assert result.job_id is None
        assert app.queue.count_by_status()["queued"] == 1

    def test_dedup_is_per_owner(self, app: App) -> None:
        """Another owner capturing the same URL gets their own item."""
        first = app.capture.capture_url("alice", URL).result()
        second = app.capture.capture_url("bob", URL)

        assert second.status_code == HTTP_CREATED
        assert second.result().item_id != first.item_id

    def test_lost_insert_race_resolves_to_winner(self, app: App) -> None:
        """A unique-index conflict is answered with the winning item."""
        winner = app.items.create("alice", SourceType.URL, url_fingerprint(URL), url=URL)

        with patch.object(app.dedup, "find_existing", side_effect=[None, winner]):
            response = app.capture.capture_url("alice", URL)

        assert response.status_code == HTTP_OK
        assert response.result().item_id == winner.id
        assert response.result().deduped
        assert app.queue.count_by_status()["queued"] == 0

    @pytest.mark.parametrize("url", ["", "ftp://example.com/x", "not a url"])
    def test_invalid_url_stores_nothing(self, app: App, url: str) -> None:
        """Rejected URLs leave no rows behind."""
        with pytest.raises(CaptureValidationError):
            app.capture.capture_url("alice", url)

        assert app.store.get_stats()["items"] == 0


class TestIdempotency:
    """Tests for idempotent capture replay."""

    def test_replay_returns_stored_response(self, app: App) -> None:
        """A repeated key returns the first response byte for byte."""
        first = app.capture.capture_url("alice", URL, idempotency_key="req-1")

        second = app.capture.capture_url(
            "alice", "https://example.com/other", idempotency_key="req-1"
        )

        assert second.replayed
        assert second.status_code == first.status_code
        assert second.body == first.body
        assert app.store.get_stats()["items"] == 1

    def test_replay_of_dedup_response(self, app: App) -> None:
        """A stored 200 is replayed as 200."""
        app.capture.capture_url("alice", URL)
        first = app.capture.capture_url("alice", URL, idempotency_key="req-2")

        again = app.capture.capture_url("alice", URL, idempotency_key="req-2")

        assert first.status_code == HTTP_OK
        assert again.replayed
        assert again.status_code == HTTP_OK

    def test_keys_scoped_per_owner(self, app: App) -> None:
        """The same key from another owner is a new request."""
        app.capture.capture_url("alice", URL, idempotency_key="req-1")

        response = app.capture.capture_url("bob", URL, idempotency_key="req-1")

        assert not response.replayed
        assert response.status_code == HTTP_CREATED

    def test_keys_scoped_per_operation(self, app: App) -> None:
        """A key reused for a different kind of capture is a new request."""
        url_response = app.capture.capture_url("alice", URL, idempotency_key="req-1")

        paste_response = app.capture.capture_paste(
            "alice", "Notes taken while reading.", idempotency_key="req-1"
        )

        assert not paste_response.replayed
        assert paste_response.status_code == HTTP_CREATED
        paste_item = json.loads(paste_response.body)["item_id"]
        assert paste_item != json.loads(url_response.body)["item_id"]
        assert app.store.get_stats()["items"] == 2

    def test_invalid_key_rejected(self, app: App) -> None:
        """Malformed keys are rejected before anything is stored."""
        with pytest.raises(InvalidIdempotencyKeyError):
            app.capture.capture_url("alice", URL, idempotency_key="bad key!")

        assert app.store.get_stats()["items"] == 0

    def test_body_is_json(self, app: App) -> None:
        """The stored body is the JSON capture result."""
        response = app.capture.capture_url("alice", URL, idempotency_key="req-1")

        body = json.loads(response.body)
        assert set(body) == {"item_id", "job_id", "deduped", "status", "credits"}
        assert body["status"] == "captured"


class TestCapturePaste:
    """Tests for capture_paste."""

    def test_paste_goes_straight_to_enrichment(self, app: App) -> None:
        """Pastes skip extraction and are charged for enrichment up front."""
        response = app.capture.capture_paste("alice", "  A short pasted note.  ")

        result = response.result()
        assert response.status_code == HTTP_CREATED
        assert result.credits is not None
        assert result.credits.mode == "tags_only"
        assert result.credits.required == 1
        assert result.credits.balance == 49
        assert not result.credits.insufficient

        job = app.queue.get_job(result.job_id)
        assert job.type == JobType.ENRICH_ITEM
        assert job.payload["charge_ref"] == job.id
        item = app.items.get(result.item_id)
        assert item.cleaned_text == "A short pasted note."
        assert item.raw_text == "  A short pasted note.  "

    def test_paste_dedup_ignores_surrounding_whitespace(self, app: App) -> None:
        """The same text with different padding is a dedup hit."""
        first = app.capture.capture_paste("alice", "Same text").result()

        second = app.capture.capture_paste("alice", "\n  Same text \n")

        assert second.status_code == HTTP_OK
        assert second.result().item_id == first.item_id
        assert app.ledger.get_balance("alice").balance == 49

    def test_empty_paste_rejected(self, app: App) -> None:
        """Blank pastes are rejected."""
        with pytest.raises(CaptureValidationError, match="text is required"):
            app.capture.capture_paste("alice", "   \n ")


class TestCaptureFile:
    """Tests for capture_file."""

    def test_file_stored_and_extraction_queued(self, app: App) -> None:
        """Uploads are stored and an extract_file job queued."""
        response = app.capture.capture_file("alice", b"hello file", "my notes.txt")

        result = response.result()
        assert response.status_code == HTTP_CREATED
        item = app.items.get(result.item_id)
        assert item.original_filename == "my_notes.txt"
        assert item.mime_type == "text/plain"
        job = app.queue.get_job(result.job_id)
        assert job.type == JobType.EXTRACT_FILE
        assert job.payload["file_path"] == item.file_path

    def test_same_bytes_dedup(self, app: App) -> None:
        """Identical bytes under another name are a dedup hit."""
        first = app.capture.capture_file("alice", b"hello file", "a.txt").result()

        second = app.capture.capture_file("alice", b"hello file", "b.md")

        assert second.status_code == HTTP_OK
        assert second.result().item_id == first.item_id

    def test_empty_file_rejected(self, app: App) -> None:
        """Empty uploads are rejected."""
        with pytest.raises(CaptureValidationError, match="file is empty"):
            app.capture.capture_file("alice", b"", "a.txt")

    def test_oversized_file_rejected(self, app: App) -> None:
        """Uploads over the configured cap are rejected."""
        with pytest.raises(CaptureValidationError, match="file is larger than"):
            app.capture.capture_file("alice", b"x" * 2048, "a.txt")

    def test_disallowed_type_rejected(self, app: App) -> None:
        """Only PDF, DOCX, TXT and MD uploads are accepted."""
        with pytest.raises(CaptureValidationError, match="File type not allowed"):
            app.capture.capture_file("alice", b"\x89PNG", "photo.png", "image/png")

        assert app.store.get_stats()["items"] == 0


class TestCollections:
    """Tests for capturing into collections."""

    def test_capture_attaches_to_collection(self, app: App) -> None:
        """New and deduplicated items are both attached."""
        reading = app.items.create_collection("alice", "Reading", now=FIXED_NOW)
        later = app.items.create_collection("alice", "Later", now=FIXED_NOW)

        item_id = app.capture.capture_url("alice", URL, collection_id=reading).result().item_id
        app.capture.capture_url("alice", URL, collection_id=later)

        assert app.items.collection_item_ids(reading) == [item_id]
        assert app.items.collection_item_ids(later) == [item_id]

    def test_foreign_collection_rolls_back(self, app: App) -> None:
        """A capture into someone else's collection stores nothing."""
        theirs = app.items.create_collection("bob", "Bob's")

        with pytest.raises(CollectionNotFoundError):
            app.capture.capture_url("alice", URL, collection_id=theirs)

        stats = app.store.get_stats()
        assert stats["items"] == 0
        assert stats["jobs"] == 0
