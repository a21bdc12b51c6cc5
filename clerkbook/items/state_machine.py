"""Item lifecycle state machine implementation."""

from typing import ClassVar

import structlog

from clerkbook.items.models import ItemStatus, SourceType


logger = structlog.get_logger()


class ItemStateError(Exception):
    """Raised when an invalid item status transition is attempted."""

    def __init__(self, item_id: str, from_state: ItemStatus, to_state: ItemStatus) -> None:
        """Initialize the error.

        Args:
            item_id: The item being transitioned.
            from_state: The current status.
            to_state: The attempted target status.
        """
        self.item_id = item_id
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Invalid item transition for {item_id}: "
            f"{from_state.value} -> {to_state.value}"
        )


class ItemStateMachine:
    """State machine for an item's pipeline lifecycle.

    State transitions:
        captured -> extracted: Text extracted from URL or file
        captured -> enriched: Paste enriched directly (paste sources only)
        extracted -> enriched: Enrichment stored
        enriched -> enriched: Re-enrichment replaced the previous output
        captured/extracted/enriched -> failed: Pipeline step failed
        failed -> captured: Manual retry re-runs extraction (or paste enrichment)
        failed -> extracted: Manual retry re-runs enrichment on existing text
    """

    VALID_TRANSITIONS: ClassVar[dict[ItemStatus, set[ItemStatus]]] = {
        ItemStatus.CAPTURED: {
            ItemStatus.EXTRACTED,
            ItemStatus.ENRICHED,
            ItemStatus.FAILED,
        },
        ItemStatus.EXTRACTED: {
            ItemStatus.ENRICHED,
            ItemStatus.FAILED,
        },
        ItemStatus.ENRICHED: {
            ItemStatus.ENRICHED,
            ItemStatus.FAILED,
        },
        ItemStatus.FAILED: {
            ItemStatus.CAPTURED,
            ItemStatus.EXTRACTED,
        },
    }

    # Transitions that only some source types may take.
    SOURCE_RESTRICTED: ClassVar[dict[tuple[ItemStatus, ItemStatus], set[SourceType]]] = {
        (ItemStatus.CAPTURED, ItemStatus.ENRICHED): {SourceType.PASTE},
        (ItemStatus.CAPTURED, ItemStatus.EXTRACTED): {SourceType.URL, SourceType.FILE},
        (ItemStatus.FAILED, ItemStatus.EXTRACTED): {SourceType.URL, SourceType.FILE},
    }

    def __init__(self, item_id: str, status: ItemStatus, source_type: SourceType) -> None:
        """Initialize the state machine at the item's stored status.

        Args:
            item_id: Item identifier for logging.
            status: Current stored status.
            source_type: The item's source type.
        """
        self._item_id = item_id
        self._state = status
        self._source_type = source_type
        self._log = logger.bind(component="items", item_id=item_id)

    @property
    def state(self) -> ItemStatus:
        """Get the current state."""
        return self._state

    @property
    def source_type(self) -> SourceType:
        """Get the item's source type."""
        return self._source_type

    def can_transition(self, to_state: ItemStatus) -> bool:
        """Check if a transition to the given state is valid.

        Args:
            to_state: The target state.

        Returns:
            True if the transition is valid, False otherwise.
        """
        if to_state not in self.VALID_TRANSITIONS.get(self._state, set()):
            return False
        allowed_sources = self.SOURCE_RESTRICTED.get((self._state, to_state))
        return allowed_sources is None or self._source_type in allowed_sources

    def transition(self, to_state: ItemStatus) -> None:
        """Transition to a new state.

        Args:
            to_state: The target state.

        Raises:
            ItemStateError: If the transition is invalid.
        """
        if not self.can_transition(to_state):
            self._log.error(
                "invariant_violation",
                error_type="illegal_state_transition",
                from_state=self._state.value,
                to_state=to_state.value,
                source_type=self._source_type.value,
            )
            raise ItemStateError(self._item_id, self._state, to_state)

        old_state = self._state
        self._state = to_state
        self._log.debug(
            "item_state_transition",
            from_state=old_state.value,
            to_state=to_state.value,
        )

    def retry_target(self, has_text: bool) -> ItemStatus:
        """Status a failed item re-enters on manual retry.

        Args:
            has_text: Whether the item already has extracted text.

        Returns:
            ``extracted`` when enrichment alone can be re-run, else ``captured``.
        """
        if self._source_type != SourceType.PASTE and has_text:
            return ItemStatus.EXTRACTED
        return ItemStatus.CAPTURED

    def is_failed(self) -> bool:
        """Check if the item is failed."""
        return self._state == ItemStatus.FAILED

    def is_enriched(self) -> bool:
        """Check if the item is enriched."""
        return self._state == ItemStatus.ENRICHED
