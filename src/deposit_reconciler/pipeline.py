"""Cursor-driven ingestion loop.

This module provides the IngestionLoop that pages through a ledger
source and applies each page to the record store, keyed by the
natural key (txid, vout).

Loop flow:
    IDLE → FETCHING → APPLYING → (FETCHING | TERMINATED | FAILED)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Literal

from deposit_reconciler.ledger.models import NATURAL_KEY
from deposit_reconciler.ledger.source import SourceFetchError
from deposit_reconciler.storage.store import StoreWriteError

if TYPE_CHECKING:
    from deposit_reconciler.ledger.models import LedgerPage
    from deposit_reconciler.ledger.source import LedgerSource
    from deposit_reconciler.storage.store import RecordStore

logger = logging.getLogger(__name__)

WriteErrorPolicy = Literal["raise", "continue"]


class IngestState(str, Enum):
    """Ingestion loop states."""

    IDLE = "idle"
    FETCHING = "fetching"
    APPLYING = "applying"
    TERMINATED = "terminated"
    FAILED = "failed"


class StopReason(str, Enum):
    """Why the loop stopped paginating."""

    EMPTY_PAGE = "empty_page"
    NO_CURSOR = "no_cursor"
    CURSOR_UNCHANGED = "cursor_unchanged"
    MAX_PAGES = "max_pages"


@dataclass
class IngestResult:
    """Summary of one ingestion run."""

    pages_fetched: int = 0
    records_seen: int = 0
    records_applied: int = 0
    cursor: str | None = None
    stop_reason: StopReason | None = None
    write_errors: list[StoreWriteError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.write_errors


StateCallback = Callable[[IngestState], None]


def _exhaustion_reason(page: LedgerPage, cursor: str | None) -> StopReason | None:
    if not page.records:
        return StopReason.EMPTY_PAGE
    if page.next_cursor is None:
        return StopReason.NO_CURSOR
    if page.next_cursor == cursor:
        return StopReason.CURSOR_UNCHANGED
    return None


class IngestionLoop:
    """Pages through a ledger source and upserts every page.

    The loop stops once the source signals exhaustion: an empty page, a
    page without a continuation cursor, or a cursor equal to the one just
    used. ``max_pages`` caps the number of fetch/apply cycles.

    Fetch failures terminate the run and propagate. Write failures follow
    ``on_write_error``: "raise" terminates and propagates, "continue"
    records the error in the result and moves on to the next page.
    Re-running after any failure is safe because upserts are keyed by
    the natural key.

    Example:
        ```python
        async with DatabaseManager(settings.database.url) as db:
            loop = IngestionLoop(FixtureLedgerSource(), RecordStore(db))
            result = await loop.run()
        ```
    """

    def __init__(
        self,
        source: LedgerSource,
        store: RecordStore,
        *,
        max_pages: int | None = None,
        on_write_error: WriteErrorPolicy = "raise",
        on_state_change: StateCallback | None = None,
    ) -> None:
        """Initialize the ingestion loop.

        Args:
            source: Ledger source to page through.
            store: Record store receiving the upserts.
            max_pages: Optional cap on fetch/apply cycles.
            on_write_error: "raise" or "continue" on StoreWriteError.
            on_state_change: Callback for state changes.
        """
        if max_pages is not None and max_pages < 1:
            raise ValueError("max_pages must be at least 1")
        if on_write_error not in ("raise", "continue"):
            raise ValueError(f"Unknown write error policy: {on_write_error!r}")

        self._source = source
        self._store = store
        self._max_pages = max_pages
        self._on_write_error = on_write_error
        self._on_state_change = on_state_change
        self._state = IngestState.IDLE

    @property
    def state(self) -> IngestState:
        """Current loop state."""
        return self._state

    def _set_state(self, state: IngestState) -> None:
        self._state = state
        if self._on_state_change:
            self._on_state_change(state)

    async def run(self, start_cursor: str | None = None) -> IngestResult:
        """Fetch and apply pages until the source is exhausted.

        Args:
            start_cursor: Cursor to resume from; None starts from the beginning.

        Returns:
            IngestResult for the run.

        Raises:
            RuntimeError: If the loop is already running.
            SourceFetchError: If a page could not be fetched.
            StoreWriteError: If a batch failed and the policy is "raise".
        """
        if self._state in (IngestState.FETCHING, IngestState.APPLYING):
            raise RuntimeError(f"Cannot start ingestion in state {self._state}")

        result = IngestResult(cursor=start_cursor)
        logger.info("Starting ingestion (cursor=%s)", start_cursor)

        try:
            await self._paginate(result)
        except asyncio.CancelledError:
            self._set_state(IngestState.FAILED)
            logger.warning("Ingestion cancelled at cursor %s", result.cursor)
            raise
        except Exception:
            if self._state != IngestState.FAILED:
                self._set_state(IngestState.FAILED)
            raise

        self._set_state(IngestState.TERMINATED)
        logger.info(
            "Ingestion finished: %d pages, %d/%d records applied, %d failed batches (%s)",
            result.pages_fetched,
            result.records_applied,
            result.records_seen,
            len(result.write_errors),
            result.stop_reason.value if result.stop_reason else "unknown",
        )
        return result

    async def _paginate(self, result: IngestResult) -> None:
        cursor = result.cursor
        while True:
            self._set_state(IngestState.FETCHING)
            try:
                page = await self._source.fetch(cursor)
            except SourceFetchError as e:
                self._set_state(IngestState.FAILED)
                logger.error("Ingestion stopped: fetch failed at cursor %s: %s", cursor, e)
                raise
            result.pages_fetched += 1
            result.records_seen += len(page.records)

            self._set_state(IngestState.APPLYING)
            if page.records:
                await self._apply(page, cursor, result)

            stop_reason = _exhaustion_reason(page, cursor)
            if page.next_cursor is not None:
                cursor = page.next_cursor
            result.cursor = cursor

            if stop_reason is None and self._max_pages is not None:
                if result.pages_fetched >= self._max_pages:
                    stop_reason = StopReason.MAX_PAGES
            if stop_reason is not None:
                result.stop_reason = stop_reason
                return

    async def _apply(self, page: LedgerPage, cursor: str | None, result: IngestResult) -> None:
        try:
            batch = await self._store.upsert_many(NATURAL_KEY, page.records)
        except StoreWriteError as e:
            result.records_applied += e.result.applied
            if self._on_write_error == "raise":
                self._set_state(IngestState.FAILED)
                logger.error("Ingestion stopped: write failed at cursor %s: %s", cursor, e)
                raise
            logger.warning("Continuing past failed batch at cursor %s: %s", cursor, e)
            result.write_errors.append(e)
            return
        result.records_applied += batch.applied
