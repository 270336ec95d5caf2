"""Ledger sources that yield pages of transactions with a continuation cursor."""

import asyncio
import json
import logging
from decimal import Decimal
from pathlib import Path
from typing import Protocol

from .models import LedgerPage

logger = logging.getLogger(__name__)

# Constants
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_BASE_DELAY = 1.0

RESOURCES_DIR = Path(__file__).resolve().parent.parent / "resources"
DEFAULT_FIRST_PAGE_PATH = RESOURCES_DIR / "transactions-1.json"
DEFAULT_NEXT_PAGE_PATH = RESOURCES_DIR / "transactions-2.json"


class SourceFetchError(Exception):
    """Raised when a page cannot be read or parsed."""

    def __init__(self, message: str, cursor: str | None = None) -> None:
        super().__init__(message)
        self.cursor = cursor


class LedgerSource(Protocol):
    """Anything that can fetch a page of transactions for a cursor.

    ``cursor`` is opaque: ``None`` means the start of history, any other
    value must be one previously returned as ``LedgerPage.next_cursor``.
    """

    async def fetch(self, cursor: str | None = None) -> LedgerPage: ...


class FixtureLedgerSource:
    """Stand-in source serving two pre-baked listsinceblock responses.

    A missing cursor returns the first page; any cursor returns the second.
    This simulates continuing from the ``lastblock`` of a previous response.
    """

    def __init__(
        self,
        first_page_path: Path = DEFAULT_FIRST_PAGE_PATH,
        next_page_path: Path = DEFAULT_NEXT_PAGE_PATH,
    ) -> None:
        self._first_page_path = Path(first_page_path)
        self._next_page_path = Path(next_page_path)

    async def fetch(self, cursor: str | None = None) -> LedgerPage:
        path = self._next_page_path if cursor else self._first_page_path
        try:
            raw = await asyncio.to_thread(path.read_text, encoding="utf-8")
            page = LedgerPage.from_response(json.loads(raw, parse_float=Decimal))
        except (OSError, ValueError) as e:
            raise SourceFetchError(f"Failed to read ledger page {path}: {e}", cursor=cursor) from e

        logger.debug(
            "Fetched %d transactions from %s (next_cursor=%s)",
            len(page.records),
            path.name,
            page.next_cursor,
        )
        return page


class RetryingLedgerSource:
    """Wraps a source with exponential backoff on SourceFetchError.

    Example:
        >>> source = RetryingLedgerSource(FixtureLedgerSource(), max_retries=2)
        >>> page = await source.fetch(None)
    """

    def __init__(
        self,
        inner: LedgerSource,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
        base_delay: float = DEFAULT_RETRY_BASE_DELAY,
    ) -> None:
        """Initialize the retrying wrapper.

        Args:
            inner: Source to delegate to.
            max_retries: Maximum retry attempts after the first failure.
            base_delay: Base delay in seconds (doubles with each retry).
        """
        if max_retries < 0:
            raise ValueError("max_retries must be non-negative")
        self._inner = inner
        self._max_retries = max_retries
        self._base_delay = base_delay

    async def fetch(self, cursor: str | None = None) -> LedgerPage:
        for attempt in range(self._max_retries):
            try:
                return await self._inner.fetch(cursor)
            except SourceFetchError as e:
                delay = self._base_delay * (2**attempt)
                logger.warning(
                    "Fetch attempt %d/%d failed: %s. Retrying in %.1f seconds...",
                    attempt + 1,
                    self._max_retries + 1,
                    str(e),
                    delay,
                )
                await asyncio.sleep(delay)

        # Final attempt; its error propagates.
        return await self._inner.fetch(cursor)
