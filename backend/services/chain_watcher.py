"""Block-range scanner for `LoanCreated` events.

The watcher is the only writer of the scan cursor. The cursor moves only
after the whole batch of a range was handed to the pipeline, so a failed tick
is retried from the same block on the next tick (at-least-once delivery).
"""

import asyncio
from dataclasses import dataclass
import logging
from typing import Any, Awaitable, Callable, List, Optional

from models.cursor import ScanCursor
from models.exceptions import OracleError
from models.loans import LoanCreationEvent
from models.repositories import CursorRepository


logger = logging.getLogger(__name__)

BatchHandler = Callable[[List[LoanCreationEvent]], Awaitable[None]]


@dataclass(frozen=True)
class TickResult:
    """Summary of one watcher tick."""

    from_block: Optional[int] = None
    to_block: Optional[int] = None
    event_count: int = 0
    advanced: bool = False
    error: Optional[str] = None


class ChainWatcher:
    """Scan `(cursor, head]` each tick and feed events to a batch handler."""

    def __init__(
        self,
        ledger: Any,
        handler: BatchHandler,
        cursor_repository: Optional[CursorRepository] = None,
        max_block_range: int = 1000,
        start_block: Optional[int] = None,
        resync_lookback_blocks: int = 1000,
    ) -> None:
        """Create a watcher.

        Args:
            ledger: `LedgerClient` or any object with the same read methods.
            handler: Coroutine receiving each batch in ascending block/log order.
            cursor_repository: Durable cursor storage; in-memory only when omitted.
            max_block_range: Largest block span requested per tick.
            start_block: First block to scan when no cursor is persisted.
            resync_lookback_blocks: Without `start_block`, scan this many
                blocks behind the head on first start.
        """
        self._ledger = ledger
        self._handler = handler
        self._cursor_repository = cursor_repository
        self._max_block_range = max(1, int(max_block_range))
        self._start_block = start_block
        self._resync_lookback_blocks = max(0, int(resync_lookback_blocks))
        self._cursor: Optional[ScanCursor] = None

    @property
    def cursor(self) -> Optional[ScanCursor]:
        return self._cursor

    async def initialize(self) -> ScanCursor:
        """Restore the cursor, or derive a conservative one from the ledger head."""
        if self._cursor is not None:
            return self._cursor

        persisted = None
        if self._cursor_repository is not None:
            persisted = await asyncio.to_thread(self._cursor_repository.load)

        if persisted is not None:
            last_block = persisted
            source = "persisted"
        elif self._start_block is not None:
            last_block = max(0, int(self._start_block) - 1)
            source = "start_block"
        else:
            head = await asyncio.to_thread(self._ledger.get_block_number)
            last_block = max(0, head - self._resync_lookback_blocks)
            source = "head_lookback"

        self._cursor = ScanCursor(last_processed_block=last_block)
        logger.info("Scan cursor initialized last_processed_block=%s source=%s", last_block, source)
        return self._cursor

    async def tick(self) -> TickResult:
        """Run one scan step.

        Oracle errors (ledger unreachable, registry deferral) leave the cursor
        untouched and are reported in the result. Other exceptions propagate.
        """
        try:
            cursor = await self.initialize()
            head = await asyncio.to_thread(self._ledger.get_block_number)
        except OracleError as exc:
            logger.warning("Polling error, cursor kept (retrying next tick): %s", exc)
            return TickResult(error=str(exc))

        if head <= cursor.last_processed_block:
            return TickResult()

        from_block = cursor.last_processed_block + 1
        to_block = min(head, cursor.last_processed_block + self._max_block_range)
        logger.info("Scanning blocks %s to %s (head=%s)", from_block, to_block, head)

        try:
            events = await asyncio.to_thread(self._ledger.get_loan_created_events, from_block, to_block)
            events = sorted(events, key=lambda event: event.ordering_key)
            await self._handler(events)
        except OracleError as exc:
            logger.warning(
                "Scan of blocks %s-%s failed, cursor kept at %s: %s",
                from_block,
                to_block,
                cursor.last_processed_block,
                exc,
            )
            return TickResult(from_block=from_block, to_block=to_block, error=str(exc))

        cursor.advance(to_block)
        await self._persist(to_block)
        return TickResult(
            from_block=from_block,
            to_block=to_block,
            event_count=len(events),
            advanced=True,
        )

    async def _persist(self, block_height: int) -> None:
        if self._cursor_repository is None:
            return
        try:
            await asyncio.to_thread(self._cursor_repository.store, block_height)
        except Exception:
            # In-memory cursor stays ahead; the next successful tick stores it again.
            logger.exception("Failed to persist scan cursor block=%s", block_height)
