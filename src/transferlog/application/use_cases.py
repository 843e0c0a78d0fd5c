from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Optional

from ..config import Settings
from ..domain.decoding import TRANSFER_T0, normalize_address
from ..domain.models import IndexedFilter, LogEntry, TransferEvent, newest_first_key
from ..domain.value_types import Address
from ..ports.rpc import LedgerRPC
from .enrichment import TimestampEnricher
from .fetching import LogRangeFetcher, check_bounds
from .merging import DualFilterMerger

logger = logging.getLogger(__name__)

_WHOLE_BLOCK_LIMIT = 1_000_000


class TransferHistoryService:
    """
    Transfer history for one ledger node:
      fetch (chunked) → merge (participant) → enrich (timestamps) → newest first.
    Nothing is cached between calls.
    """

    def __init__(self, rpc: LedgerRPC, settings: Optional[Settings] = None) -> None:
        self.rpc = rpc
        self.settings = settings or Settings()
        self.fetcher = LogRangeFetcher(
            rpc, initial_chunk=self.settings.initial_chunk, min_chunk=self.settings.min_chunk,
        )
        self.merger = DualFilterMerger(self.fetcher)
        self.enricher = TimestampEnricher(rpc, concurrency=self.settings.timestamp_concurrency)

    async def get_transfer_history(
        self,
        token: str,
        address: Optional[str] = None,
        *,
        from_block: Optional[int] = None,
        to_block: Optional[int] = None,
        limit: int = 100,
    ) -> list[TransferEvent]:
        """Transfers of `token`, optionally only those sent or received by `address`."""
        tok = normalize_address(token)
        if address is None:
            logs = await self.fetcher.fetch(tok, TRANSFER_T0, None, from_block or 0, to_block, limit)
        else:
            logs = await self.merger.fetch_for_participant(
                tok, TRANSFER_T0, normalize_address(address), from_block or 0, to_block, limit,
            )
        return await self.enricher.enrich(tok, logs)

    async def get_incoming_transfers(
        self,
        token: str,
        address: str,
        *,
        from_block: Optional[int] = None,
        to_block: Optional[int] = None,
        limit: int = 100,
    ) -> list[TransferEvent]:
        tok = normalize_address(token)
        flt = IndexedFilter.recipient(normalize_address(address))
        logs = await self.fetcher.fetch(tok, TRANSFER_T0, flt, from_block or 0, to_block, limit)
        return await self.enricher.enrich(tok, logs)

    async def get_outgoing_transfers(
        self,
        token: str,
        address: str,
        *,
        from_block: Optional[int] = None,
        to_block: Optional[int] = None,
        limit: int = 100,
    ) -> list[TransferEvent]:
        tok = normalize_address(token)
        flt = IndexedFilter.sender(normalize_address(address))
        logs = await self.fetcher.fetch(tok, TRANSFER_T0, flt, from_block or 0, to_block, limit)
        return await self.enricher.enrich(tok, logs)

    async def get_logs(
        self,
        contract: str,
        *,
        from_block: Optional[int] = None,
        to_block: Optional[int] = None,
        limit: int = 100,
    ) -> list[LogEntry]:
        """Raw logs of any event, single upstream call; the newest `limit`, oldest first.

        Without `from_block` the lookback is capped at `settings.default_window`
        blocks below the upper bound.
        """
        addr = normalize_address(contract)
        if to_block is None:
            to_block = await self.rpc.latest_block()
        if from_block is None:
            from_block = max(0, to_block - self.settings.default_window)
        check_bounds(from_block, to_block, limit)
        logs = await self.rpc.get_logs(addr, [], from_block, to_block)
        return sorted(logs, key=newest_first_key)[-limit:]

    async def _transfer_logs(
        self, tok: Address, who: Optional[Address], from_block: int, to_block: int, limit: int,
    ) -> list[LogEntry]:
        if who is None:
            return await self.fetcher.fetch(tok, TRANSFER_T0, None, from_block, to_block, limit)
        return await self.merger.fetch_for_participant(tok, TRANSFER_T0, who, from_block, to_block, limit)

    async def _drain(
        self, tok: Address, who: Optional[Address], from_block: int, to_block: int, batch_limit: int,
    ) -> list[LogEntry]:
        """Every transfer log in [from_block, to_block], newest first, in batches of `batch_limit`.

        A full batch may stop partway through its oldest block, so that block is
        fetched again with the rest of the range below it.
        """
        out: list[LogEntry] = []
        upper = to_block
        while upper >= from_block:
            logs = await self._transfer_logs(tok, who, from_block, upper, batch_limit)
            if len(logs) < batch_limit:
                out.extend(logs)
                break
            oldest = logs[-1].block_number or 0
            newer = [e for e in logs if (e.block_number or 0) > oldest]
            if not newer:
                # a single block holds a whole batch; take that block in one go
                logger.info("block %d holds %d+ transfers, fetching it whole", oldest, batch_limit)
                newer = await self._transfer_logs(tok, who, oldest, oldest, _WHOLE_BLOCK_LIMIT)
                oldest -= 1
            out.extend(newer)
            upper = oldest
        return out

    async def watch_transfers(
        self,
        token: str,
        address: Optional[str] = None,
        *,
        from_block: Optional[int] = None,
        poll_interval: Optional[float] = None,
        batch_limit: int = 1_000,
    ) -> AsyncIterator[TransferEvent]:
        """Poll the head and yield new transfers oldest first, forever.

        Starts after the current head unless `from_block` is given. Each poll
        covers everything since the previous one, however many batches it takes.
        """
        if batch_limit < 1:
            raise ValueError(f"batch_limit ({batch_limit}) must be >= 1")
        tok = normalize_address(token)
        who: Optional[Address] = normalize_address(address) if address else None
        interval = poll_interval if poll_interval is not None else self.settings.poll_interval_s
        next_block = from_block if from_block is not None else await self.rpc.latest_block() + 1

        while True:
            head = await self.rpc.latest_block()
            if head >= next_block:
                logs = await self._drain(tok, who, next_block, head, batch_limit)
                events = await self.enricher.enrich(tok, logs)
                for ev in reversed(events):
                    yield ev
                next_block = head + 1
            await asyncio.sleep(interval)
