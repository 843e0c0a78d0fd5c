# transferlog/application/enrichment.py
from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Sequence

from ..domain.decoding import decode_transfer
from ..domain.models import LogEntry, TransferEvent
from ..domain.value_types import Address
from ..ports.rpc import LedgerRPC

logger = logging.getLogger(__name__)


class TimestampEnricher:
    """Turns Transfer logs into TransferEvents with best-effort block timestamps."""

    def __init__(self, rpc: LedgerRPC, *, concurrency: int = 16) -> None:
        self.rpc = rpc
        self.concurrency = concurrency

    async def block_timestamps(self, blocks: Iterable[int]) -> dict[int, int]:
        """Look up each distinct block once; failed lookups are left out of the table."""
        distinct = sorted(set(blocks))
        sem = asyncio.Semaphore(self.concurrency)

        async def one(bn: int) -> tuple[int, int | None]:
            async with sem:
                try:
                    return bn, await self.rpc.block_timestamp(bn)
                except Exception as e:
                    logger.warning("timestamp lookup failed for block %d: %s", bn, e)
                    return bn, None

        pairs = await asyncio.gather(*(one(bn) for bn in distinct))
        return {bn: ts for bn, ts in pairs if ts is not None}

    async def enrich(self, token: Address, entries: Sequence[LogEntry]) -> list[TransferEvent]:
        mined = [e for e in entries if e.mined]
        table = await self.block_timestamps(e.block_number for e in mined)  # type: ignore[misc]
        out: list[TransferEvent] = []
        for e in mined:
            ev = decode_transfer(e, token=token, timestamp=table.get(e.block_number, 0))  # type: ignore[arg-type]
            if ev is None:
                logger.debug("skipping non-Transfer log %s:%d", e.tx_hash, e.log_index)
                continue
            out.append(ev)
        return out
