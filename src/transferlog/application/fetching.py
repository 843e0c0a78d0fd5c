# transferlog/application/fetching.py
from __future__ import annotations

import logging
from typing import Optional

from ..domain.errors import RangeTooLargeError
from ..domain.models import ChunkCursor, IndexedFilter, LogEntry, RangeQuery, newest_first_key
from ..domain.value_types import Address, Topic
from ..ports.rpc import LedgerRPC

logger = logging.getLogger(__name__)


def check_bounds(from_block: int, to_block: int, limit: int) -> None:
    if from_block < 0:
        raise ValueError(f"from_block ({from_block}) must be >= 0")
    if from_block > to_block:
        raise ValueError(f"from_block ({from_block}) must be <= to_block ({to_block})")
    if limit < 1:
        raise ValueError(f"limit ({limit}) must be >= 1")


class LogRangeFetcher:
    """
    Walks a block range backwards from its upper end in chunks, adapting the
    chunk width to whatever the node accepts.

    A successful width is kept for the next chunk. A refused chunk is retried
    at the same upper bound with the node's suggested width, or half the
    current one. The width never drops below `min_chunk`; a refusal at that
    width is re-raised.
    """

    def __init__(self, rpc: LedgerRPC, *, initial_chunk: int = 10_000, min_chunk: int = 100) -> None:
        if min_chunk < 1 or initial_chunk < min_chunk:
            raise ValueError(f"need 1 <= min_chunk ({min_chunk}) <= initial_chunk ({initial_chunk})")
        self.rpc = rpc
        self.initial_chunk = initial_chunk
        self.min_chunk = min_chunk

    async def fetch(
        self,
        address: Address,
        topic0: Topic,
        indexed_filter: Optional[IndexedFilter] = None,
        from_block: int = 0,
        to_block: Optional[int] = None,
        limit: int = 100,
    ) -> list[LogEntry]:
        """Return up to `limit` logs in [from_block, to_block], newest first."""
        if to_block is None:
            to_block = await self.rpc.latest_block()
        check_bounds(from_block, to_block, limit)

        cur = ChunkCursor.start(to_block, self.initial_chunk, self.min_chunk)
        while cur.to_block >= from_block and len(cur.entries) < limit:
            chunk = cur.window(from_block)
            q = RangeQuery(chunk.start, chunk.end, indexed_filter)
            try:
                logger.debug("eth_getLogs %s [%d, %d] width=%d", address, q.from_block, q.to_block, cur.width)
                found = await self.rpc.get_logs(address, q.topics(topic0), q.from_block, q.to_block)
            except RangeTooLargeError as e:
                if cur.at_floor:
                    logger.error("range refused at floor width %d for [%d, %d]", cur.width, q.from_block, q.to_block)
                    raise
                old = cur.width
                new = cur.shrink(e.suggested_width)
                logger.info("range [%d, %d] refused, chunk width %d -> %d%s", q.from_block, q.to_block,
                            old, new, " (suggested)" if e.suggested is not None else "")
                continue
            cur.advance(chunk, found)

        out = sorted(cur.entries, key=newest_first_key, reverse=True)
        return out[:limit]
