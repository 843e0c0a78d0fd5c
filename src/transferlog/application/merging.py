# transferlog/application/merging.py
from __future__ import annotations

import asyncio
from typing import Iterable, Optional

from ..domain.models import IndexedFilter, LogEntry, newest_first_key
from ..domain.value_types import Address, Topic
from .fetching import LogRangeFetcher, check_bounds


def merge_newest_first(streams: Iterable[Iterable[LogEntry]], limit: int) -> list[LogEntry]:
    """Concatenate, drop repeated (tx_hash, log_index), sort newest first, truncate."""
    seen: set[tuple[Optional[str], int]] = set()
    out: list[LogEntry] = []
    for stream in streams:
        for e in stream:
            if e.dedup_key in seen:
                continue
            seen.add(e.dedup_key)
            out.append(e)
    # independently chunked streams are not jointly ordered
    out.sort(key=newest_first_key, reverse=True)
    return out[:limit]


class DualFilterMerger:
    """Fetches a participant's logs as recipient and as sender, then merges them."""

    def __init__(self, fetcher: LogRangeFetcher) -> None:
        self.fetcher = fetcher

    async def fetch_for_participant(
        self,
        address: Address,
        topic0: Topic,
        participant: Address,
        from_block: int = 0,
        to_block: Optional[int] = None,
        limit: int = 100,
    ) -> list[LogEntry]:
        if to_block is None:
            # pin the head so both branches cover the same range
            to_block = await self.fetcher.rpc.latest_block()
        check_bounds(from_block, to_block, limit)
        incoming, outgoing = await asyncio.gather(
            self.fetcher.fetch(address, topic0, IndexedFilter.recipient(participant), from_block, to_block, limit),
            self.fetcher.fetch(address, topic0, IndexedFilter.sender(participant), from_block, to_block, limit),
        )
        return merge_newest_first((incoming, outgoing), limit)
