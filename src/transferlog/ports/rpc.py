# transferlog/ports/rpc.py
from __future__ import annotations

from typing import Optional, Protocol, Sequence
from ..domain.models import LogEntry
from ..domain.value_types import Address


class LedgerRPC(Protocol):
    """Port defining the contract for a ledger node's log and block queries."""

    async def get_logs(
        self,
        address: Address,
        topics: Sequence[Optional[str]],
        from_block: int,
        to_block: int,
    ) -> list[LogEntry]:
        """Return logs for [from_block, to_block] inclusive, oldest first.

        Raises RangeTooLargeError when the node refuses the range or result size,
        RPCError for anything else.
        """

    async def latest_block(self) -> int:
        """Return the latest block number as an integer."""

    async def block_timestamp(self, block_number: int) -> int:
        """Return the block's timestamp in seconds."""
