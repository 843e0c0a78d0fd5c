"""Shared fixtures: an in-memory ledger node that enforces provider-style limits."""

from __future__ import annotations

from typing import Optional, Sequence

import pytest

from transferlog.domain.decoding import TRANSFER_T0
from transferlog.domain.errors import RPCError, RangeTooLargeError
from transferlog.domain.models import BlockRange, LogEntry, address_to_topic
from transferlog.domain.value_types import Address, Topic, TxHash

TOKEN = Address("0x" + "11" * 20)
ALICE = Address("0x" + "aa" * 20)
BOB = Address("0x" + "bb" * 20)
CAROL = Address("0x" + "cc" * 20)

BASE_TS = 1_700_000_000


def make_transfer(
    block: Optional[int],
    idx: int = 0,
    sender: str = ALICE,
    recipient: str = BOB,
    amount: int = 1,
    token: str = TOKEN,
    tx_hash: Optional[str] = "auto",
) -> LogEntry:
    if tx_hash == "auto":
        tx_hash = f"0x{(block or 0):032x}{idx:032x}"
    return LogEntry(
        address=Address(token),
        topics=(TRANSFER_T0, address_to_topic(sender), address_to_topic(recipient)),
        data_hex="0x" + f"{amount:064x}",
        block_number=block,
        tx_hash=TxHash(tx_hash) if tx_hash else None,
        log_index=idx,
    )


def _matches(entry: LogEntry, topics: Sequence[Optional[str]]) -> bool:
    for i, t in enumerate(topics):
        if t is None:
            continue
        if i >= len(entry.topics) or entry.topics[i] != t:
            return False
    return True


class FakeRPC:
    """In-memory node.

    max_width:     refuse queries spanning more than this many blocks
    max_results:   refuse queries matching more than this many logs
    hint:          attach a "retry with the range A-B" suggestion to width refusals
    failing_blocks: block_timestamp raises for these
    """

    def __init__(
        self,
        entries: Sequence[LogEntry] = (),
        head: int = 100_000,
        *,
        max_width: Optional[int] = None,
        max_results: Optional[int] = None,
        hint: bool = False,
        failing_blocks: Sequence[int] = (),
    ) -> None:
        self.entries = list(entries)
        self.head = head
        self.max_width = max_width
        self.max_results = max_results
        self.hint = hint
        self.failing_blocks = set(failing_blocks)
        self.log_calls: list[tuple[int, int, tuple]] = []
        self.timestamp_calls: list[int] = []
        self.closed = False

    async def latest_block(self) -> int:
        return self.head

    async def get_logs(self, address: Address, topics: Sequence[Optional[str]], from_block: int, to_block: int) -> list[LogEntry]:
        self.log_calls.append((from_block, to_block, tuple(topics)))
        if self.max_width is not None and to_block - from_block + 1 > self.max_width:
            if self.hint:
                msg = f"block range too large, retry with the range {to_block - self.max_width + 1}-{to_block}"
                raise RangeTooLargeError(msg, -32005, BlockRange(to_block - self.max_width + 1, to_block))
            raise RangeTooLargeError("block range too large", -32005)
        found = [
            e for e in self.entries
            if e.address == address
            and e.block_number is not None
            and from_block <= e.block_number <= to_block
            and _matches(e, topics)
        ]
        if self.max_results is not None and len(found) > self.max_results:
            raise RangeTooLargeError(f"query returned more than {self.max_results} results", -32005)
        return sorted(found, key=lambda e: (e.block_number, e.log_index))

    async def block_timestamp(self, block_number: int) -> int:
        self.timestamp_calls.append(block_number)
        if block_number in self.failing_blocks:
            raise RPCError(f"block {block_number} unavailable")
        return BASE_TS + block_number

    async def aclose(self) -> None:
        self.closed = True

    async def __aenter__(self) -> "FakeRPC":
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    @property
    def widths(self) -> list[int]:
        return [tb - fb for fb, tb, _ in self.log_calls]


class ScriptedRPC(FakeRPC):
    """FakeRPC that raises queued errors from get_logs before serving normally."""

    def __init__(self, errors: Sequence[Exception], *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.errors = list(errors)

    async def get_logs(self, address, topics, from_block, to_block):
        if self.errors:
            self.log_calls.append((from_block, to_block, tuple(topics)))
            raise self.errors.pop(0)
        return await super().get_logs(address, topics, from_block, to_block)


@pytest.fixture
def spread_entries() -> list[LogEntry]:
    """30 transfers spread over blocks 0..9773, alternating participants."""
    out = []
    for i in range(30):
        sender, recipient = (ALICE, BOB) if i % 2 else (BOB, CAROL)
        out.append(make_transfer(i * 337, idx=i % 3, sender=sender, recipient=recipient, amount=i + 1))
    return out
