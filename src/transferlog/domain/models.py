from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional
from .value_types import Address, Topic, TxHash

@dataclass(slots=True, frozen=True)
class BlockRange:
    start: int
    end: int
    def span(self) -> int: return self.end - self.start + 1

@dataclass(slots=True, frozen=True)
class LogEntry:
    address: Address
    topics: tuple[Topic, ...]
    data_hex: str
    block_number: Optional[int]        # None while pending
    tx_hash: Optional[TxHash]          # None while pending
    log_index: int

    @property
    def dedup_key(self) -> tuple[Optional[str], int]:
        return (self.tx_hash, self.log_index)

    @property
    def mined(self) -> bool:
        return self.block_number is not None and self.tx_hash is not None

def newest_first_key(e: LogEntry) -> tuple[bool, int, int]:
    """Sort key for reverse=True ordering; pending entries count as newest."""
    return (e.block_number is None, e.block_number or 0, e.log_index)

@dataclass(slots=True, frozen=True)
class TransferEvent:
    token: Address
    sender: Address
    recipient: Address
    amount: int
    memo: Optional[str]
    tx_hash: TxHash
    block_number: int
    timestamp: int = 0                 # seconds; 0 = unknown

@dataclass(slots=True, frozen=True)
class IndexedFilter:
    position: int                      # 1-based indexed slot (topic0 is the signature)
    value: Topic

    @classmethod
    def sender(cls, address: str) -> "IndexedFilter":
        return cls(1, address_to_topic(address))

    @classmethod
    def recipient(cls, address: str) -> "IndexedFilter":
        return cls(2, address_to_topic(address))

@dataclass(slots=True, frozen=True)
class RangeQuery:
    from_block: int
    to_block: int
    filter: Optional[IndexedFilter] = None

    def topics(self, topic0: Topic) -> list[Optional[str]]:
        out: list[Optional[str]] = [topic0]
        if self.filter is not None:
            out.extend([None] * (self.filter.position - 1))
            out.append(self.filter.value)
        return out

@dataclass(slots=True)
class ChunkCursor:
    to_block: int
    width: int
    floor: int
    initial: int
    entries: list[LogEntry] = field(default_factory=list)

    @classmethod
    def start(cls, to_block: int, initial: int, floor: int) -> "ChunkCursor":
        return cls(to_block=to_block, width=max(floor, initial), floor=floor, initial=initial)

    def window(self, from_block: int) -> BlockRange:
        return BlockRange(max(from_block, self.to_block - self.width), self.to_block)

    def advance(self, chunk: BlockRange, found: list[LogEntry]) -> None:
        # chunks walk backwards, so anything found here is older than what we hold
        self.entries[:0] = found
        self.to_block = chunk.start - 1

    def shrink(self, suggested: Optional[int] = None) -> int:
        if suggested is not None and 0 < suggested < self.width:
            self.width = max(self.floor, suggested)
        else:
            self.width = max(self.floor, self.width // 2)
        return self.width

    @property
    def at_floor(self) -> bool:
        return self.width <= self.floor

def address_to_topic(address: str) -> Topic:
    """Left-pad a 20-byte address into a 32-byte indexed topic word."""
    h = address.lower()
    h = h[2:] if h.startswith("0x") else h
    return Topic("0x" + h.rjust(64, "0"))

def topic_to_address(topic: str) -> Address:
    h = topic[2:] if topic[:2].lower() == "0x" else topic
    return Address("0x" + h[-40:].lower())
