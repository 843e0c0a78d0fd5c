from __future__ import annotations

from typing import Optional

from eth_utils import is_address

from .models import LogEntry, TransferEvent, topic_to_address
from .value_types import Address, Topic

# keccak256("Transfer(address,address,uint256)")
TRANSFER_T0 = Topic("0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef")


def normalize_address(address: str) -> Address:
    """Validate and lowercase a 0x address; raises ValueError otherwise."""
    s = str(address).strip()
    if not is_address(s):
        raise ValueError(f"Invalid address: {address!r}")
    return Address(s.lower())


def _hexstr_to_bytes(s: str) -> bytes:
    h = s[2:] if s[:2].lower() == "0x" else s
    if len(h) % 2: h = "0" + h
    return bytes.fromhex(h) if h else b""


def decode_transfer(log: LogEntry, *, token: Address, timestamp: int = 0) -> Optional[TransferEvent]:
    """Decode a mined Transfer log; None for pending or non-Transfer entries."""
    if not log.mined:
        return None
    topics = log.topics
    if len(topics) < 3 or topics[0].lower() != TRANSFER_T0:
        return None
    data = _hexstr_to_bytes(log.data_hex)
    if len(data) < 32:
        return None
    return TransferEvent(
        token        = token,
        sender       = topic_to_address(topics[1]),
        recipient    = topic_to_address(topics[2]),
        amount       = int.from_bytes(data[:32], "big"),
        memo         = None,
        tx_hash      = log.tx_hash,        # type: ignore[arg-type]
        block_number = log.block_number,   # type: ignore[arg-type]
        timestamp    = timestamp,
    )
