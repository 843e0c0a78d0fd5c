from __future__ import annotations
import re
from typing import Optional
from .models import BlockRange


class TransferLogError(Exception):
    """Base class for all errors raised by transferlog."""


class ConfigError(TransferLogError):
    """Invalid or missing configuration."""


class RPCError(TransferLogError):
    """Fatal failure talking to the ledger node (transport, auth, malformed reply)."""

    def __init__(self, message: str, code: Optional[int] = None) -> None:
        super().__init__(message)
        self.code = code


class RangeTooLargeError(RPCError):
    """The node refused a log query because the range or result set was too large.

    `suggested` is the narrower range the node proposed, when it proposed one.
    """

    def __init__(self, message: str, code: Optional[int] = None, suggested: Optional[BlockRange] = None) -> None:
        super().__init__(message, code)
        self.suggested = suggested

    @property
    def suggested_width(self) -> Optional[int]:
        if self.suggested is None:
            return None
        return self.suggested.end - self.suggested.start


# Provider wording for "too many results / too many blocks"
RANGE_ERROR_MARKERS: tuple[str, ...] = (
    "query returned more than",
    "too many results",
    "response size exceeded",
    "block range too large",
    "block range is too wide",
    "exceed maximum block range",
    "limit exceeded",
    "exceeds max results",
    "range is too large",
)

_DEC_HINT = re.compile(r"retry with the range (\d+)\s*-\s*(\d+)", re.IGNORECASE)
_HEX_HINT = re.compile(r"\[\s*(0x[0-9a-fA-F]+)\s*,\s*(0x[0-9a-fA-F]+)\s*\]")


def is_range_error(message: str) -> bool:
    m = message.lower()
    return any(p in m for p in RANGE_ERROR_MARKERS)


def parse_range_hint(message: str) -> Optional[BlockRange]:
    """Extract a suggested block range from provider error text, if present."""
    match = _DEC_HINT.search(message)
    if match:
        a, b = int(match.group(1)), int(match.group(2))
    else:
        match = _HEX_HINT.search(message)
        if not match:
            return None
        a, b = int(match.group(1), 16), int(match.group(2), 16)
    if b < a:
        return None
    return BlockRange(a, b)
