from __future__ import annotations
import asyncio, httpx, logging
from typing import Any, Optional, Sequence
from ..domain.errors import RPCError, RangeTooLargeError, is_range_error, parse_range_hint
from ..domain.models import LogEntry
from ..domain.value_types import Address, Topic, TxHash
from ..ports.rpc import LedgerRPC

logger = logging.getLogger(__name__)

def _to_hex_block(n: int) -> str: return hex(int(n))
def _is_topic_hash(x: str) -> bool: return isinstance(x, str) and x.startswith("0x") and len(x)==66
def _hex_or_none(v: Any) -> Optional[int]: return int(v, 16) if isinstance(v, str) else None

def _build_topics_param(topics: Sequence[Optional[str]]) -> list[Optional[str]]:
    out: list[Optional[str]] = []
    for t in topics:
        if t is None:
            out.append(None); continue
        s = str(t).strip().lower()
        if not _is_topic_hash(s):
            raise ValueError(f"Invalid topic: {t}")
        out.append(s)
    return out

def _parse_log(rl: dict[str, Any]) -> LogEntry:
    tx = rl.get("transactionHash")
    return LogEntry(
        address=Address(rl["address"].lower()),
        topics=tuple(Topic(t.lower()) for t in rl.get("topics", [])),
        data_hex=str(rl.get("data") or "0x"),
        block_number=_hex_or_none(rl.get("blockNumber")),
        tx_hash=TxHash(tx.lower()) if tx else None,
        log_index=_hex_or_none(rl.get("logIndex")) or 0,
    )

class HttpxRPC(LedgerRPC):
    def __init__(self, rpc_url: str, timeout_s: int = 20, max_conn: int = 64,
                 *, transport: Optional[httpx.AsyncBaseTransport] = None, max_attempts: int = 3) -> None:
        self.rpc_url = rpc_url
        self.max_attempts = max_attempts
        self.client = httpx.AsyncClient(
            http2=transport is None,
            timeout=httpx.Timeout(timeout_s),
            limits=httpx.Limits(max_connections=max_conn, max_keepalive_connections=max(1, max_conn//2)),
            transport=transport,
        )
        self._id = 0

    async def _call(self, method: str, params: list[Any]) -> Any:
        self._id += 1
        payload = {"jsonrpc":"2.0","id":self._id,"method":method,"params":params}
        # retry on 429 with simple backoff
        for attempt in range(self.max_attempts):
            try:
                r = await self.client.post(self.rpc_url, json=payload)
            except httpx.HTTPError as e:
                raise RPCError(f"{method} transport error: {e}") from e
            if r.status_code == 429:
                ra = r.headers.get("Retry-After")
                delay = max(1.0, float(ra)) if ra and ra.isdigit() else (1.0 * (2**attempt))
                logger.warning("%s rate limited, sleeping %.1fs", method, delay)
                await asyncio.sleep(delay); continue
            try:
                data = r.json()
            except ValueError:
                data = None
            # some providers send the JSON-RPC error body with a 4xx status
            if not (isinstance(data, dict) and "error" in data):
                try:
                    r.raise_for_status()
                except httpx.HTTPStatusError as e:
                    raise RPCError(f"{method} bad response: {e}") from e
                if not isinstance(data, dict):
                    raise RPCError(f"{method} bad response: not a JSON-RPC object")
            if "error" in data:
                err = data["error"]
                code = err.get("code") if isinstance(err, dict) else None
                msg = err.get("message") if isinstance(err, dict) else str(err)
                if method == "eth_getLogs" and is_range_error(msg or ""):
                    raise RangeTooLargeError(msg, code, parse_range_hint(msg))
                raise RPCError(f"{method} RPC error code={code} message={msg}", code)
            return data.get("result")
        raise RPCError(f"Retries exhausted for {method}")

    async def latest_block(self) -> int:
        return int(await self._call("eth_blockNumber", []), 16)

    async def get_logs(self, address: Address, topics: Sequence[Optional[str]], from_block: int, to_block: int) -> list[LogEntry]:
        res = await self._call("eth_getLogs", [{
            "address": str(address),
            "fromBlock": _to_hex_block(from_block),
            "toBlock": _to_hex_block(to_block),
            "topics": _build_topics_param(topics),
        }])
        return [_parse_log(rl) for rl in (res or [])]

    async def block_timestamp(self, block_number: int) -> int:
        block = await self._call("eth_getBlockByNumber", [_to_hex_block(block_number), False])
        if not block:
            raise RPCError(f"Block {block_number} not found")
        return int(block["timestamp"], 16)

    async def aclose(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> "HttpxRPC":
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()
