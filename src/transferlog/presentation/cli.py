import asyncio
import dataclasses
import json
import logging
from datetime import datetime, timezone
from typing import Optional, Sequence

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from ..adapters.rpc_httpx import HttpxRPC
from ..application.use_cases import TransferHistoryService
from ..config import Settings, configure_logging
from ..domain.errors import TransferLogError
from ..domain.models import LogEntry, TransferEvent

app = typer.Typer(help="Token transfer history from a ledger node.")
console = Console()
err_console = Console(stderr=True)


def _service(settings: Settings) -> tuple[HttpxRPC, TransferHistoryService]:
    rpc = HttpxRPC(settings.rpc_url, timeout_s=settings.timeout_s, max_conn=settings.max_connections)
    return rpc, TransferHistoryService(rpc, settings)


def _settings(rpc_url: Optional[str]) -> Settings:
    s = Settings.from_env()
    if rpc_url:
        s = dataclasses.replace(s, rpc_url=rpc_url)
    configure_logging(s.log_level, RichHandler(console=err_console, show_path=False))
    return s


def _fmt_ts(ts: int) -> str:
    if ts <= 0: return "-"
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def _transfers_table(title: str, transfers: Sequence[TransferEvent]) -> Table:
    table = Table(title=title)
    for col in ("block", "time (UTC)", "from", "to", "amount", "tx"):
        table.add_column(col, overflow="fold")
    for t in transfers:
        table.add_row(str(t.block_number), _fmt_ts(t.timestamp), t.sender, t.recipient, str(t.amount), t.tx_hash)
    return table


def _transfer_json(t: TransferEvent) -> dict:
    return {
        "token": t.token, "from": t.sender, "to": t.recipient, "amount": str(t.amount),
        "memo": t.memo, "transactionHash": t.tx_hash, "blockNumber": t.block_number,
        "timestamp": t.timestamp,
    }


def _log_json(e: LogEntry) -> dict:
    return {
        "address": e.address, "topics": list(e.topics), "data": e.data_hex,
        "blockNumber": e.block_number, "transactionHash": e.tx_hash, "logIndex": e.log_index,
    }


def _run(coro) -> None:
    try:
        asyncio.run(coro)
    except (TransferLogError, ValueError) as e:
        err_console.print(f"[red]error:[/] {escape(str(e))}")
        raise typer.Exit(code=1)


def _emit_transfers(title: str, transfers: list[TransferEvent], as_json: bool) -> None:
    if as_json:
        typer.echo(json.dumps([_transfer_json(t) for t in transfers]))
    else:
        console.print(_transfers_table(title, transfers))


@app.command()
def history(
    token: str,
    address: Optional[str] = typer.Option(None, help="Only transfers sent or received by this address"),
    from_block: Optional[int] = typer.Option(None, "--from-block"),
    to_block: Optional[int] = typer.Option(None, "--to-block"),
    limit: int = typer.Option(100, help="Maximum number of results"),
    rpc_url: Optional[str] = typer.Option(None, "--rpc", help="RPC endpoint URL (overrides TRANSFERLOG_RPC_URL)"),
    as_json: bool = typer.Option(False, "--json"),
):
    """Transfer history for a token, optionally for one address."""
    settings = _settings(rpc_url)

    async def main():
        rpc, svc = _service(settings)
        async with rpc:
            res = await svc.get_transfer_history(token, address, from_block=from_block, to_block=to_block, limit=limit)
        _emit_transfers(f"{token} transfers", res, as_json)

    _run(main())


@app.command()
def incoming(
    token: str,
    address: str,
    from_block: Optional[int] = typer.Option(None, "--from-block"),
    to_block: Optional[int] = typer.Option(None, "--to-block"),
    limit: int = typer.Option(100),
    rpc_url: Optional[str] = typer.Option(None, "--rpc"),
    as_json: bool = typer.Option(False, "--json"),
):
    """Transfers received by an address."""
    settings = _settings(rpc_url)

    async def main():
        rpc, svc = _service(settings)
        async with rpc:
            res = await svc.get_incoming_transfers(token, address, from_block=from_block, to_block=to_block, limit=limit)
        _emit_transfers(f"incoming to {address}", res, as_json)

    _run(main())


@app.command()
def outgoing(
    token: str,
    address: str,
    from_block: Optional[int] = typer.Option(None, "--from-block"),
    to_block: Optional[int] = typer.Option(None, "--to-block"),
    limit: int = typer.Option(100),
    rpc_url: Optional[str] = typer.Option(None, "--rpc"),
    as_json: bool = typer.Option(False, "--json"),
):
    """Transfers sent by an address."""
    settings = _settings(rpc_url)

    async def main():
        rpc, svc = _service(settings)
        async with rpc:
            res = await svc.get_outgoing_transfers(token, address, from_block=from_block, to_block=to_block, limit=limit)
        _emit_transfers(f"outgoing from {address}", res, as_json)

    _run(main())


@app.command()
def logs(
    contract: str,
    from_block: Optional[int] = typer.Option(None, "--from-block"),
    to_block: Optional[int] = typer.Option(None, "--to-block"),
    limit: int = typer.Option(100, help="Maximum number of logs (newest kept)"),
    rpc_url: Optional[str] = typer.Option(None, "--rpc"),
):
    """Raw logs emitted by a contract (NDJSON)."""
    settings = _settings(rpc_url)

    async def main():
        rpc, svc = _service(settings)
        async with rpc:
            res = await svc.get_logs(contract, from_block=from_block, to_block=to_block, limit=limit)
        for e in res:
            typer.echo(json.dumps(_log_json(e)))

    _run(main())


@app.command()
def watch(
    token: str,
    address: Optional[str] = typer.Option(None),
    poll_interval: Optional[float] = typer.Option(None, "--poll-interval"),
    rpc_url: Optional[str] = typer.Option(None, "--rpc"),
):
    """Follow new transfers as blocks arrive (Ctrl-C to stop)."""
    settings = _settings(rpc_url)
    log = logging.getLogger(__name__)

    async def main():
        rpc, svc = _service(settings)
        async with rpc:
            log.info("watching %s from %s", token, settings.rpc_url)
            async for t in svc.watch_transfers(token, address, poll_interval=poll_interval):
                console.print(
                    f"[bold]{t.block_number}[/] {_fmt_ts(t.timestamp)}  {t.sender} → {t.recipient}  "
                    f"[green]{t.amount}[/]  {t.tx_hash}"
                )

    try:
        _run(main())
    except KeyboardInterrupt:
        console.print("stopped")


if __name__ == "__main__":
    app()
