"""Tests for the typer front-end, with the RPC adapter swapped for FakeRPC."""

import json

import pytest
from typer.testing import CliRunner

from conftest import ALICE, BOB, TOKEN, FakeRPC, make_transfer
from transferlog.application.use_cases import TransferHistoryService
from transferlog.presentation import cli

runner = CliRunner()


@pytest.fixture
def fake_rpc(monkeypatch):
    rpc = FakeRPC([
        make_transfer(10, sender=ALICE, recipient=BOB, amount=3),
        make_transfer(20, sender=BOB, recipient=ALICE, amount=4),
    ], head=1_000)

    def fake_service(settings):
        return rpc, TransferHistoryService(rpc, settings)

    monkeypatch.setattr(cli, "_service", fake_service)
    return rpc


class TestCLI:

    def test_history_json(self, fake_rpc):
        res = runner.invoke(cli.app, ["history", TOKEN, "--json"])
        assert res.exit_code == 0, res.output
        rows = json.loads(res.output)
        assert [r["blockNumber"] for r in rows] == [20, 10]
        assert rows[0]["amount"] == "4"
        assert fake_rpc.closed

    def test_incoming_json(self, fake_rpc):
        res = runner.invoke(cli.app, ["incoming", TOKEN, ALICE, "--json"])
        assert res.exit_code == 0, res.output
        assert [r["from"] for r in json.loads(res.output)] == [BOB]

    def test_outgoing_with_limit(self, fake_rpc):
        res = runner.invoke(cli.app, ["outgoing", TOKEN, ALICE, "--limit", "1", "--json"])
        assert res.exit_code == 0, res.output
        assert [r["to"] for r in json.loads(res.output)] == [BOB]

    def test_logs_ndjson(self, fake_rpc):
        res = runner.invoke(cli.app, ["logs", TOKEN, "--from-block", "0"])
        assert res.exit_code == 0, res.output
        lines = [json.loads(line) for line in res.output.splitlines() if line.strip()]
        assert [l["blockNumber"] for l in lines] == [10, 20]

    def test_invalid_address_exits_nonzero(self, fake_rpc):
        res = runner.invoke(cli.app, ["history", "nope"])
        assert res.exit_code == 1
        assert "Invalid address" in res.output

    def test_logs_limit(self, fake_rpc):
        res = runner.invoke(cli.app, ["logs", TOKEN, "--from-block", "0", "--limit", "1"])
        assert res.exit_code == 0, res.output
        lines = [json.loads(line) for line in res.output.splitlines() if line.strip()]
        assert [l["blockNumber"] for l in lines] == [20]
