import json
import logging

import pytest
from solders.pubkey import Pubkey

from escrow_client.cli import main
from escrow_client.common.errors import LedgerUnavailable
from escrow_client.execution.orchestrator import EscrowOrchestrator


@pytest.fixture(autouse=True)
def _restore_root_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


@pytest.fixture
def app_config(tmp_path, ledger, market, write_keypair):
    write_keypair("initializer", market.initializer)
    write_keypair("taker", market.taker)
    p = tmp_path / "escrow.yml"
    p.write_text(
        "\n".join(
            [
                "initializer_keypair_path: initializer.json",
                f"initializer_x_token_account_pub_key: \"{market.initializer_x}\"",
                f"initializer_y_token_account_pub_key: \"{market.initializer_y}\"",
                "taker_keypair_path: taker.json",
                f"taker_x_token_account_pub_key: \"{market.taker_x}\"",
                f"taker_y_token_account_pub_key: \"{market.taker_y}\"",
                f"program_id: \"{ledger.escrow_program_id}\"",
            ]
        )
        + "\n",
        encoding="utf-8",
    )
    return str(p)


def _results(out: str) -> list[dict]:
    lines = [json.loads(line) for line in out.splitlines() if line.strip().startswith("{")]
    return [x for x in lines if "result" in x]


def test_demo_runs_initiate_then_take(capsys, ledger, market, app_config) -> None:
    assert main(["--config", app_config, "demo"], gateway=ledger) == 0

    initiated, taken = _results(capsys.readouterr().out)
    assert initiated["result"] == "initiated"
    assert initiated["record"]["expected_amount"] == 20
    assert initiated["record"]["is_initialized"] is True
    assert taken["result"] == "taken"
    assert taken["escrow_account"] == initiated["escrow_account"]

    assert ledger.token_balance(market.taker_x) == 10
    assert ledger.token_balance(market.initializer_y) == 20


def test_show_decodes_open_trade(capsys, ledger, market, app_config) -> None:
    trade = EscrowOrchestrator(ledger).initiate_trade(
        initializer=market.initializer,
        initializer_asset_account=market.initializer_x,
        offered_amount=5,
        initializer_receiving_account=market.initializer_y,
        expected_amount=7,
        program_id=ledger.escrow_program_id,
    )

    assert main(["--config", app_config, "show", "--escrow-account", str(trade.escrow_account)], gateway=ledger) == 0

    (shown,) = _results(capsys.readouterr().out)
    assert shown["record"]["expected_amount"] == 7
    assert shown["record"]["temp_token_account"] == str(trade.holding_account)


def test_unknown_escrow_account_exits_nonzero(capsys, ledger, app_config) -> None:
    code = main(["--config", app_config, "take", "--escrow-account", str(Pubkey.new_unique())], gateway=ledger)
    assert code == 1
    assert ledger.submissions == []
    assert _results(capsys.readouterr().out) == []


def test_missing_config_exits_nonzero(tmp_path, ledger) -> None:
    assert main(["--config", str(tmp_path / "missing.yml"), "demo"], gateway=ledger) == 1


def test_undeployed_program_exits_nonzero(ledger, app_config) -> None:
    ledger.accounts.pop(ledger.escrow_program_id)
    assert main(["--config", app_config, "initiate"], gateway=ledger) == 1
    assert ledger.submissions == []


def test_unreachable_cluster_exits_through_failure_path(monkeypatch, ledger, app_config) -> None:
    def _down(address):
        raise LedgerUnavailable("get_account", "ConnectError: connection refused")

    monkeypatch.setattr(ledger, "get_account", _down)
    assert main(["--config", app_config, "initiate"], gateway=ledger) == 1
    assert ledger.submissions == []
