from __future__ import annotations

import json
import os

import pytest
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from tests.fake_ledger import FakeLedger

_ENV_PREFIXES = ("ESCROW_", "SOLANA_CLI_CONFIG")


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    """
    Test hygiene: never let a developer's shell exports leak into settings.
    """
    for k in list(os.environ):
        if k.startswith(_ENV_PREFIXES):
            monkeypatch.delenv(k, raising=False)


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def write_keypair(tmp_path):
    def _write(name: str, kp: Keypair | None = None) -> tuple[Keypair, str]:
        kp = kp or Keypair()
        p = tmp_path / f"{name}.json"
        p.write_text(json.dumps(list(bytes(kp))), encoding="utf-8")
        return kp, str(p)

    return _write


class Market:
    """
    Two mints with funded participants:
    - initializer holds 100 X, has an empty Y account
    - taker holds 100 Y, has an empty X account
    """

    def __init__(self, ledger: FakeLedger) -> None:
        self.ledger = ledger
        self.mint_x = Pubkey.new_unique()
        self.mint_y = Pubkey.new_unique()
        self.initializer = Keypair()
        self.taker = Keypair()
        ledger.fund(self.initializer.pubkey(), 1_000_000_000)
        ledger.fund(self.taker.pubkey(), 1_000_000_000)
        self.initializer_x = ledger.create_token_account(owner=self.initializer.pubkey(), mint=self.mint_x, amount=100)
        self.initializer_y = ledger.create_token_account(owner=self.initializer.pubkey(), mint=self.mint_y, amount=0)
        self.taker_x = ledger.create_token_account(owner=self.taker.pubkey(), mint=self.mint_x, amount=0)
        self.taker_y = ledger.create_token_account(owner=self.taker.pubkey(), mint=self.mint_y, amount=100)


@pytest.fixture
def market(ledger) -> Market:
    return Market(ledger)
