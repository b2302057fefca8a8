from __future__ import annotations

from dataclasses import dataclass

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from escrow_client.ledger.layout import EscrowRecord, check_u64


@dataclass(frozen=True, slots=True)
class InitiateTradeRequest:
    """
    One initiate call. Built per call, never shared between concurrent trades.
    """

    initializer: Keypair
    initializer_asset_account: Pubkey
    offered_amount: int
    initializer_receiving_account: Pubkey
    expected_amount: int
    program_id: Pubkey

    def __post_init__(self) -> None:
        check_u64(self.offered_amount, name="offered_amount")
        check_u64(self.expected_amount, name="expected_amount")


@dataclass(frozen=True, slots=True)
class TakeTradeRequest:
    taker: Keypair
    taker_receiving_account: Pubkey
    taker_asset_account: Pubkey
    escrow_account: Pubkey
    taker_offered_amount: int
    program_id: Pubkey

    def __post_init__(self) -> None:
        check_u64(self.taker_offered_amount, name="taker_offered_amount")


@dataclass(frozen=True, slots=True)
class InitiatedTrade:
    record: EscrowRecord
    escrow_account: Pubkey
    holding_account: Pubkey
    signature: str

    def to_dict(self) -> dict[str, object]:
        return {
            "escrow_account": str(self.escrow_account),
            "holding_account": str(self.holding_account),
            "signature": self.signature,
            "record": self.record.to_dict(),
        }


@dataclass(frozen=True, slots=True)
class SubmissionReceipt:
    signature: str
    escrow_account: Pubkey

    def to_dict(self) -> dict[str, object]:
        return {"signature": self.signature, "escrow_account": str(self.escrow_account)}
