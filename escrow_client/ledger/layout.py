from __future__ import annotations

import struct
from dataclasses import dataclass

from solders.pubkey import Pubkey

from escrow_client.common.errors import MalformedLayout

U64_MAX = 2**64 - 1

# is_initialized (u8) | initializer | temp token account | initializer receiving account | expected amount (u64 LE)
ESCROW_RECORD_STRUCT = struct.Struct("<B32s32s32sQ")
ESCROW_ACCOUNT_SPAN = ESCROW_RECORD_STRUCT.size  # 105

# SPL token account: mint | owner | amount (u64 LE) | ... (165 bytes total, tail not decoded)
TOKEN_ACCOUNT_HEAD_STRUCT = struct.Struct("<32s32sQ")
TOKEN_ACCOUNT_SPAN = 165


def _require_span(data: bytes, *, span: int, what: str) -> bytes:
    buf = bytes(data)
    if len(buf) != span:
        raise MalformedLayout(f"{what} must be exactly {span} bytes, got {len(buf)}")
    return buf


def check_u64(value: int, *, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer")
    if value < 0 or value > U64_MAX:
        raise ValueError(f"{name} must be within 0..2**64-1, got {value}")
    return value


@dataclass(frozen=True, slots=True)
class EscrowRecord:
    """
    Persisted state of an escrow account (owned and written by the escrow program).
    """

    is_initialized: bool
    initializer: Pubkey
    temp_token_account: Pubkey
    initializer_receiving_account: Pubkey
    expected_amount: int

    def __post_init__(self) -> None:
        check_u64(self.expected_amount, name="expected_amount")

    @classmethod
    def decode(cls, data: bytes) -> "EscrowRecord":
        buf = _require_span(data, span=ESCROW_ACCOUNT_SPAN, what="Escrow account data")
        flag, initializer, temp, receiving, amount = ESCROW_RECORD_STRUCT.unpack(buf)
        return cls(
            is_initialized=flag != 0,
            initializer=Pubkey.from_bytes(initializer),
            temp_token_account=Pubkey.from_bytes(temp),
            initializer_receiving_account=Pubkey.from_bytes(receiving),
            expected_amount=amount,
        )

    def encode(self) -> bytes:
        return ESCROW_RECORD_STRUCT.pack(
            1 if self.is_initialized else 0,
            bytes(self.initializer),
            bytes(self.temp_token_account),
            bytes(self.initializer_receiving_account),
            self.expected_amount,
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "is_initialized": self.is_initialized,
            "initializer": str(self.initializer),
            "temp_token_account": str(self.temp_token_account),
            "initializer_receiving_account": str(self.initializer_receiving_account),
            "expected_amount": self.expected_amount,
        }


@dataclass(frozen=True, slots=True)
class TokenAccount:
    mint: Pubkey
    owner: Pubkey
    amount: int

    @classmethod
    def decode(cls, data: bytes) -> "TokenAccount":
        buf = _require_span(data, span=TOKEN_ACCOUNT_SPAN, what="Token account data")
        mint, owner, amount = TOKEN_ACCOUNT_HEAD_STRUCT.unpack_from(buf, 0)
        return cls(mint=Pubkey.from_bytes(mint), owner=Pubkey.from_bytes(owner), amount=amount)
