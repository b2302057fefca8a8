"""
Escrow program instruction payloads.

Both opcodes share one wire shape: a 1-byte tag followed by a u64 little-endian
amount. Only the meaning of the amount differs:
- Initialize (0): amount the initializer expects to receive
- Exchange (1): amount the taker submits for the trade
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import ClassVar, Union

from escrow_client.common.errors import MalformedLayout
from escrow_client.ledger.layout import check_u64

INSTRUCTION_STRUCT = struct.Struct("<BQ")
INSTRUCTION_SPAN = INSTRUCTION_STRUCT.size  # 9


@dataclass(frozen=True, slots=True)
class Initialize:
    OPCODE: ClassVar[int] = 0

    amount: int

    def __post_init__(self) -> None:
        check_u64(self.amount, name="amount")

    def pack(self) -> bytes:
        return INSTRUCTION_STRUCT.pack(self.OPCODE, self.amount)


@dataclass(frozen=True, slots=True)
class Exchange:
    OPCODE: ClassVar[int] = 1

    amount: int

    def __post_init__(self) -> None:
        check_u64(self.amount, name="amount")

    def pack(self) -> bytes:
        return INSTRUCTION_STRUCT.pack(self.OPCODE, self.amount)


EscrowInstruction = Union[Initialize, Exchange]

_BY_OPCODE: dict[int, type] = {Initialize.OPCODE: Initialize, Exchange.OPCODE: Exchange}


def unpack_instruction(data: bytes) -> EscrowInstruction:
    buf = bytes(data)
    if len(buf) != INSTRUCTION_SPAN:
        raise MalformedLayout(f"Instruction data must be exactly {INSTRUCTION_SPAN} bytes, got {len(buf)}")
    opcode, amount = INSTRUCTION_STRUCT.unpack(buf)
    variant = _BY_OPCODE.get(opcode)
    if variant is None:
        raise MalformedLayout(f"Unknown escrow opcode: {opcode}")
    return variant(amount=amount)
