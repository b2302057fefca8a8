"""
Wire-level contract with the escrow program.

Split into:
- layout: fixed-offset account codecs (escrow record, token account)
- instructions: opcode-tagged instruction payloads
- authority: program-derived address resolution
- gateway: the RPC capabilities the orchestrator depends on
"""

from .authority import ESCROW_AUTHORITY_SEED, DerivedAuthority, derive_authority  # noqa: F401
from .instructions import Exchange, Initialize, unpack_instruction  # noqa: F401
from .layout import ESCROW_ACCOUNT_SPAN, TOKEN_ACCOUNT_SPAN, EscrowRecord, TokenAccount  # noqa: F401
