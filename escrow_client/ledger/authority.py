from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from solders.pubkey import Pubkey

# Must match the seed the escrow program hashes when it re-derives its authority.
ESCROW_AUTHORITY_SEED = b"escrow"


@dataclass(frozen=True, slots=True)
class DerivedAuthority:
    """
    Keyless program-derived address. Deterministic in (seeds, program_id).
    """

    address: Pubkey
    bump: int


def derive_authority(program_id: Pubkey, seeds: Sequence[bytes] = (ESCROW_AUTHORITY_SEED,)) -> DerivedAuthority:
    """
    Canonical bump search: bumps 255 down to 0, first off-curve address wins.

    The program recomputes this on its side; a different seed or search order
    produces an address the program silently rejects.
    """
    address, bump = Pubkey.find_program_address([bytes(s) for s in seeds], program_id)
    return DerivedAuthority(address=address, bump=int(bump))
