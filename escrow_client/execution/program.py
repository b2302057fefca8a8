from __future__ import annotations

import logging

from solders.pubkey import Pubkey

from escrow_client.common.errors import ProgramNotDeployed
from escrow_client.common.logging import log_event
from escrow_client.ledger.gateway import AccountSnapshot, LedgerGateway

logger = logging.getLogger(__name__)


def check_program(gateway: LedgerGateway, program_id: Pubkey) -> AccountSnapshot:
    """
    Fail fast when the escrow program is not deployed at `program_id`.
    """
    info = gateway.get_account(program_id)
    if info is None:
        raise ProgramNotDeployed(
            f"Program {program_id} not found; it needs to be built and deployed with `solana program deploy`"
        )
    if not info.executable:
        raise ProgramNotDeployed(f"Program {program_id} is not executable")
    log_event(logger, "program.ready", program_id=program_id, owner=info.owner)
    return info
