from __future__ import annotations

import logging
from typing import Sequence

from solders.pubkey import Pubkey

from escrow_client.common.errors import InsufficientFunds
from escrow_client.common.logging import log_event
from escrow_client.ledger.gateway import LedgerGateway

logger = logging.getLogger(__name__)

LAMPORTS_PER_SOL = 1_000_000_000


class FundingGuard:
    """
    Solvency precondition checked before every submission.

    Required = rent-exempt minimum of every account the transaction creates
    + per-signature fees. On test clusters the shortfall can be topped up with an
    airdrop; otherwise the guard fails with InsufficientFunds.
    """

    def __init__(
        self,
        gateway: LedgerGateway,
        *,
        lamports_per_signature: int = 5000,
        airdrop_enabled: bool = False,
        confirm_timeout_s: float = 30.0,
    ) -> None:
        self._gateway = gateway
        self._lamports_per_signature = int(lamports_per_signature)
        self._airdrop_enabled = bool(airdrop_enabled)
        self._confirm_timeout_s = float(confirm_timeout_s)

    def required_lamports(self, *, account_sizes: Sequence[int] = (), signatures: int = 1) -> int:
        rent = sum(self._gateway.get_minimum_balance_for_rent_exemption(int(s)) for s in account_sizes)
        return int(rent) + self._lamports_per_signature * max(0, int(signatures))

    def ensure_funded(self, payer: Pubkey, *, account_sizes: Sequence[int] = (), signatures: int = 1) -> int:
        """
        Returns the payer balance once it covers the requirement.
        """
        required = self.required_lamports(account_sizes=account_sizes, signatures=signatures)
        balance = self._gateway.get_balance(payer)

        if balance < required and self._airdrop_enabled:
            shortfall = required - balance
            log_event(
                logger,
                "funding.airdrop_requested",
                payer=payer,
                lamports=shortfall,
                required=required,
                balance=balance,
            )
            sig = self._gateway.request_airdrop(payer, shortfall)
            self._gateway.wait_for_confirmation(sig, timeout_s=self._confirm_timeout_s)
            balance = self._gateway.get_balance(payer)

        if balance < required:
            log_event(
                logger,
                "funding.insufficient",
                severity="ERROR",
                payer=payer,
                required=required,
                balance=balance,
            )
            raise InsufficientFunds(payer=str(payer), required=required, available=balance)

        log_event(
            logger,
            "funding.ok",
            payer=payer,
            required=required,
            balance=balance,
            balance_sol=balance / LAMPORTS_PER_SOL,
        )
        return balance
