from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.system_program import CreateAccountParams, create_account
from solders.sysvar import RENT
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import InitializeAccountParams, TransferParams, initialize_account, transfer

from escrow_client.common.errors import AccountNotFound, ConfirmationTimeout, MalformedLayout, RecordNotFound
from escrow_client.common.logging import bind_trade_id, log_event
from escrow_client.execution.funding import FundingGuard
from escrow_client.execution.models import (
    InitiatedTrade,
    InitiateTradeRequest,
    SubmissionReceipt,
    TakeTradeRequest,
)
from escrow_client.ledger.authority import ESCROW_AUTHORITY_SEED, derive_authority
from escrow_client.ledger.gateway import LedgerGateway
from escrow_client.ledger.instructions import Exchange, Initialize
from escrow_client.ledger.layout import ESCROW_ACCOUNT_SPAN, TOKEN_ACCOUNT_SPAN, EscrowRecord, TokenAccount

logger = logging.getLogger(__name__)

# initializer + holding account + escrow account
INITIATE_SIGNATURES = 3
TAKE_SIGNATURES = 1


def build_initialize_instruction(
    *,
    program_id: Pubkey,
    initializer: Pubkey,
    holding_account: Pubkey,
    initializer_receiving_account: Pubkey,
    escrow_account: Pubkey,
    expected_amount: int,
) -> Instruction:
    # Account order is fixed by the escrow program.
    accounts = [
        AccountMeta(pubkey=initializer, is_signer=True, is_writable=False),
        AccountMeta(pubkey=holding_account, is_signer=False, is_writable=True),
        AccountMeta(pubkey=initializer_receiving_account, is_signer=False, is_writable=False),
        AccountMeta(pubkey=escrow_account, is_signer=False, is_writable=True),
        AccountMeta(pubkey=RENT, is_signer=False, is_writable=False),
        AccountMeta(pubkey=TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
    ]
    return Instruction(program_id, Initialize(amount=expected_amount).pack(), accounts)


def build_exchange_instruction(
    *,
    program_id: Pubkey,
    taker: Pubkey,
    taker_receiving_account: Pubkey,
    taker_asset_account: Pubkey,
    escrow_account: Pubkey,
    record: EscrowRecord,
    authority: Pubkey,
    amount: int,
) -> Instruction:
    # Account order is fixed by the escrow program.
    accounts = [
        AccountMeta(pubkey=taker, is_signer=True, is_writable=False),
        AccountMeta(pubkey=taker_receiving_account, is_signer=False, is_writable=True),
        AccountMeta(pubkey=taker_asset_account, is_signer=False, is_writable=True),
        AccountMeta(pubkey=record.temp_token_account, is_signer=False, is_writable=True),
        AccountMeta(pubkey=record.initializer, is_signer=False, is_writable=True),
        AccountMeta(pubkey=record.initializer_receiving_account, is_signer=False, is_writable=True),
        AccountMeta(pubkey=escrow_account, is_signer=False, is_writable=True),
        AccountMeta(pubkey=TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(pubkey=authority, is_signer=False, is_writable=False),
    ]
    return Instruction(program_id, Exchange(amount=amount).pack(), accounts)


class EscrowOrchestrator:
    """
    Composes and submits the two atomic escrow transactions.

    Holds no per-trade state: every call builds its own request, keypairs and
    instruction list, so independent trades may run concurrently on one instance.
    Nothing is retried; a failed submission surfaces to the caller unchanged.
    """

    def __init__(
        self,
        gateway: LedgerGateway,
        *,
        funding: Optional[FundingGuard] = None,
        confirm_timeout_s: float = 30.0,
        poll_interval_s: float = 0.5,
        keypair_factory: Callable[[], Keypair] = Keypair,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._gateway = gateway
        self._funding = funding
        self._confirm_timeout_s = float(confirm_timeout_s)
        self._poll_interval_s = float(poll_interval_s)
        self._keypair_factory = keypair_factory
        self._sleep = sleep
        self._clock = clock

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def fetch_record(self, escrow_account: Pubkey) -> EscrowRecord:
        snapshot = self._gateway.get_account(escrow_account)
        if snapshot is None:
            log_event(
                logger,
                "escrow.record_not_found",
                severity="ERROR",
                escrow_account=escrow_account,
                reason="missing",
            )
            raise RecordNotFound(str(escrow_account))
        try:
            return EscrowRecord.decode(snapshot.data)
        except MalformedLayout:
            log_event(
                logger,
                "escrow.malformed_layout",
                severity="ERROR",
                escrow_account=escrow_account,
                size=len(snapshot.data),
                expected_size=ESCROW_ACCOUNT_SPAN,
            )
            raise

    def _resolve_mint(self, token_account: Pubkey) -> Pubkey:
        snapshot = self._gateway.get_account(token_account)
        if snapshot is None:
            log_event(logger, "escrow.account_not_found", severity="ERROR", address=token_account)
            raise AccountNotFound(str(token_account), f"Token account not found: {token_account}")
        try:
            return TokenAccount.decode(snapshot.data).mint
        except MalformedLayout:
            log_event(
                logger,
                "escrow.malformed_layout",
                severity="ERROR",
                address=token_account,
                size=len(snapshot.data),
                expected_size=TOKEN_ACCOUNT_SPAN,
            )
            raise

    # ------------------------------------------------------------------
    # Initiate
    # ------------------------------------------------------------------

    def initiate_trade(
        self,
        *,
        initializer: Keypair,
        initializer_asset_account: Pubkey,
        offered_amount: int,
        initializer_receiving_account: Pubkey,
        expected_amount: int,
        program_id: Pubkey,
    ) -> InitiatedTrade:
        request = InitiateTradeRequest(
            initializer=initializer,
            initializer_asset_account=initializer_asset_account,
            offered_amount=offered_amount,
            initializer_receiving_account=initializer_receiving_account,
            expected_amount=expected_amount,
            program_id=program_id,
        )
        with bind_trade_id():
            return self._initiate(request)

    def _initiate(self, request: InitiateTradeRequest) -> InitiatedTrade:
        initializer = request.initializer.pubkey()
        mint = self._resolve_mint(request.initializer_asset_account)

        # Single-use accounts: a reused holding account could carry another trade's balance.
        holding = self._keypair_factory()
        escrow = self._keypair_factory()

        if self._funding is not None:
            self._funding.ensure_funded(
                initializer,
                account_sizes=(TOKEN_ACCOUNT_SPAN, ESCROW_ACCOUNT_SPAN),
                signatures=INITIATE_SIGNATURES,
            )

        holding_rent = self._gateway.get_minimum_balance_for_rent_exemption(TOKEN_ACCOUNT_SPAN)
        escrow_rent = self._gateway.get_minimum_balance_for_rent_exemption(ESCROW_ACCOUNT_SPAN)

        instructions = [
            create_account(
                CreateAccountParams(
                    from_pubkey=initializer,
                    to_pubkey=holding.pubkey(),
                    lamports=holding_rent,
                    space=TOKEN_ACCOUNT_SPAN,
                    owner=TOKEN_PROGRAM_ID,
                )
            ),
            initialize_account(
                InitializeAccountParams(
                    program_id=TOKEN_PROGRAM_ID,
                    account=holding.pubkey(),
                    mint=mint,
                    owner=initializer,
                )
            ),
            transfer(
                TransferParams(
                    program_id=TOKEN_PROGRAM_ID,
                    source=request.initializer_asset_account,
                    dest=holding.pubkey(),
                    owner=initializer,
                    amount=request.offered_amount,
                )
            ),
            create_account(
                CreateAccountParams(
                    from_pubkey=initializer,
                    to_pubkey=escrow.pubkey(),
                    lamports=escrow_rent,
                    space=ESCROW_ACCOUNT_SPAN,
                    owner=request.program_id,
                )
            ),
            build_initialize_instruction(
                program_id=request.program_id,
                initializer=initializer,
                holding_account=holding.pubkey(),
                initializer_receiving_account=request.initializer_receiving_account,
                escrow_account=escrow.pubkey(),
                expected_amount=request.expected_amount,
            ),
        ]

        log_event(
            logger,
            "escrow.initiate_submitting",
            initializer=initializer,
            program_id=request.program_id,
            mint=mint,
            holding_account=holding.pubkey(),
            escrow_account=escrow.pubkey(),
            offered_amount=request.offered_amount,
            expected_amount=request.expected_amount,
        )

        deadline = self._clock() + self._confirm_timeout_s
        signature = self._gateway.submit_transaction(
            instructions=instructions,
            signers=[request.initializer, holding, escrow],
            fee_payer=initializer,
        )
        self._gateway.wait_for_confirmation(signature, timeout_s=max(0.0, deadline - self._clock()))
        record = self._read_back(escrow.pubkey(), signature=signature, deadline=deadline)

        log_event(
            logger,
            "escrow.initiated",
            signature=signature,
            escrow_account=escrow.pubkey(),
            holding_account=record.temp_token_account,
            expected_amount=record.expected_amount,
        )
        return InitiatedTrade(
            record=record,
            escrow_account=escrow.pubkey(),
            holding_account=holding.pubkey(),
            signature=signature,
        )

    def _read_back(self, escrow_account: Pubkey, *, signature: str, deadline: float) -> EscrowRecord:
        """
        Re-read until the record is populated or the confirmation deadline passes.

        RPC nodes behind a load balancer can lag the node that reported the
        confirmation; a missing or all-zero account right after confirmation is
        normal for a short while.
        """
        while True:
            snapshot = self._gateway.get_account(escrow_account)
            if snapshot is not None and len(snapshot.data) == ESCROW_ACCOUNT_SPAN:
                record = EscrowRecord.decode(snapshot.data)
                if record.is_initialized:
                    return record
            elif snapshot is not None:
                log_event(
                    logger,
                    "escrow.malformed_layout",
                    severity="ERROR",
                    escrow_account=escrow_account,
                    size=len(snapshot.data),
                    expected_size=ESCROW_ACCOUNT_SPAN,
                )
                raise MalformedLayout(
                    f"Escrow account {escrow_account} holds {len(snapshot.data)} bytes, expected {ESCROW_ACCOUNT_SPAN}"
                )

            remaining = deadline - self._clock()
            if remaining <= 0:
                log_event(
                    logger,
                    "escrow.read_back_timeout",
                    severity="WARNING",
                    signature=signature,
                    escrow_account=escrow_account,
                )
                raise ConfirmationTimeout(signature, timeout_s=self._confirm_timeout_s)
            self._sleep(min(self._poll_interval_s, remaining))

    # ------------------------------------------------------------------
    # Take
    # ------------------------------------------------------------------

    def take_trade(
        self,
        *,
        taker: Keypair,
        taker_receiving_account: Pubkey,
        taker_asset_account: Pubkey,
        escrow_account: Pubkey,
        taker_offered_amount: int,
        program_id: Pubkey,
    ) -> SubmissionReceipt:
        request = TakeTradeRequest(
            taker=taker,
            taker_receiving_account=taker_receiving_account,
            taker_asset_account=taker_asset_account,
            escrow_account=escrow_account,
            taker_offered_amount=taker_offered_amount,
            program_id=program_id,
        )
        with bind_trade_id():
            return self._take(request)

    def _take(self, request: TakeTradeRequest) -> SubmissionReceipt:
        record = self.fetch_record(request.escrow_account)
        if not record.is_initialized:
            log_event(
                logger,
                "escrow.record_not_found",
                severity="ERROR",
                escrow_account=request.escrow_account,
                reason="uninitialized",
            )
            raise RecordNotFound(
                str(request.escrow_account), f"Escrow account {request.escrow_account} holds no initialized record"
            )

        authority = derive_authority(request.program_id, (ESCROW_AUTHORITY_SEED,))
        taker = request.taker.pubkey()

        if self._funding is not None:
            self._funding.ensure_funded(taker, signatures=TAKE_SIGNATURES)

        instruction = build_exchange_instruction(
            program_id=request.program_id,
            taker=taker,
            taker_receiving_account=request.taker_receiving_account,
            taker_asset_account=request.taker_asset_account,
            escrow_account=request.escrow_account,
            record=record,
            authority=authority.address,
            amount=request.taker_offered_amount,
        )

        log_event(
            logger,
            "escrow.take_submitting",
            taker=taker,
            escrow_account=request.escrow_account,
            holding_account=record.temp_token_account,
            authority=authority.address,
            bump=authority.bump,
            amount=request.taker_offered_amount,
        )

        signature = self._gateway.submit_transaction(
            instructions=[instruction],
            signers=[request.taker],
            fee_payer=taker,
        )
        self._gateway.wait_for_confirmation(signature, timeout_s=self._confirm_timeout_s)

        log_event(logger, "escrow.taken", signature=signature, escrow_account=request.escrow_account)
        return SubmissionReceipt(signature=signature, escrow_account=request.escrow_account)
