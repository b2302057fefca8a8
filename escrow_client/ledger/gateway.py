from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Optional, Protocol, Sequence, runtime_checkable

from solana.exceptions import SolanaRpcException
from solana.rpc.api import Client
from solana.rpc.commitment import Commitment
from solana.rpc.core import RPCException
from solana.rpc.types import TxOpts
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction
from solders.transaction_status import TransactionConfirmationStatus

from escrow_client.common.errors import ConfirmationTimeout, LedgerUnavailable, SubmissionRejected
from escrow_client.common.logging import log_event

logger = logging.getLogger(__name__)

_COMMITMENT_RANK: dict[str, int] = {"processed": 0, "confirmed": 1, "finalized": 2}

_STATUS_NAMES: tuple[tuple[Any, str], ...] = (
    (TransactionConfirmationStatus.Processed, "processed"),
    (TransactionConfirmationStatus.Confirmed, "confirmed"),
    (TransactionConfirmationStatus.Finalized, "finalized"),
)


def _status_name(status: Any) -> Optional[str]:
    for known, name in _STATUS_NAMES:
        if status == known:
            return name
    return None


@dataclass(frozen=True, slots=True)
class AccountSnapshot:
    address: Pubkey
    data: bytes
    owner: Pubkey
    lamports: int
    executable: bool = False


@runtime_checkable
class LedgerGateway(Protocol):
    """
    Cluster abstraction. The orchestrator depends only on this interface.
    """

    def submit_transaction(
        self,
        *,
        instructions: Sequence[Instruction],
        signers: Sequence[Keypair],
        fee_payer: Pubkey,
    ) -> str:
        """Submits one atomic transaction; returns its signature (base58)."""

    def get_account(self, address: Pubkey) -> Optional[AccountSnapshot]:
        """Returns None when the account does not exist."""

    def get_minimum_balance_for_rent_exemption(self, size: int) -> int:
        """Lamports an account of `size` bytes needs to be rent exempt."""

    def wait_for_confirmation(self, signature: str, *, timeout_s: float) -> None:
        """Blocks until settled; raises ConfirmationTimeout / SubmissionRejected."""

    def get_balance(self, address: Pubkey) -> int:
        """Native balance in lamports."""

    def request_airdrop(self, address: Pubkey, lamports: int) -> str:
        """Test clusters only; returns the airdrop signature."""

    def get_version(self) -> dict[str, Any]:
        """Node version info (diagnostics only)."""


def _preflight_logs(exc: RPCException) -> list[str]:
    payload = exc.args[0] if exc.args else None
    data = getattr(payload, "data", None)
    logs = getattr(data, "logs", None)
    if logs is None and isinstance(payload, dict):
        logs = (payload.get("data") or {}).get("logs")
    return [str(x) for x in (logs or [])]


def _preflight_diagnostic(exc: RPCException) -> str:
    payload = exc.args[0] if exc.args else None
    message = getattr(payload, "message", None)
    data = getattr(payload, "data", None)
    err = getattr(data, "err", None)
    if message is not None and err is not None:
        return f"{message} ({err})"
    if message is not None:
        return str(message)
    return str(payload if payload is not None else exc)


@contextmanager
def _rpc_read(operation: str, **fields: Any) -> Iterator[None]:
    try:
        yield
    except (SolanaRpcException, RPCException) as e:
        diagnostic = _preflight_diagnostic(e) if isinstance(e, RPCException) else f"{type(e).__name__}: {e}"
        log_event(logger, "ledger.rpc_failed", severity="ERROR", operation=operation, diagnostic=diagnostic, **fields)
        raise LedgerUnavailable(operation, diagnostic) from e


class SolanaRpcGateway:
    """
    LedgerGateway over the JSON-RPC HTTP API (solana-py `Client`).

    Submissions are sent once with preflight enabled; they are never resent here.
    Transport failures on reads surface as LedgerUnavailable.
    """

    def __init__(
        self,
        endpoint: str,
        *,
        commitment: str = "confirmed",
        timeout_s: float = 10.0,
        poll_interval_s: float = 0.5,
        client: Any = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._endpoint = endpoint
        self._commitment = str(commitment).strip().lower()
        if self._commitment not in _COMMITMENT_RANK:
            raise ValueError(f"Unsupported commitment: {commitment!r}")
        self._poll_interval_s = float(poll_interval_s)
        self._timeout_s = float(timeout_s)
        self._client = client if client is not None else Client(
            endpoint, commitment=Commitment(self._commitment), timeout=timeout_s
        )
        self._sleep = sleep
        self._clock = clock

    @property
    def endpoint(self) -> str:
        return self._endpoint

    def get_version(self) -> dict[str, Any]:
        with _rpc_read("get_version"):
            value = self._client.get_version().value
        return {
            "solana_core": str(getattr(value, "solana_core", value)),
            "feature_set": getattr(value, "feature_set", None),
        }

    def get_account(self, address: Pubkey) -> Optional[AccountSnapshot]:
        with _rpc_read("get_account", address=address):
            acct = self._client.get_account_info(address, commitment=Commitment(self._commitment)).value
        if acct is None:
            return None
        return AccountSnapshot(
            address=address,
            data=bytes(acct.data),
            owner=acct.owner,
            lamports=int(acct.lamports),
            executable=bool(acct.executable),
        )

    def get_minimum_balance_for_rent_exemption(self, size: int) -> int:
        with _rpc_read("get_minimum_balance_for_rent_exemption", size=size):
            return int(self._client.get_minimum_balance_for_rent_exemption(int(size)).value)

    def get_balance(self, address: Pubkey) -> int:
        with _rpc_read("get_balance", address=address):
            return int(self._client.get_balance(address, commitment=Commitment(self._commitment)).value)

    def request_airdrop(self, address: Pubkey, lamports: int) -> str:
        with _rpc_read("request_airdrop", address=address, lamports=lamports):
            return str(self._client.request_airdrop(address, int(lamports)).value)

    def submit_transaction(
        self,
        *,
        instructions: Sequence[Instruction],
        signers: Sequence[Keypair],
        fee_payer: Pubkey,
    ) -> str:
        with _rpc_read("get_latest_blockhash"):
            blockhash = self._client.get_latest_blockhash(commitment=Commitment(self._commitment)).value.blockhash
        tx = Transaction.new_signed_with_payer(list(instructions), fee_payer, list(signers), blockhash)
        signature = str(tx.signatures[0])
        opts = TxOpts(skip_preflight=False, preflight_commitment=Commitment(self._commitment))
        try:
            resp = self._client.send_raw_transaction(bytes(tx), opts=opts)
        except RPCException as e:
            logs = _preflight_logs(e)
            diagnostic = _preflight_diagnostic(e)
            log_event(
                logger,
                "ledger.submit_rejected",
                severity="ERROR",
                diagnostic=diagnostic,
                program_logs=logs,
                instruction_count=len(instructions),
            )
            raise SubmissionRejected(diagnostic, signature=signature, logs=logs) from e
        except SolanaRpcException as e:
            # The request may have reached the node; the outcome is unknown.
            log_event(
                logger,
                "ledger.submit_unacknowledged",
                severity="ERROR",
                signature=signature,
                diagnostic=f"{type(e).__name__}: {e}",
                instruction_count=len(instructions),
            )
            raise ConfirmationTimeout(signature, timeout_s=self._timeout_s) from e

        signature = str(resp.value)
        log_event(
            logger,
            "ledger.submitted",
            signature=signature,
            fee_payer=fee_payer,
            instruction_count=len(instructions),
            signer_count=len(signers),
        )
        return signature

    def _poll_status(self, sig: Signature) -> Any:
        try:
            statuses = self._client.get_signature_statuses([sig]).value
        except (SolanaRpcException, RPCException) as e:
            log_event(
                logger,
                "ledger.status_poll_failed",
                severity="WARNING",
                signature=sig,
                diagnostic=f"{type(e).__name__}: {e}",
            )
            return None
        return statuses[0] if statuses else None

    def wait_for_confirmation(self, signature: str, *, timeout_s: float) -> None:
        """
        Poll signature status until it reaches the configured commitment.

        Bounded by `timeout_s`; expiry says nothing about whether the
        transaction applied. A failed poll counts as "no status yet".
        """
        target = _COMMITMENT_RANK[self._commitment]
        sig = Signature.from_string(signature)
        deadline = self._clock() + float(timeout_s)
        polls = 0
        while True:
            polls += 1
            status = self._poll_status(sig)
            if status is not None:
                if status.err is not None:
                    log_event(
                        logger,
                        "ledger.execution_failed",
                        severity="ERROR",
                        signature=signature,
                        diagnostic=str(status.err),
                    )
                    raise SubmissionRejected(str(status.err), signature=signature)
                level = _status_name(status.confirmation_status)
                if level is not None and _COMMITMENT_RANK[level] >= target:
                    log_event(logger, "ledger.confirmed", signature=signature, commitment=level, polls=polls)
                    return

            remaining = deadline - self._clock()
            if remaining <= 0:
                log_event(
                    logger,
                    "ledger.confirmation_timeout",
                    severity="WARNING",
                    signature=signature,
                    timeout_s=float(timeout_s),
                    polls=polls,
                )
                raise ConfirmationTimeout(signature, timeout_s=timeout_s)
            self._sleep(min(self._poll_interval_s, remaining))
