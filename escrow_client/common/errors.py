from __future__ import annotations

from typing import Optional, Sequence


class EscrowClientError(RuntimeError):
    """
    Base class for every failure the client surfaces.

    Nothing derived from this is retried inside the client: a failed atomic
    submission cannot be told apart from an applied-but-unacknowledged one
    without re-querying ledger state first.
    """


class MalformedLayout(EscrowClientError):
    """
    Raised when account bytes or instruction data do not match the fixed layout.
    """


class AccountNotFound(EscrowClientError):
    def __init__(self, address: str, message: str | None = None) -> None:
        self.address = str(address)
        super().__init__(message or f"Account not found: {self.address}")


class RecordNotFound(AccountNotFound):
    """
    Raised when the escrow record account is missing or holds no initialized record.
    """

    def __init__(self, address: str, message: str | None = None) -> None:
        super().__init__(address, message or f"Escrow record not found: {address}")


class InsufficientFunds(EscrowClientError):
    def __init__(self, *, payer: str, required: int, available: int) -> None:
        self.payer = str(payer)
        self.required = int(required)
        self.available = int(available)
        super().__init__(
            f"Insufficient funds for {self.payer}: required={self.required} lamports "
            f"available={self.available} lamports"
        )


class SubmissionRejected(EscrowClientError):
    """
    Raised when the cluster rejects a submission (preflight simulation or execution).

    `diagnostic` is the raw error reported by the cluster; `logs` are the program
    logs when the cluster returned them.
    """

    def __init__(
        self,
        diagnostic: str,
        *,
        signature: Optional[str] = None,
        logs: Sequence[str] | None = None,
    ) -> None:
        self.diagnostic = str(diagnostic)
        self.signature = signature
        self.logs: tuple[str, ...] = tuple(logs or ())
        super().__init__(f"Submission rejected: {self.diagnostic}")


class ConfirmationTimeout(EscrowClientError):
    """
    Raised when a confirmation deadline passes without a settled status.

    The transaction may still have applied; callers must re-query state before
    deciding to resubmit.
    """

    def __init__(self, signature: str, *, timeout_s: float) -> None:
        self.signature = str(signature)
        self.timeout_s = float(timeout_s)
        super().__init__(f"Confirmation timed out after {self.timeout_s:.1f}s (signature={self.signature})")


class ProgramNotDeployed(EscrowClientError):
    pass


class KeypairLoadError(EscrowClientError):
    pass


class ConfigError(EscrowClientError):
    pass


class LedgerUnavailable(EscrowClientError):
    """
    Raised when a read against the cluster fails at the transport level (no answer, timeout).
    """

    def __init__(self, operation: str, diagnostic: str) -> None:
        self.operation = str(operation)
        self.diagnostic = str(diagnostic)
        super().__init__(f"Ledger {self.operation} failed: {self.diagnostic}")
