from types import SimpleNamespace

import pytest
from solana.exceptions import SolanaRpcException
from solana.rpc.api import Client
from solana.rpc.core import RPCException
from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.system_program import TransferParams, transfer
from solders.transaction import Transaction
from solders.transaction_status import TransactionConfirmationStatus

from escrow_client.common.errors import ConfirmationTimeout, EscrowClientError, LedgerUnavailable, SubmissionRejected
from escrow_client.ledger.gateway import LedgerGateway, SolanaRpcGateway


class _Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def sleep(self, s: float) -> None:
        self.now += s


class _ClientStub:
    """
    Mimics the subset of `solana.rpc.api.Client` the gateway calls.
    """

    def __init__(self, *, statuses=None, send_error=None, account=None, read_error=None):
        self._statuses = list(statuses or [])
        self._send_error = send_error
        self._account = account
        self._read_error = read_error
        self.sent: list[bytes] = []
        self.status_calls = 0

    def get_latest_blockhash(self, commitment=None):  # noqa: ARG002
        return SimpleNamespace(value=SimpleNamespace(blockhash=Hash.new_unique()))

    def send_raw_transaction(self, txn, opts=None):  # noqa: ARG002
        self.sent.append(bytes(txn))
        if self._send_error is not None:
            raise self._send_error
        return SimpleNamespace(value=Signature.new_unique())

    def get_signature_statuses(self, signatures):  # noqa: ARG002
        self.status_calls += 1
        status = self._statuses.pop(0) if self._statuses else None
        if isinstance(status, Exception):
            raise status
        return SimpleNamespace(value=[status])

    def get_account_info(self, pubkey, commitment=None):  # noqa: ARG002
        if self._read_error is not None:
            raise self._read_error
        return SimpleNamespace(value=self._account)

    def get_minimum_balance_for_rent_exemption(self, usize, commitment=None):  # noqa: ARG002
        return SimpleNamespace(value=1_000 + int(usize))

    def get_balance(self, pubkey, commitment=None):  # noqa: ARG002
        return SimpleNamespace(value=42)


def _gateway(client, clock=None, *, commitment: str = "confirmed") -> SolanaRpcGateway:
    clock = clock or _Clock()
    return SolanaRpcGateway(
        "http://localhost:8899",
        commitment=commitment,
        poll_interval_s=0.5,
        client=client,
        sleep=clock.sleep,
        clock=clock,
    )


def _status(level, err=None):
    return SimpleNamespace(err=err, confirmation_status=level)


def _submit(gw: SolanaRpcGateway) -> str:
    payer = Keypair()
    ix = transfer(TransferParams(from_pubkey=payer.pubkey(), to_pubkey=Pubkey.new_unique(), lamports=1))
    return gw.submit_transaction(instructions=[ix], signers=[payer], fee_payer=payer.pubkey())


def test_gateway_satisfies_protocol() -> None:
    assert isinstance(_gateway(_ClientStub()), LedgerGateway)


def test_unknown_commitment_is_refused() -> None:
    with pytest.raises(ValueError, match="Unsupported commitment"):
        _gateway(_ClientStub(), commitment="max")


def test_submit_sends_once_and_returns_signature() -> None:
    client = _ClientStub()
    signature = _submit(_gateway(client))
    assert len(client.sent) == 1
    assert str(Signature.from_string(signature)) == signature


def test_preflight_failure_maps_to_submission_rejected() -> None:
    payload = SimpleNamespace(
        message="Transaction simulation failed",
        data=SimpleNamespace(err="InstructionError(4, Custom(0))", logs=["Program log: Error: InvalidInstruction"]),
    )
    client = _ClientStub(send_error=RPCException(payload))

    with pytest.raises(SubmissionRejected) as exc:
        _submit(_gateway(client))

    assert exc.value.diagnostic == "Transaction simulation failed (InstructionError(4, Custom(0)))"
    assert exc.value.logs == ("Program log: Error: InvalidInstruction",)
    assert exc.value.signature is not None
    assert len(client.sent) == 1


def test_confirmation_waits_for_target_commitment() -> None:
    client = _ClientStub(
        statuses=[
            None,
            _status(TransactionConfirmationStatus.Processed),
            _status(TransactionConfirmationStatus.Confirmed),
        ]
    )
    _gateway(client).wait_for_confirmation(str(Signature.new_unique()), timeout_s=10)
    assert client.status_calls == 3


def test_finalized_satisfies_confirmed() -> None:
    client = _ClientStub(statuses=[_status(TransactionConfirmationStatus.Finalized)])
    _gateway(client).wait_for_confirmation(str(Signature.new_unique()), timeout_s=10)
    assert client.status_calls == 1


def test_confirmation_times_out() -> None:
    clock = _Clock()
    client = _ClientStub()
    with pytest.raises(ConfirmationTimeout) as exc:
        _gateway(client, clock).wait_for_confirmation(str(Signature.new_unique()), timeout_s=2)
    assert exc.value.timeout_s == 2
    assert clock.now == pytest.approx(2.0)
    assert client.status_calls == 5


def test_execution_error_maps_to_submission_rejected() -> None:
    client = _ClientStub(statuses=[_status(TransactionConfirmationStatus.Confirmed, err="InstructionError(0, Custom(1))")])
    with pytest.raises(SubmissionRejected, match="Custom\\(1\\)"):
        _gateway(client).wait_for_confirmation(str(Signature.new_unique()), timeout_s=10)


def test_get_account_snapshot_and_missing() -> None:
    owner = Pubkey.new_unique()
    raw = SimpleNamespace(data=b"\x01\x02", owner=owner, lamports=7, executable=True)
    address = Pubkey.new_unique()

    snap = _gateway(_ClientStub(account=raw)).get_account(address)
    assert snap is not None
    assert snap.address == address
    assert snap.data == b"\x01\x02"
    assert snap.owner == owner
    assert snap.lamports == 7
    assert snap.executable is True

    assert _gateway(_ClientStub(account=None)).get_account(address) is None


def test_balance_and_rent_unwrap_values() -> None:
    gw = _gateway(_ClientStub())
    assert gw.get_balance(Pubkey.new_unique()) == 42
    assert gw.get_minimum_balance_for_rent_exemption(105) == 1_105


def _transport_error(func) -> SolanaRpcException:
    return SolanaRpcException(TimeoutError("read timed out"), func, None, None)


def test_lost_submit_acknowledgement_is_an_unknown_outcome() -> None:
    client = _ClientStub(send_error=_transport_error(Client.send_raw_transaction))

    with pytest.raises(ConfirmationTimeout) as exc:
        _submit(_gateway(client))

    assert isinstance(exc.value, EscrowClientError)
    assert not isinstance(exc.value, SubmissionRejected)
    # carries the locally computed signature so the caller can re-query it
    assert str(Transaction.from_bytes(client.sent[0]).signatures[0]) == exc.value.signature
    assert len(client.sent) == 1


def test_failed_status_poll_keeps_waiting_until_confirmed() -> None:
    client = _ClientStub(
        statuses=[
            _transport_error(Client.get_signature_statuses),
            _status(TransactionConfirmationStatus.Confirmed),
        ]
    )
    _gateway(client).wait_for_confirmation(str(Signature.new_unique()), timeout_s=10)
    assert client.status_calls == 2


def test_failing_status_polls_end_in_confirmation_timeout() -> None:
    clock = _Clock()
    client = _ClientStub(statuses=[_transport_error(Client.get_signature_statuses) for _ in range(10)])
    with pytest.raises(ConfirmationTimeout):
        _gateway(client, clock).wait_for_confirmation(str(Signature.new_unique()), timeout_s=1)
    assert client.status_calls == 3


def test_account_read_failure_is_ledger_unavailable() -> None:
    client = _ClientStub(read_error=_transport_error(Client.get_account_info))
    with pytest.raises(LedgerUnavailable) as exc:
        _gateway(client).get_account(Pubkey.new_unique())
    assert exc.value.operation == "get_account"
    assert isinstance(exc.value, EscrowClientError)
