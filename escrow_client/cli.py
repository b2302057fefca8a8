from __future__ import annotations

import argparse
import json
import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from escrow_client.common.errors import EscrowClientError
from escrow_client.common.keys import load_payer, parse_pubkey
from escrow_client.common.logging import init_structured_logging, log_event
from escrow_client.config.loader import load_app_config, resolve_program_id, resolve_rpc_url
from escrow_client.config.models import AppConfig
from escrow_client.config.settings import ClientSettings
from escrow_client.execution.funding import FundingGuard
from escrow_client.execution.orchestrator import EscrowOrchestrator
from escrow_client.execution.program import check_program
from escrow_client.ledger.gateway import LedgerGateway, SolanaRpcGateway

logger = logging.getLogger("escrow_client.cli")

DEFAULT_OFFERED_AMOUNT = 10
DEFAULT_EXPECTED_AMOUNT = 20


@dataclass(frozen=True, slots=True)
class _Session:
    settings: ClientSettings
    config: AppConfig
    gateway: LedgerGateway
    orchestrator: EscrowOrchestrator
    program_id: Pubkey


def _emit(kind: str, payload: dict[str, Any]) -> None:
    print(json.dumps({"result": kind, **payload}, separators=(",", ":"), sort_keys=True))


def _open_session(args: argparse.Namespace, *, gateway: Optional[LedgerGateway]) -> _Session:
    settings = ClientSettings.from_env()
    config = load_app_config(args.config or settings.app_config_path)

    if gateway is None:
        rpc_url = resolve_rpc_url(settings)
        gateway = SolanaRpcGateway(
            rpc_url,
            commitment=settings.commitment,
            timeout_s=settings.rpc_timeout_s,
            poll_interval_s=settings.confirm_poll_interval_s,
        )
        log_event(logger, "cluster.connected", rpc_url=rpc_url, node_version=gateway.get_version())

    program_id = resolve_program_id(config)
    check_program(gateway, program_id)

    funding = FundingGuard(
        gateway,
        lamports_per_signature=settings.lamports_per_signature,
        airdrop_enabled=settings.airdrop_enabled,
        confirm_timeout_s=settings.confirm_timeout_s,
    )
    orchestrator = EscrowOrchestrator(
        gateway,
        funding=funding,
        confirm_timeout_s=settings.confirm_timeout_s,
        poll_interval_s=settings.confirm_poll_interval_s,
    )
    return _Session(settings=settings, config=config, gateway=gateway, orchestrator=orchestrator, program_id=program_id)


def _initializer(session: _Session, args: argparse.Namespace) -> Keypair:
    return load_payer(session.config.initializer_keypair_path, allow_generate=args.allow_generated_payer)


def _taker(session: _Session, args: argparse.Namespace) -> Keypair:
    return load_payer(session.config.taker_keypair_path, allow_generate=args.allow_generated_payer)


def _cmd_initiate(session: _Session, args: argparse.Namespace) -> Pubkey:
    cfg = session.config
    trade = session.orchestrator.initiate_trade(
        initializer=_initializer(session, args),
        initializer_asset_account=Pubkey.from_string(cfg.initializer_x_token_account_pub_key),
        offered_amount=args.offer,
        initializer_receiving_account=Pubkey.from_string(cfg.initializer_y_token_account_pub_key),
        expected_amount=args.expect,
        program_id=session.program_id,
    )
    _emit("initiated", trade.to_dict())
    return trade.escrow_account


def _cmd_take(session: _Session, args: argparse.Namespace, *, escrow_account: Pubkey) -> None:
    cfg = session.config
    receipt = session.orchestrator.take_trade(
        taker=_taker(session, args),
        taker_receiving_account=Pubkey.from_string(cfg.taker_y_token_account_pub_key),
        taker_asset_account=Pubkey.from_string(cfg.taker_x_token_account_pub_key),
        escrow_account=escrow_account,
        taker_offered_amount=args.offer,
        program_id=session.program_id,
    )
    _emit("taken", receipt.to_dict())


def _build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="escrow-client", description="Run escrow trades against a deployed escrow program.")
    ap.add_argument("--config", default=None, help="App config YAML (default: $ESCROW_APP_CONFIG or escrow.yml)")
    ap.add_argument(
        "--allow-generated-payer",
        action="store_true",
        help="Fall back to a fresh random keypair when a keypair file cannot be read",
    )
    sub = ap.add_subparsers(dest="command", required=True)

    demo = sub.add_parser("demo", help="Initiate a trade, then take it with the taker accounts")
    demo.add_argument("--offer", type=int, default=DEFAULT_OFFERED_AMOUNT, help="X amount offered by the initializer")
    demo.add_argument("--expect", type=int, default=DEFAULT_EXPECTED_AMOUNT, help="Y amount expected in return")

    initiate = sub.add_parser("initiate", help="Initiate a trade and print the decoded escrow record")
    initiate.add_argument("--offer", type=int, default=DEFAULT_OFFERED_AMOUNT)
    initiate.add_argument("--expect", type=int, default=DEFAULT_EXPECTED_AMOUNT)

    take = sub.add_parser("take", help="Take an existing trade")
    take.add_argument("--escrow-account", required=True, help="Base58 address of the escrow record account")
    take.add_argument("--offer", type=int, default=DEFAULT_OFFERED_AMOUNT, help="Amount submitted with Exchange")

    show = sub.add_parser("show", help="Decode an escrow record")
    show.add_argument("--escrow-account", required=True)
    return ap


def main(argv: Sequence[str] | None = None, *, gateway: Optional[LedgerGateway] = None) -> int:
    args = _build_parser().parse_args(argv)
    init_structured_logging(service="escrow-client")

    try:
        session = _open_session(args, gateway=gateway)
        if args.command == "demo":
            escrow_account = _cmd_initiate(session, args)
            _cmd_take(session, args, escrow_account=escrow_account)
        elif args.command == "initiate":
            _cmd_initiate(session, args)
        elif args.command == "take":
            _cmd_take(session, args, escrow_account=parse_pubkey(args.escrow_account, name="--escrow-account"))
        elif args.command == "show":
            escrow_account = parse_pubkey(args.escrow_account, name="--escrow-account")
            record = session.orchestrator.fetch_record(escrow_account)
            _emit("record", {"escrow_account": str(escrow_account), "record": record.to_dict()})
    except (EscrowClientError, ValueError) as e:
        log_event(
            logger,
            "cli.failed",
            severity="ERROR",
            command=args.command,
            error_type=type(e).__name__,
            error=str(e),
        )
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
