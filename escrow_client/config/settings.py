from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_RPC_URL = "http://localhost:8899"
DEFAULT_SOLANA_CLI_CONFIG = "~/.config/solana/cli/config.yml"
DEFAULT_APP_CONFIG = "escrow.yml"

COMMITMENT_LEVELS: frozenset[str] = frozenset({"processed", "confirmed", "finalized"})

TRUTHY = {"1", "true", "t", "yes", "y", "on"}


def _is_truthy(v: object | None) -> bool:
    if v is None:
        return False
    return str(v).strip().lower() in TRUTHY


def _get_nonempty_env(name: str) -> Optional[str]:
    v = os.getenv(name)
    if v is None:
        return None
    s = str(v).strip()
    return s if s else None


def _float_env(name: str, default: float) -> float:
    v = _get_nonempty_env(name)
    return float(default) if v is None else float(v)


def _int_env(name: str, default: int) -> int:
    v = _get_nonempty_env(name)
    return int(default) if v is None else int(v)


@dataclass(frozen=True, slots=True)
class ClientSettings:
    """
    Runtime settings for talking to the cluster.

    Env overrides:
      - ESCROW_RPC_URL                  (default: Solana CLI config, then localhost)
      - ESCROW_COMMITMENT               (default: confirmed)
      - ESCROW_CONFIRM_TIMEOUT_S        (default: 30)
      - ESCROW_CONFIRM_POLL_INTERVAL_S  (default: 0.5)
      - ESCROW_RPC_TIMEOUT_S            (default: 10)
      - ESCROW_LAMPORTS_PER_SIGNATURE   (default: 5000)
      - ESCROW_AIRDROP_ENABLED          (default: 1)
      - ESCROW_APP_CONFIG               (default: escrow.yml)
      - SOLANA_CLI_CONFIG               (default: ~/.config/solana/cli/config.yml)
    """

    rpc_url: Optional[str] = None
    commitment: str = "confirmed"
    confirm_timeout_s: float = 30.0
    confirm_poll_interval_s: float = 0.5
    rpc_timeout_s: float = 10.0
    lamports_per_signature: int = 5000
    airdrop_enabled: bool = True
    app_config_path: str = DEFAULT_APP_CONFIG
    solana_cli_config_path: str = DEFAULT_SOLANA_CLI_CONFIG

    def __post_init__(self) -> None:
        commitment = str(self.commitment or "").strip().lower()
        if commitment not in COMMITMENT_LEVELS:
            raise ValueError(f"commitment must be one of {sorted(COMMITMENT_LEVELS)}, got {self.commitment!r}")
        object.__setattr__(self, "commitment", commitment)

        if self.confirm_timeout_s <= 0:
            raise ValueError("confirm_timeout_s must be > 0")
        if self.confirm_poll_interval_s <= 0:
            raise ValueError("confirm_poll_interval_s must be > 0")
        if self.rpc_timeout_s <= 0:
            raise ValueError("rpc_timeout_s must be > 0")
        if self.lamports_per_signature < 0:
            raise ValueError("lamports_per_signature must be >= 0")

    @staticmethod
    def from_env() -> "ClientSettings":
        return ClientSettings(
            rpc_url=_get_nonempty_env("ESCROW_RPC_URL"),
            commitment=_get_nonempty_env("ESCROW_COMMITMENT") or "confirmed",
            confirm_timeout_s=_float_env("ESCROW_CONFIRM_TIMEOUT_S", 30.0),
            confirm_poll_interval_s=_float_env("ESCROW_CONFIRM_POLL_INTERVAL_S", 0.5),
            rpc_timeout_s=_float_env("ESCROW_RPC_TIMEOUT_S", 10.0),
            lamports_per_signature=_int_env("ESCROW_LAMPORTS_PER_SIGNATURE", 5000),
            airdrop_enabled=_is_truthy(_get_nonempty_env("ESCROW_AIRDROP_ENABLED") or "1"),
            app_config_path=_get_nonempty_env("ESCROW_APP_CONFIG") or DEFAULT_APP_CONFIG,
            solana_cli_config_path=_get_nonempty_env("SOLANA_CLI_CONFIG") or DEFAULT_SOLANA_CLI_CONFIG,
        )
