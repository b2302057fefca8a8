from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import ValidationError
from solders.pubkey import Pubkey

from escrow_client.common.errors import ConfigError
from escrow_client.common.keys import load_keypair
from escrow_client.config.models import AppConfig, SolanaCliConfig
from escrow_client.config.settings import DEFAULT_RPC_URL, ClientSettings

logger = logging.getLogger(__name__)

_PATH_FIELDS = ("initializer_keypair_path", "taker_keypair_path", "program_keypair_path")


def _read_yaml(p: Path) -> dict[str, Any]:
    raw = p.read_text(encoding="utf-8")
    data = yaml.safe_load(raw) if raw.strip() else {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {str(p)!r} must hold a YAML mapping")
    return data


def load_solana_cli_config(path: str | Path) -> Optional[SolanaCliConfig]:
    """
    Returns None when the CLI config is absent or unreadable; callers fall back to defaults.
    """
    p = Path(str(path)).expanduser()
    if not p.exists():
        return None
    try:
        return SolanaCliConfig.model_validate(_read_yaml(p))
    except (OSError, yaml.YAMLError, ConfigError, ValidationError) as e:
        logger.warning("Failed to read Solana CLI config %s: %s", str(p), e)
        return None


def resolve_rpc_url(settings: ClientSettings) -> str:
    """
    Priority: ESCROW_RPC_URL, then the Solana CLI config, then localhost.
    """
    if settings.rpc_url:
        return settings.rpc_url
    cli = load_solana_cli_config(settings.solana_cli_config_path)
    if cli is not None and cli.json_rpc_url:
        return cli.json_rpc_url
    logger.warning("Failed to read RPC url from CLI config file, falling back to %s", DEFAULT_RPC_URL)
    return DEFAULT_RPC_URL


def load_app_config(path: str | Path) -> AppConfig:
    """
    Load the trade participants config.

    Relative keypair paths are resolved against the config file's directory.
    """
    p = Path(str(path)).expanduser()
    if not p.exists():
        raise ConfigError(f"App config not found: {str(p)!r}")
    try:
        data = _read_yaml(p)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to read app config {str(p)!r} ({type(e).__name__}: {e})") from e

    base = p.resolve().parent
    for k in _PATH_FIELDS:
        v = data.get(k)
        if isinstance(v, str) and v.strip():
            kp = Path(v.strip()).expanduser()
            data[k] = str(kp if kp.is_absolute() else base / kp)

    try:
        return AppConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid app config {str(p)!r}: {e}") from e


def resolve_program_id(config: AppConfig) -> Pubkey:
    if config.program_id:
        return Pubkey.from_string(config.program_id)
    # model validation guarantees one of the two is present
    return load_keypair(str(config.program_keypair_path)).pubkey()
