from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from escrow_client.common.errors import KeypairLoadError

logger = logging.getLogger(__name__)

KEYPAIR_BYTES = 64


def _expand(path: str | Path) -> Path:
    return Path(str(path).strip()).expanduser()


def load_keypair(path: str | Path) -> Keypair:
    """
    Load a keypair stored the way the Solana CLI writes it: a JSON array of 64 byte values.
    """
    p = _expand(path)
    try:
        raw = p.read_text(encoding="utf-8")
    except OSError as e:
        raise KeypairLoadError(f"Failed to read keypair file {str(p)!r} ({type(e).__name__}: {e})") from e

    try:
        values = json.loads(raw)
    except ValueError as e:
        raise KeypairLoadError(f"Keypair file {str(p)!r} is not valid JSON") from e

    if not isinstance(values, list) or len(values) != KEYPAIR_BYTES:
        raise KeypairLoadError(f"Keypair file {str(p)!r} must hold a JSON array of {KEYPAIR_BYTES} integers")
    if not all(isinstance(v, int) and 0 <= v <= 255 for v in values):
        raise KeypairLoadError(f"Keypair file {str(p)!r} holds values outside 0..255")

    try:
        return Keypair.from_bytes(bytes(values))
    except Exception as e:
        raise KeypairLoadError(f"Keypair file {str(p)!r} does not hold a valid ed25519 keypair") from e


def load_payer(path: Optional[str | Path], *, allow_generate: bool = False) -> Keypair:
    """
    Load the keypair that pays fees for a trade.

    With `allow_generate`, an unreadable file falls back to a fresh random keypair
    (useful on local test validators where the airdrop funds it).
    """
    try:
        if not path:
            raise KeypairLoadError("No payer keypair path configured")
        return load_keypair(path)
    except KeypairLoadError:
        if not allow_generate:
            raise
        kp = Keypair()
        logger.warning(
            "Failed to load payer keypair from %r; falling back to new random keypair %s",
            str(path or ""),
            str(kp.pubkey()),
        )
        return kp


def parse_pubkey(value: str, *, name: str = "pubkey") -> Pubkey:
    s = str(value or "").strip()
    if not s:
        raise ValueError(f"{name} is required")
    try:
        return Pubkey.from_string(s)
    except Exception as e:
        raise ValueError(f"{name} is not a valid base58 public key: {s!r}") from e
