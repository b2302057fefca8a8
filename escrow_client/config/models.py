from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from solders.pubkey import Pubkey


def _check_pubkey(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    s = str(v).strip()
    try:
        Pubkey.from_string(s)
    except Exception as e:
        raise ValueError(f"not a valid base58 public key: {s!r}") from e
    return s


class SolanaCliConfig(BaseModel):
    """
    Subset of the Solana CLI config file (~/.config/solana/cli/config.yml).
    """

    model_config = ConfigDict(extra="ignore")

    json_rpc_url: Optional[str] = Field(default=None)
    websocket_url: Optional[str] = Field(default=None)
    keypair_path: Optional[str] = Field(default=None)
    commitment: Optional[str] = Field(default=None)


class AppConfig(BaseModel):
    """
    Trade participants and their token accounts.

    X is the asset the initializer offers; Y is the asset the taker pays with.
    """

    model_config = ConfigDict(extra="forbid")

    initializer_keypair_path: str = Field(..., description="Solana CLI keypair file of the initializer.")
    initializer_x_token_account_pub_key: str = Field(..., description="Initializer's X account (source).")
    initializer_y_token_account_pub_key: str = Field(..., description="Initializer's Y account (receives).")

    taker_keypair_path: str = Field(..., description="Solana CLI keypair file of the taker.")
    taker_x_token_account_pub_key: str = Field(..., description="Taker's X account (receives).")
    taker_y_token_account_pub_key: str = Field(..., description="Taker's Y account (source).")

    program_id: Optional[str] = Field(default=None, description="Base58 id of the deployed escrow program.")
    program_keypair_path: Optional[str] = Field(
        default=None, description="Program keypair written by `solana program deploy`."
    )

    @field_validator(
        "initializer_x_token_account_pub_key",
        "initializer_y_token_account_pub_key",
        "taker_x_token_account_pub_key",
        "taker_y_token_account_pub_key",
        "program_id",
    )
    @classmethod
    def _validate_pubkey(cls, v: Optional[str]) -> Optional[str]:
        return _check_pubkey(v)

    @model_validator(mode="after")
    def _require_program(self) -> "AppConfig":
        if not self.program_id and not self.program_keypair_path:
            raise ValueError("one of program_id or program_keypair_path is required")
        return self
