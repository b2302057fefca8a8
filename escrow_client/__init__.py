"""
Escrow trade client.

Talks to an external escrow program on a Solana cluster:
- ledger: account layouts, instruction encoding, derived authority, RPC gateway
- execution: trade orchestration + funding precondition
- config/common: settings, key material, structured logging
"""

__version__ = "1.0.0"
