"""
Trade execution package.

Callers hand in trade parameters only. This package owns:
- the solvency precondition (funding)
- transaction composition + submission (orchestrator)
- read-back of the resulting escrow record
"""

from .funding import FundingGuard  # noqa: F401
from .models import InitiatedTrade, InitiateTradeRequest, SubmissionReceipt, TakeTradeRequest  # noqa: F401
from .orchestrator import EscrowOrchestrator  # noqa: F401
from .program import check_program  # noqa: F401
