# Ledger module
from loanbook.modules.ledger.services import LedgerService, LedgerResult, signed_amount

__all__ = ["LedgerService", "LedgerResult", "signed_amount"]
