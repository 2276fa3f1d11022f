# Transactions module
from loanbook.modules.transactions.models import Transaction, TransactionType, TransactionMethod

__all__ = ["Transaction", "TransactionType", "TransactionMethod"]
