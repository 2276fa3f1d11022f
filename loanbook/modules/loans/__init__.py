# Loans module
from loanbook.modules.loans.models import Loan, LoanStatus, LoanType
from loanbook.modules.loans.services import LoanService, loan_owned_by

__all__ = ["Loan", "LoanStatus", "LoanType", "LoanService", "loan_owned_by"]
