"""
Ledger error taxonomy.

Every error carries a machine-readable ``kind`` and the HTTP status the API
reports it with. Handlers in ``main`` render them as
``{"success": false, "kind": ..., "message": ...}``.
"""
from fastapi import status


class LedgerError(Exception):
    """Base class for errors raised by loan and ledger services"""
    kind = "ledger_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Ledger operation failed"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"success": False, "kind": self.kind, "message": self.message}


class NotFound(LedgerError):
    kind = "not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"


class LoanNotFound(NotFound):
    default_message = "Loan not found"


class TransactionNotFound(NotFound):
    default_message = "Transaction not found"


class DuplicateTitle(LedgerError):
    kind = "duplicate_title"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, title: str):
        self.title = title
        super().__init__(f"A loan titled '{title}' already exists")


class InvalidInput(LedgerError):
    kind = "invalid_input"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request data"


class StorageFailure(LedgerError):
    kind = "storage_failure"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "The operation could not be saved"
