class ReconciliationError(Exception):
    """Base class for errors raised by the reconciliation engine."""


class ImportValidationError(ReconciliationError):
    """Authority data could not be imported. Fatal for that import only."""


class BatchLimitExceeded(ReconciliationError):
    def __init__(self, invoice_count: int, limit: int):
        self.invoice_count = invoice_count
        self.limit = limit
        super().__init__(f"Batch of {invoice_count} invoices exceeds limit of {limit}")


class ReconciliationNotFound(ReconciliationError):
    """No imported data or completed run exists for the requested (user, period)."""
