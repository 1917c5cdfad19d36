from enum import Enum
from pydantic import BaseModel
from typing import Optional
from decimal import Decimal

# Aggregated views consumed by reporting and dashboard collaborators.
# Monetary totals stay Decimal; serialization to JSON happens at the API edge.


class ITCSource(str, Enum):
    GSTR2A = "GSTR2A"
    GSTR2B = "GSTR2B"
    COMPUTED = "COMPUTED"


class ReconciliationSummary(BaseModel):
    period: str
    total_gstr2a_invoices: int = 0
    total_purchase_invoices: int = 0
    exact_matches: int = 0
    partial_matches: int = 0
    fuzzy_matches: int = 0
    no_matches: int = 0
    missing_in_books: int = 0
    missing_in_gstr2a: int = 0
    total_mismatches: int = 0
    failed_records: int = 0
    total_itc_available: Decimal = Decimal(0)
    total_itc_claimed: Decimal = Decimal(0)
    total_itc_pending: Decimal = Decimal(0)
    excess_claim: Decimal = Decimal(0)


class ITCAvailability(BaseModel):
    period: str
    source: ITCSource
    vendor_gstin: Optional[str] = None
    available_itc: Decimal = Decimal(0)
    claimed_itc: Decimal = Decimal(0)
    unclaimed_itc: Decimal = Decimal(0)
    excess_claim: Decimal = Decimal(0)
