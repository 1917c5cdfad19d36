from enum import Enum
from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from decimal import Decimal

class VendorReconciliationStatus(str, Enum):
    RECONCILED = "RECONCILED"
    PARTIALLY_RECONCILED = "PARTIALLY_RECONCILED"
    PENDING = "PENDING"
    DISCREPANCIES = "DISCREPANCIES"

class VendorReconciliation(BaseModel):
    vendor_gstin: str
    total_invoices: int = 0
    matched_invoices: int = 0
    mismatched_invoices: int = 0
    missing_invoices: int = 0
    total_value: Decimal = Decimal(0)
    total_itc: Decimal = Decimal(0)
    status: VendorReconciliationStatus = VendorReconciliationStatus.PENDING
    action_items: List[str] = Field(default_factory=list)
    last_reconciliation_date: Optional[datetime] = None
