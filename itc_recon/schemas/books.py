from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import date
from decimal import Decimal
from typing import List, Optional

# Book-side purchase records. Owned by the bookkeeping subsystem; the
# engine only reads them.


class BookLineItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    description: Optional[str] = None
    hsn_code: Optional[str] = None
    gst_rate: Decimal
    taxable_value: Decimal = Decimal(0)


class BookInvoice(BaseModel):
    model_config = ConfigDict(frozen=True)

    vendor_gstin: str
    invoice_number: str
    invoice_date: Optional[date] = None
    total_amount: Optional[Decimal] = None
    taxable_value: Decimal = Decimal(0)
    igst: Decimal = Decimal(0)
    cgst: Decimal = Decimal(0)
    sgst: Decimal = Decimal(0)
    cess: Decimal = Decimal(0)
    # Decided by the eligibility classifier, not by this engine
    itc_eligible: bool = True
    line_items: List[BookLineItem] = Field(default_factory=list)

    @field_validator("vendor_gstin", "invoice_number", mode="before")
    @classmethod
    def strip_key(cls, v):
        # Lookup against authority records is by exact (GSTIN, number)
        return v.strip() if isinstance(v, str) else v

    @property
    def itc_amount(self) -> Decimal:
        return self.igst + self.cgst + self.sgst
