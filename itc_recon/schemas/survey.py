from enum import Enum
from pydantic import BaseModel, Field
from typing import List
from datetime import date, datetime, timezone
from decimal import Decimal


class RecordSource(str, Enum):
    GSTR2A = "GSTR2A"
    BOOKS = "BOOKS"


class MissingInvoice(BaseModel):
    invoice_number: str
    vendor_gstin: str
    source: RecordSource
    amount: Decimal
    itc_amount: Decimal


class AmountMismatch(BaseModel):
    invoice_number: str
    vendor_gstin: str
    authority_amount: Decimal
    book_amount: Decimal
    difference: Decimal
    percentage_diff: Decimal


class DateMismatch(BaseModel):
    invoice_number: str
    vendor_gstin: str
    authority_date: date
    book_date: date
    days_difference: int  # authority minus book


class TaxRateMismatch(BaseModel):
    invoice_number: str
    vendor_gstin: str
    authority_rate: Decimal
    book_rates: List[Decimal]


class DuplicateInvoice(BaseModel):
    invoice_number: str
    vendor_gstin: str
    occurrences: int
    total_amount: Decimal


class MismatchSurveyResult(BaseModel):
    missing_in_books: List[MissingInvoice] = Field(default_factory=list)
    missing_in_authority: List[MissingInvoice] = Field(default_factory=list)
    amount_mismatches: List[AmountMismatch] = Field(default_factory=list)
    date_mismatches: List[DateMismatch] = Field(default_factory=list)
    tax_rate_mismatches: List[TaxRateMismatch] = Field(default_factory=list)
    duplicate_invoices: List[DuplicateInvoice] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)

    @property
    def total_discrepancies(self) -> int:
        return (
            len(self.missing_in_books)
            + len(self.missing_in_authority)
            + len(self.amount_mismatches)
            + len(self.date_mismatches)
            + len(self.tax_rate_mismatches)
            + len(self.duplicate_invoices)
        )


class VendorMismatchSummary(BaseModel):
    vendor_gstin: str
    total_discrepancies: int = 0
    amount_mismatches: int = 0
    date_mismatches: int = 0
    tax_rate_mismatches: int = 0
    missing_invoices: int = 0
    duplicate_invoices: int = 0
    total_impact: Decimal = Decimal(0)


class MismatchReport(BaseModel):
    period: str
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    vendor_mismatches: List[VendorMismatchSummary] = Field(default_factory=list)
    amount_mismatches: List[AmountMismatch] = Field(default_factory=list)
    date_mismatches: List[DateMismatch] = Field(default_factory=list)
    tax_rate_mismatches: List[TaxRateMismatch] = Field(default_factory=list)
    missing_invoices: List[MissingInvoice] = Field(default_factory=list)
    duplicate_invoices: List[DuplicateInvoice] = Field(default_factory=list)
    total_discrepancies: int = 0
