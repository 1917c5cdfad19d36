from pydantic import BaseModel, ConfigDict, Field, AliasChoices, field_validator, model_validator
from datetime import date
from decimal import Decimal
from typing import List, Optional, Any

# Authority-side (GSTR-2A / GSTR-2B) records.
# Field names follow the canonical shape; the portal's short JSON keys are
# accepted as aliases so an exported file can be passed through unchanged.


def _zero_if_null(v):
    return Decimal(0) if v is None else v


def _empty_if_null(v):
    return "" if v is None else str(v).strip()


class TaxLine(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    taxable_value: Decimal = Field(Decimal(0), validation_alias=AliasChoices("taxable_value", "txval"))
    rate: Decimal = Field(Decimal(0), validation_alias=AliasChoices("rate", "rt"))
    igst: Decimal = Field(Decimal(0), validation_alias=AliasChoices("igst", "iamt"))
    cgst: Decimal = Field(Decimal(0), validation_alias=AliasChoices("cgst", "camt"))
    sgst: Decimal = Field(Decimal(0), validation_alias=AliasChoices("sgst", "samt"))
    cess: Decimal = Field(Decimal(0), validation_alias=AliasChoices("cess", "csamt"))

    @field_validator("taxable_value", "rate", "igst", "cgst", "sgst", "cess", mode="before")
    @classmethod
    def null_amount_as_zero(cls, v):
        return _zero_if_null(v)

    @model_validator(mode="before")
    @classmethod
    def unwrap_item_detail(cls, data: Any):
        # Portal format nests the amounts: {"num": 1, "itm_det": {...}}
        if isinstance(data, dict) and "itm_det" in data:
            return data["itm_det"]
        return data

    @property
    def itc_amount(self) -> Decimal:
        return self.igst + self.cgst + self.sgst


class AuthorityInvoice(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    invoice_number: str = Field("", validation_alias=AliasChoices("invoice_number", "inum"))
    invoice_date_text: str = Field("", validation_alias=AliasChoices("invoice_date_text", "idt"))
    declared_value: Decimal = Field(Decimal(0), validation_alias=AliasChoices("declared_value", "val"))
    place_of_supply: Optional[str] = Field(None, validation_alias=AliasChoices("place_of_supply", "pos"))
    reverse_charge: bool = Field(False, validation_alias=AliasChoices("reverse_charge", "rchrg"))
    invoice_type: str = Field("R", validation_alias=AliasChoices("invoice_type", "inv_typ"))
    tax_lines: List[TaxLine] = Field(default_factory=list, validation_alias=AliasChoices("tax_lines", "itms"))

    @field_validator("invoice_number", mode="before")
    @classmethod
    def strip_invoice_number(cls, v):
        return _empty_if_null(v)

    @field_validator("declared_value", mode="before")
    @classmethod
    def null_value_as_zero(cls, v):
        # Rejected as an invoice error during the run, not at import
        return _zero_if_null(v)

    @field_validator("invoice_date_text", mode="before")
    @classmethod
    def null_date_as_empty(cls, v):
        return "" if v is None else v

    @field_validator("reverse_charge", mode="before")
    @classmethod
    def parse_reverse_charge(cls, v):
        if isinstance(v, str):
            return v.strip().upper() in ("Y", "YES", "TRUE")
        return v


class AmendedInvoice(AuthorityInvoice):
    original_invoice_number: str = Field(validation_alias=AliasChoices("original_invoice_number", "oinum"))
    original_invoice_date_text: Optional[str] = Field(
        None, validation_alias=AliasChoices("original_invoice_date_text", "oidt")
    )


class SupplierGroup(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    # A missing ctin surfaces as an invalid-GSTIN group error during the run
    supplier_id: str = Field("", validation_alias=AliasChoices("supplier_id", "ctin"))
    invoices: List[AuthorityInvoice] = Field(default_factory=list, validation_alias=AliasChoices("invoices", "inv"))

    @field_validator("supplier_id", mode="before")
    @classmethod
    def null_supplier_as_empty(cls, v):
        return _empty_if_null(v)


class AmendmentGroup(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    supplier_id: str = Field("", validation_alias=AliasChoices("supplier_id", "ctin"))
    invoices: List[AmendedInvoice] = Field(default_factory=list, validation_alias=AliasChoices("invoices", "inv"))

    @field_validator("supplier_id", mode="before")
    @classmethod
    def null_supplier_as_empty(cls, v):
        return _empty_if_null(v)


class AuthorityBatch(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    gstin: str
    fiscal_period: str = Field(validation_alias=AliasChoices("fiscal_period", "fp"))
    suppliers: List[SupplierGroup] = Field(default_factory=list, validation_alias=AliasChoices("suppliers", "b2b"))
    amendments: List[AmendmentGroup] = Field(default_factory=list, validation_alias=AliasChoices("amendments", "b2ba"))

    @property
    def invoice_count(self) -> int:
        return sum(len(g.invoices) for g in self.suppliers)


class FlatAuthorityInvoice(BaseModel):
    """One authority invoice with its supplier and aggregated tax totals."""
    model_config = ConfigDict(frozen=True)

    supplier_id: str
    invoice: AuthorityInvoice
    invoice_date: date
    declared_value: Decimal
    taxable_value: Decimal
    igst: Decimal
    cgst: Decimal
    sgst: Decimal
    cess: Decimal
    rates: List[Decimal] = Field(default_factory=list)

    @property
    def invoice_number(self) -> str:
        return self.invoice.invoice_number

    @property
    def itc_amount(self) -> Decimal:
        return self.igst + self.cgst + self.sgst

    @property
    def match_id(self) -> str:
        return f"{self.supplier_id}-{self.invoice.invoice_number}"
