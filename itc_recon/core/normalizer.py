import logging
import re
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, Iterator, List, Tuple

from itc_recon.schemas.authority import (
    AmendedInvoice,
    AuthorityBatch,
    AuthorityInvoice,
    FlatAuthorityInvoice,
    SupplierGroup,
)
from itc_recon.schemas.books import BookInvoice

logger = logging.getLogger(__name__)

GSTIN_PATTERN = re.compile(r"^[0-9]{2}[A-Z]{5}[0-9]{4}[A-Z]{1}[1-9A-Z]{1}Z[0-9A-Z]{1}$")
AUTHORITY_DATE_FORMAT = "%d-%m-%Y"

InvoiceKey = Tuple[str, str]


def is_valid_gstin(value: str) -> bool:
    return bool(value) and GSTIN_PATTERN.match(value) is not None


def parse_authority_date(text: str) -> date:
    """Authority dates arrive as DD-MM-YYYY text."""
    return datetime.strptime((text or "").strip(), AUTHORITY_DATE_FORMAT).date()


def invoice_key(vendor_gstin: str, invoice_number: str) -> InvoiceKey:
    return (vendor_gstin, invoice_number)


def normalize_invoice(supplier_id: str, invoice: AuthorityInvoice) -> FlatAuthorityInvoice:
    """
    Flatten one authority invoice and aggregate its tax lines.
    Raises ValueError when the invoice date cannot be parsed.
    """
    zero = Decimal(0)
    lines = invoice.tax_lines
    return FlatAuthorityInvoice(
        supplier_id=supplier_id,
        invoice=invoice,
        invoice_date=parse_authority_date(invoice.invoice_date_text),
        declared_value=invoice.declared_value,
        taxable_value=sum((line.taxable_value for line in lines), zero),
        igst=sum((line.igst for line in lines), zero),
        cgst=sum((line.cgst for line in lines), zero),
        sgst=sum((line.sgst for line in lines), zero),
        cess=sum((line.cess for line in lines), zero),
        rates=[line.rate for line in lines],
    )


def authority_itc(invoice: AuthorityInvoice) -> Decimal:
    return sum((line.itc_amount for line in invoice.tax_lines), Decimal(0))


def effective_supplier_groups(batch: AuthorityBatch) -> List[SupplierGroup]:
    """
    Supplier groups with amendments applied.

    An amended invoice supersedes the first invoice of the same supplier whose
    number equals its original invoice number. Amendments without an original
    in the batch are added to their supplier's group.
    """
    if not batch.amendments:
        return list(batch.suppliers)

    groups: List[Tuple[str, List[AuthorityInvoice]]] = [
        (group.supplier_id, list(group.invoices)) for group in batch.suppliers
    ]

    for amendment_group in batch.amendments:
        supplier_id = amendment_group.supplier_id
        for amended in amendment_group.invoices:
            if not _replace_original(groups, supplier_id, amended):
                logger.info(
                    f"Amendment {amended.invoice_number} for {supplier_id} "
                    f"has no original {amended.original_invoice_number} in batch"
                )
                target = next((inv for sid, inv in reversed(groups) if sid == supplier_id), None)
                if target is None:
                    target = []
                    groups.append((supplier_id, target))
                target.append(amended)

    return [SupplierGroup(supplier_id=sid, invoices=invoices) for sid, invoices in groups]


def _replace_original(groups, supplier_id: str, amended: AmendedInvoice) -> bool:
    for sid, invoices in groups:
        if sid != supplier_id:
            continue
        for position, original in enumerate(invoices):
            if original.invoice_number == amended.original_invoice_number:
                invoices[position] = amended
                return True
    return False


def flatten_batch(batch: AuthorityBatch) -> Iterator[Tuple[str, AuthorityInvoice]]:
    """Yield (supplier_id, invoice) pairs in batch order, amendments applied."""
    for group in effective_supplier_groups(batch):
        for invoice in group.invoices:
            yield group.supplier_id, invoice


def index_book_invoices(book_invoices: List[BookInvoice]) -> Dict[InvoiceKey, BookInvoice]:
    """Exact (vendor GSTIN, invoice number) lookup. First record for a key wins."""
    index: Dict[InvoiceKey, BookInvoice] = {}
    for book in book_invoices:
        key = invoice_key(book.vendor_gstin, book.invoice_number)
        if key in index:
            logger.warning(f"Duplicate book invoice {book.invoice_number} for vendor {book.vendor_gstin}; keeping first")
            continue
        index[key] = book
    return index
