"""
Set-based compliance survey of one authority batch against the books.

Unlike the matcher, tolerances here are fixed system constants and do not
follow the caller's MatchingPolicy.
"""
import logging
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from itc_recon.core.config import settings
from itc_recon.core.normalizer import (
    InvoiceKey,
    authority_itc,
    flatten_batch,
    index_book_invoices,
    invoice_key,
    parse_authority_date,
)
from itc_recon.core.tolerance import ToleranceCheck, day_difference, percentage_difference
from itc_recon.schemas.authority import AuthorityBatch, AuthorityInvoice
from itc_recon.schemas.books import BookInvoice
from itc_recon.schemas.survey import (
    AmountMismatch,
    DateMismatch,
    DuplicateInvoice,
    MismatchSurveyResult,
    MissingInvoice,
    RecordSource,
    TaxRateMismatch,
)

logger = logging.getLogger(__name__)


def _index_authority(batch: AuthorityBatch, result: MismatchSurveyResult) -> Dict[InvoiceKey, Tuple[str, AuthorityInvoice]]:
    index: Dict[InvoiceKey, Tuple[str, AuthorityInvoice]] = {}
    duplicates: Dict[InvoiceKey, DuplicateInvoice] = {}

    for supplier_id, invoice in flatten_batch(batch):
        key = invoice_key(supplier_id, invoice.invoice_number)
        if key not in index:
            index[key] = (supplier_id, invoice)
            continue

        duplicate = duplicates.get(key)
        if duplicate is None:
            first = index[key][1]
            duplicate = DuplicateInvoice(
                invoice_number=invoice.invoice_number,
                vendor_gstin=supplier_id,
                occurrences=1,
                total_amount=first.declared_value,
            )
            duplicates[key] = duplicate
            result.duplicate_invoices.append(duplicate)
        duplicate.occurrences += 1
        duplicate.total_amount += invoice.declared_value

    return index


def _compare_amounts(
    supplier_id: str, invoice: AuthorityInvoice, book: BookInvoice, tolerance: float
) -> Optional[AmountMismatch]:
    authority_amount = invoice.declared_value
    book_amount = book.total_amount or Decimal(0)
    percentage = percentage_difference(authority_amount, book_amount)
    if not ToleranceCheck.of(percentage, tolerance).exceeded:
        return None
    return AmountMismatch(
        invoice_number=invoice.invoice_number,
        vendor_gstin=supplier_id,
        authority_amount=authority_amount,
        book_amount=book_amount,
        difference=abs(authority_amount - book_amount),
        percentage_diff=percentage,
    )


def _compare_dates(
    supplier_id: str, invoice: AuthorityInvoice, book: BookInvoice, tolerance: int, result: MismatchSurveyResult
) -> Optional[DateMismatch]:
    if book.invoice_date is None:
        return None
    try:
        authority_date = parse_authority_date(invoice.invoice_date_text)
    except ValueError:
        result.errors.append(
            f"Unparseable date '{invoice.invoice_date_text}' on invoice {invoice.invoice_number} ({supplier_id}); date not compared"
        )
        return None

    days = day_difference(authority_date, book.invoice_date)
    if not ToleranceCheck.of(days, tolerance).exceeded:
        return None
    return DateMismatch(
        invoice_number=invoice.invoice_number,
        vendor_gstin=supplier_id,
        authority_date=authority_date,
        book_date=book.invoice_date,
        days_difference=days,
    )


def _compare_rates(supplier_id: str, invoice: AuthorityInvoice, book: BookInvoice) -> List[TaxRateMismatch]:
    if not book.line_items:
        return []
    book_rates = sorted({item.gst_rate for item in book.line_items})
    return [
        TaxRateMismatch(
            invoice_number=invoice.invoice_number,
            vendor_gstin=supplier_id,
            authority_rate=line.rate,
            book_rates=book_rates,
        )
        for line in invoice.tax_lines
        if line.rate not in book_rates
    ]


def identify_mismatches(
    batch: AuthorityBatch,
    book_invoices: List[BookInvoice],
    amount_tolerance: Optional[float] = None,
    date_tolerance: Optional[int] = None,
) -> MismatchSurveyResult:
    """
    Find invoices present on one side only, duplicate authority entries and
    amount, date and tax-rate discrepancies of pairs present on both sides.
    """
    amount_tolerance = settings.SURVEY_AMOUNT_TOLERANCE if amount_tolerance is None else amount_tolerance
    date_tolerance = settings.SURVEY_DATE_TOLERANCE_DAYS if date_tolerance is None else date_tolerance

    result = MismatchSurveyResult()
    authority_index = _index_authority(batch, result)
    book_index = index_book_invoices(book_invoices)

    for key, (supplier_id, invoice) in authority_index.items():
        book = book_index.get(key)
        if book is None:
            result.missing_in_books.append(MissingInvoice(
                invoice_number=invoice.invoice_number,
                vendor_gstin=supplier_id,
                source=RecordSource.GSTR2A,
                amount=invoice.declared_value,
                itc_amount=authority_itc(invoice),
            ))
            continue

        amount_mismatch = _compare_amounts(supplier_id, invoice, book, amount_tolerance)
        if amount_mismatch is not None:
            result.amount_mismatches.append(amount_mismatch)

        date_mismatch = _compare_dates(supplier_id, invoice, book, date_tolerance, result)
        if date_mismatch is not None:
            result.date_mismatches.append(date_mismatch)

        result.tax_rate_mismatches.extend(_compare_rates(supplier_id, invoice, book))

    for key, book in book_index.items():
        if key not in authority_index:
            result.missing_in_authority.append(MissingInvoice(
                invoice_number=book.invoice_number,
                vendor_gstin=book.vendor_gstin,
                source=RecordSource.BOOKS,
                amount=book.total_amount or Decimal(0),
                itc_amount=book.itc_amount,
            ))

    logger.info(
        f"Mismatch survey for period {batch.fiscal_period}: "
        f"missing_in_books={len(result.missing_in_books)} missing_in_authority={len(result.missing_in_authority)} "
        f"duplicates={len(result.duplicate_invoices)}"
    )
    return result
