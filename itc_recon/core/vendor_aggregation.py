from collections import defaultdict
from decimal import Decimal
from typing import Dict, List, Optional

from itc_recon.core.normalizer import authority_itc
from itc_recon.schemas.books import BookInvoice
from itc_recon.schemas.reconciliation import MatchResult, ReconciliationRun, ReconciliationStatus
from itc_recon.schemas.report import ITCAvailability, ITCSource, ReconciliationSummary
from itc_recon.schemas.survey import MismatchReport, VendorMismatchSummary
from itc_recon.schemas.vendor import VendorReconciliation, VendorReconciliationStatus

# Aggregates the results of a completed run.
# DOES NOT perform any new matching.

ZERO = Decimal(0)
REVIEW_STATUSES = (ReconciliationStatus.MISMATCHED, ReconciliationStatus.PENDING_REVIEW)


def _claimed_itc(books: List[BookInvoice], vendor_gstin: Optional[str] = None) -> Decimal:
    return sum(
        (b.itc_amount for b in books if b.itc_eligible and (vendor_gstin is None or b.vendor_gstin == vendor_gstin)),
        ZERO,
    )


def summarize_run(run: ReconciliationRun, books: List[BookInvoice]) -> ReconciliationSummary:
    result = run.process_result
    available = sum((authority_itc(m.authority_invoice) for m in run.matches), ZERO)
    pending = sum(
        (authority_itc(m.authority_invoice) for m in run.matches if m.status != ReconciliationStatus.MATCHED),
        ZERO,
    )
    claimed = _claimed_itc(books)

    return ReconciliationSummary(
        period=run.period,
        total_gstr2a_invoices=result.total_processed,
        total_purchase_invoices=len(books),
        exact_matches=result.exact_matches,
        partial_matches=result.partial_matches,
        fuzzy_matches=result.fuzzy_matches,
        no_matches=result.no_matches,
        missing_in_books=len(run.survey.missing_in_books),
        missing_in_gstr2a=len(run.survey.missing_in_authority),
        total_mismatches=sum(len(m.mismatches) for m in run.matches),
        failed_records=result.failed_processing,
        total_itc_available=available,
        total_itc_claimed=claimed,
        total_itc_pending=pending,
        excess_claim=max(ZERO, claimed - available),
    )


def _vendor_status(total: int, matched: int, mismatched: int) -> VendorReconciliationStatus:
    if total == 0:
        return VendorReconciliationStatus.PENDING
    if matched == total:
        return VendorReconciliationStatus.RECONCILED
    if mismatched > 0:
        return VendorReconciliationStatus.DISCREPANCIES
    if matched > 0:
        return VendorReconciliationStatus.PARTIALLY_RECONCILED
    return VendorReconciliationStatus.PENDING


def _vendor_action_items(missing_in_books: int, missing_in_authority: int, mismatched: int) -> List[str]:
    items = []
    if missing_in_authority:
        items.append(f"Ask vendor to report {missing_in_authority} invoice(s) missing from GSTR-2A")
    if missing_in_books:
        items.append(f"Obtain {missing_in_books} invoice(s) from vendor that are missing in books")
    if mismatched:
        items.append(f"Confirm {mismatched} mismatched invoice(s) with vendor")
    return items


def aggregate_vendor_reconciliation(run: ReconciliationRun) -> List[VendorReconciliation]:
    by_vendor: Dict[str, List[MatchResult]] = defaultdict(list)
    for match in run.matches:
        by_vendor[match.supplier_id].append(match)

    books_only: Dict[str, int] = defaultdict(int)
    for missing in run.survey.missing_in_authority:
        books_only[missing.vendor_gstin] += 1

    summaries = []
    for gstin in list(by_vendor) + [g for g in books_only if g not in by_vendor]:
        matches = by_vendor.get(gstin, [])
        matched = sum(1 for m in matches if m.status == ReconciliationStatus.MATCHED)
        mismatched = sum(1 for m in matches if m.status in REVIEW_STATUSES)
        missing_in_books = sum(1 for m in matches if m.status == ReconciliationStatus.MISSING_IN_BOOKS)
        total = len(matches) + books_only[gstin]

        summaries.append(VendorReconciliation(
            vendor_gstin=gstin,
            total_invoices=total,
            matched_invoices=matched,
            mismatched_invoices=mismatched,
            missing_invoices=missing_in_books + books_only[gstin],
            total_value=sum((m.authority_invoice.declared_value for m in matches), ZERO),
            total_itc=sum((authority_itc(m.authority_invoice) for m in matches), ZERO),
            status=_vendor_status(total, matched, mismatched),
            action_items=_vendor_action_items(missing_in_books, books_only[gstin], mismatched),
            last_reconciliation_date=run.completed_at,
        ))

    return sorted(summaries, key=lambda v: (v.status != VendorReconciliationStatus.DISCREPANCIES, -v.total_itc))


def build_mismatch_report(run: ReconciliationRun) -> MismatchReport:
    survey = run.survey
    vendors: Dict[str, VendorMismatchSummary] = {}

    def vendor(gstin: str) -> VendorMismatchSummary:
        if gstin not in vendors:
            vendors[gstin] = VendorMismatchSummary(vendor_gstin=gstin)
        return vendors[gstin]

    for m in survey.amount_mismatches:
        v = vendor(m.vendor_gstin)
        v.amount_mismatches += 1
        v.total_impact += m.difference
    for m in survey.date_mismatches:
        vendor(m.vendor_gstin).date_mismatches += 1
    for m in survey.tax_rate_mismatches:
        vendor(m.vendor_gstin).tax_rate_mismatches += 1
    for m in survey.missing_in_books + survey.missing_in_authority:
        v = vendor(m.vendor_gstin)
        v.missing_invoices += 1
        v.total_impact += m.itc_amount
    for d in survey.duplicate_invoices:
        vendor(d.vendor_gstin).duplicate_invoices += 1

    for v in vendors.values():
        v.total_discrepancies = (
            v.amount_mismatches + v.date_mismatches + v.tax_rate_mismatches + v.missing_invoices + v.duplicate_invoices
        )

    return MismatchReport(
        period=run.period,
        vendor_mismatches=sorted(vendors.values(), key=lambda v: -v.total_impact),
        amount_mismatches=survey.amount_mismatches,
        date_mismatches=survey.date_mismatches,
        tax_rate_mismatches=survey.tax_rate_mismatches,
        missing_invoices=survey.missing_in_books + survey.missing_in_authority,
        duplicate_invoices=survey.duplicate_invoices,
        total_discrepancies=survey.total_discrepancies,
    )


def itc_availability(
    run: ReconciliationRun, books: List[BookInvoice], source: ITCSource, vendor_gstin: Optional[str] = None
) -> ITCAvailability:
    """
    Authority-reported ITC against ITC claimed in the books. COMPUTED counts
    only authority invoices whose match was accepted.
    """
    matches = [m for m in run.matches if vendor_gstin is None or m.supplier_id == vendor_gstin]
    if source == ITCSource.COMPUTED:
        matches = [m for m in matches if m.status == ReconciliationStatus.MATCHED]

    available = sum((authority_itc(m.authority_invoice) for m in matches), ZERO)
    claimed = _claimed_itc(books, vendor_gstin)

    return ITCAvailability(
        period=run.period,
        source=source,
        vendor_gstin=vendor_gstin,
        available_itc=available,
        claimed_itc=claimed,
        unclaimed_itc=max(ZERO, available - claimed),
        excess_claim=max(ZERO, claimed - available),
    )
