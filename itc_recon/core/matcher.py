"""
Scoring and classification of a single authority invoice against its
candidate book invoice.

The candidate is found upstream by exact (vendor GSTIN, invoice number)
lookup, so vendor identity is already settled when we get here.
"""
import logging
from decimal import Decimal
from typing import List, Optional

from itc_recon.core.similarity import string_similarity
from itc_recon.core.tolerance import ToleranceCheck, day_difference, percentage_difference
from itc_recon.schemas.authority import FlatAuthorityInvoice
from itc_recon.schemas.books import BookInvoice
from itc_recon.schemas.reconciliation import (
    MatchingPolicy,
    MatchResult,
    MatchType,
    MismatchDetail,
    MismatchSeverity,
    ReconciliationStatus,
)

logger = logging.getLogger(__name__)

INVOICE_NUMBER_WEIGHT = 0.4
DATE_WEIGHT = 0.2
AMOUNT_WEIGHT = 0.3
VENDOR_WEIGHT = 0.1

DECAY_SCALE = 10
INVOICE_NUMBER_HIGH_BELOW = 0.9
DATE_HIGH_ABOVE_DAYS = 7
AMOUNT_HIGH_ABOVE_PERCENT = Decimal(5)


def _date_check(flat: FlatAuthorityInvoice, book: BookInvoice, policy: MatchingPolicy) -> Optional[ToleranceCheck]:
    if book.invoice_date is None:
        return None
    return ToleranceCheck.of(day_difference(flat.invoice_date, book.invoice_date), policy.date_tolerance)


def _amount_check(flat: FlatAuthorityInvoice, book: BookInvoice, policy: MatchingPolicy) -> Optional[ToleranceCheck]:
    if not book.total_amount:
        return None
    return ToleranceCheck.of(percentage_difference(flat.declared_value, book.total_amount), policy.amount_tolerance)


def calculate_match_score(
    flat: FlatAuthorityInvoice, book: Optional[BookInvoice], policy: MatchingPolicy
) -> float:
    """Weighted similarity in [0, 1]. Absent book date or amount scores neutral."""
    if book is None:
        return 0.0

    number_similarity = string_similarity(flat.invoice_number, book.invoice_number or "")

    date_check = _date_check(flat, book, policy)
    date_similarity = 1.0 if date_check is None else date_check.decayed_similarity(DECAY_SCALE)

    amount_check = _amount_check(flat, book, policy)
    amount_similarity = 1.0 if amount_check is None else amount_check.decayed_similarity(DECAY_SCALE)

    score = (
        INVOICE_NUMBER_WEIGHT * number_similarity
        + DATE_WEIGHT * date_similarity
        + AMOUNT_WEIGHT * amount_similarity
        + VENDOR_WEIGHT
    )
    return round(max(0.0, min(1.0, score)), 6)


def find_mismatches(
    flat: FlatAuthorityInvoice, book: BookInvoice, policy: MatchingPolicy
) -> List[MismatchDetail]:
    mismatches: List[MismatchDetail] = []

    number_similarity = string_similarity(flat.invoice_number, book.invoice_number or "")
    if number_similarity < 1.0:
        mismatches.append(MismatchDetail(
            field="invoice_number",
            authority_value=flat.invoice_number,
            book_value=book.invoice_number,
            tolerance=0,
            severity=MismatchSeverity.HIGH if number_similarity < INVOICE_NUMBER_HIGH_BELOW else MismatchSeverity.MEDIUM,
            description="Invoice number format difference",
        ))

    date_check = _date_check(flat, book, policy)
    if date_check is not None and date_check.difference > 0 and date_check.reached:
        days = int(date_check.difference)
        mismatches.append(MismatchDetail(
            field="date",
            authority_value=flat.invoice_date,
            book_value=book.invoice_date,
            tolerance=policy.date_tolerance,
            severity=MismatchSeverity.HIGH if days > DATE_HIGH_ABOVE_DAYS else MismatchSeverity.MEDIUM,
            description=f"Date difference of {days} days",
        ))

    amount_check = _amount_check(flat, book, policy)
    if amount_check is not None and amount_check.difference > 0 and amount_check.reached:
        mismatches.append(MismatchDetail(
            field="amount",
            authority_value=flat.declared_value,
            book_value=book.total_amount,
            tolerance=policy.amount_tolerance,
            severity=MismatchSeverity.HIGH if amount_check.difference > AMOUNT_HIGH_ABOVE_PERCENT else MismatchSeverity.MEDIUM,
            description=(
                "Amount difference beyond tolerance"
                if amount_check.exceeded
                else "Amount difference at tolerance limit"
            ),
        ))

    return mismatches


def classify_match(score: float, mismatches: List[MismatchDetail], policy: MatchingPolicy):
    """
    Returns (MatchType, ReconciliationStatus). Branch order matters: any HIGH
    severity mismatch is decided before the score is trusted.
    """
    has_high = any(m.severity == MismatchSeverity.HIGH for m in mismatches)

    if not mismatches and score >= 1.0:
        return MatchType.EXACT, ReconciliationStatus.MATCHED
    if has_high:
        if score >= policy.fuzzy_threshold:
            return MatchType.FUZZY, ReconciliationStatus.PENDING_REVIEW
        return MatchType.NO_MATCH, ReconciliationStatus.MISMATCHED
    if mismatches:
        if score >= policy.fuzzy_threshold:
            return MatchType.PARTIAL, ReconciliationStatus.MATCHED
        return MatchType.PARTIAL, ReconciliationStatus.PENDING_REVIEW
    if score >= policy.fuzzy_threshold:
        return MatchType.PARTIAL, ReconciliationStatus.MATCHED
    # No mismatches yet below threshold.
    return MatchType.NO_MATCH, ReconciliationStatus.MISSING_IN_BOOKS


def match_invoice(
    flat: FlatAuthorityInvoice, candidate: Optional[BookInvoice], policy: MatchingPolicy
) -> MatchResult:
    if candidate is None:
        return MatchResult(
            id=flat.match_id,
            supplier_id=flat.supplier_id,
            authority_invoice=flat.invoice,
            score=0.0,
            match_type=MatchType.NO_MATCH,
            status=ReconciliationStatus.MISSING_IN_BOOKS,
        )

    score = calculate_match_score(flat, candidate, policy)
    mismatches = find_mismatches(flat, candidate, policy)
    match_type, status = classify_match(score, mismatches, policy)

    logger.debug(f"Matched {flat.match_id}: score={score} type={match_type.value} status={status.value}")

    return MatchResult(
        id=flat.match_id,
        supplier_id=flat.supplier_id,
        authority_invoice=flat.invoice,
        book_invoice=candidate,
        score=score,
        mismatches=mismatches,
        match_type=match_type,
        status=status,
    )
