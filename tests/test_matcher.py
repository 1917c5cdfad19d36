from datetime import date
from decimal import Decimal

from itc_recon.core.matcher import calculate_match_score, classify_match, find_mismatches, match_invoice
from itc_recon.core.normalizer import normalize_invoice
from itc_recon.schemas.authority import AuthorityInvoice
from itc_recon.schemas.books import BookInvoice
from itc_recon.schemas.reconciliation import (
    MatchingPolicy,
    MatchType,
    MismatchDetail,
    MismatchSeverity,
    ReconciliationStatus,
)

VENDOR = "27AABCU9603R1ZN"
POLICY = MatchingPolicy(amount_tolerance=1.0, date_tolerance=2, fuzzy_threshold=0.8)


def flat_invoice(number="INV-100", value="10000", idt="15-04-2024"):
    invoice = AuthorityInvoice(invoice_number=number, invoice_date_text=idt, declared_value=Decimal(value))
    return normalize_invoice(VENDOR, invoice)


def book(number="INV-100", amount="10000", invoice_date=date(2024, 4, 15)):
    return BookInvoice(
        vendor_gstin=VENDOR,
        invoice_number=number,
        invoice_date=invoice_date,
        total_amount=Decimal(amount) if amount is not None else None,
    )


def test_missing_book_record():
    result = match_invoice(flat_invoice(), None, POLICY)
    assert result.status == ReconciliationStatus.MISSING_IN_BOOKS
    assert result.match_type == MatchType.NO_MATCH
    assert result.score == 0.0
    assert result.book_invoice is None
    assert result.id == f"{VENDOR}-INV-100"


def test_exact_match():
    result = match_invoice(flat_invoice(), book(), POLICY)
    assert result.match_type == MatchType.EXACT
    assert result.status == ReconciliationStatus.MATCHED
    assert result.score == 1.0
    assert result.mismatches == []


def test_three_percent_amount_difference_is_partial():
    result = match_invoice(flat_invoice(), book(amount="10300"), POLICY)
    assert len(result.mismatches) == 1
    mismatch = result.mismatches[0]
    assert mismatch.field == "amount"
    assert mismatch.severity == MismatchSeverity.MEDIUM
    assert mismatch.description == "Amount difference beyond tolerance"
    # 0.4 + 0.2 + 0.3 * 0.8 + 0.1
    assert abs(result.score - 0.94) < 1e-6
    assert result.match_type == MatchType.PARTIAL
    assert result.status == ReconciliationStatus.MATCHED


def test_amount_at_tolerance_limit_is_flagged():
    result = match_invoice(flat_invoice(value="11800"), book(amount="11918"), POLICY)
    assert [m.field for m in result.mismatches] == ["amount"]
    assert result.mismatches[0].description == "Amount difference at tolerance limit"
    assert result.score == 1.0
    assert result.match_type == MatchType.PARTIAL
    assert result.status == ReconciliationStatus.MATCHED


def test_two_day_date_difference_is_partial():
    result = match_invoice(flat_invoice(), book(invoice_date=date(2024, 4, 13)), POLICY)
    assert [m.field for m in result.mismatches] == ["date"]
    assert result.mismatches[0].description == "Date difference of 2 days"
    assert result.mismatches[0].severity == MismatchSeverity.MEDIUM
    assert result.match_type == MatchType.PARTIAL
    assert result.status == ReconciliationStatus.MATCHED


def test_invoice_number_format_difference_is_fuzzy():
    result = match_invoice(flat_invoice(number="INV001"), book(number="INV-001"), POLICY)
    assert [m.field for m in result.mismatches] == ["invoice_number"]
    assert result.mismatches[0].severity == MismatchSeverity.HIGH
    assert result.score >= POLICY.fuzzy_threshold
    assert result.match_type == MatchType.FUZZY
    assert result.status == ReconciliationStatus.PENDING_REVIEW


def test_completely_different_invoice():
    result = match_invoice(
        flat_invoice(number="INV001", value="11800"),
        book(number="XYZ999", amount="50000", invoice_date=date(2024, 6, 1)),
        POLICY,
    )
    assert result.score < 0.5
    assert {m.field for m in result.mismatches} == {"invoice_number", "date", "amount"}
    assert all(m.severity == MismatchSeverity.HIGH for m in result.mismatches)
    assert result.match_type == MatchType.NO_MATCH
    assert result.status == ReconciliationStatus.MISMATCHED


def test_score_is_clamped():
    score = calculate_match_score(flat_invoice(value="1"), book(amount="99999999"), POLICY)
    assert 0.0 <= score <= 1.0
    # Missing date and amount on the book side score neutral
    neutral = calculate_match_score(flat_invoice(), book(amount=None, invoice_date=None), POLICY)
    assert neutral == 1.0


def test_zero_tolerance_does_not_flag_identical_values():
    strict = MatchingPolicy(amount_tolerance=0, date_tolerance=0)
    assert find_mismatches(flat_invoice(), book(), strict) == []


def test_classification_order():
    medium = MismatchDetail(field="date", severity=MismatchSeverity.MEDIUM, description="Date difference of 2 days")
    high = MismatchDetail(field="amount", severity=MismatchSeverity.HIGH, description="Amount difference beyond tolerance")

    assert classify_match(1.0, [], POLICY) == (MatchType.EXACT, ReconciliationStatus.MATCHED)
    # HIGH severity is decided before the score
    assert classify_match(0.95, [high, medium], POLICY) == (MatchType.FUZZY, ReconciliationStatus.PENDING_REVIEW)
    assert classify_match(0.5, [high], POLICY) == (MatchType.NO_MATCH, ReconciliationStatus.MISMATCHED)
    assert classify_match(0.9, [medium], POLICY) == (MatchType.PARTIAL, ReconciliationStatus.MATCHED)
    assert classify_match(0.6, [medium], POLICY) == (MatchType.PARTIAL, ReconciliationStatus.PENDING_REVIEW)
    # No mismatches but an imperfect score
    assert classify_match(0.9, [], POLICY) == (MatchType.PARTIAL, ReconciliationStatus.MATCHED)


def test_clean_record_below_threshold_reports_missing_in_books():
    # Unreachable through match_invoice: no mismatches always scores 1.0
    assert classify_match(0.5, [], POLICY) == (MatchType.NO_MATCH, ReconciliationStatus.MISSING_IN_BOOKS)
