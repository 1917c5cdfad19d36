from datetime import date
from decimal import Decimal

from itc_recon.core.survey import identify_mismatches
from itc_recon.schemas.authority import AuthorityBatch
from itc_recon.schemas.books import BookInvoice, BookLineItem
from itc_recon.schemas.survey import RecordSource

VENDOR = "27AABCU9603R1ZN"


def inv(number, value, idt="15-04-2024", rate=18):
    return {"inum": number, "idt": idt, "val": value, "itms": [{"num": 1, "itm_det": {"txval": value, "rt": rate, "iamt": value * rate / 100}}]}


def book(number, amount, invoice_date=date(2024, 4, 15), rates=(18,)):
    return BookInvoice(
        vendor_gstin=VENDOR,
        invoice_number=number,
        invoice_date=invoice_date,
        total_amount=Decimal(amount),
        igst=Decimal(amount) * Decimal("0.18"),
        line_items=[BookLineItem(gst_rate=Decimal(r)) for r in rates],
    )


def make_batch(*invoices):
    return AuthorityBatch.model_validate({
        "gstin": "27AAPFU0939F1ZV",
        "fp": "042024",
        "b2b": [{"ctin": VENDOR, "inv": list(invoices)}],
    })


def test_survey_finds_every_discrepancy_kind():
    batch = make_batch(
        inv("INV-1", 10000),              # clean
        inv("INV-2", 50000),              # amount off by 1000
        inv("INV-3", 10000, rate=12),     # rate 12 vs 18
        inv("INV-4", 10000, idt="20-04-2024"),  # 5 days late
        inv("INV-5", 7000),               # not in books
    )
    books = [
        book("INV-1", 10000),
        book("INV-2", 49000),
        book("INV-3", 10000),
        book("INV-4", 10000),
        book("INV-9", 2500),              # not in GSTR-2A
    ]

    survey = identify_mismatches(batch, books)

    # 1. Presence on one side only
    assert [m.invoice_number for m in survey.missing_in_books] == ["INV-5"]
    assert survey.missing_in_books[0].source == RecordSource.GSTR2A
    assert survey.missing_in_books[0].itc_amount == Decimal(1260)
    assert [m.invoice_number for m in survey.missing_in_authority] == ["INV-9"]
    assert survey.missing_in_authority[0].source == RecordSource.BOOKS

    # 2. Amount
    assert len(survey.amount_mismatches) == 1
    amount = survey.amount_mismatches[0]
    assert amount.invoice_number == "INV-2"
    assert amount.difference == Decimal(1000)
    assert amount.percentage_diff == Decimal(2)

    # 3. Tax rate
    assert len(survey.tax_rate_mismatches) == 1
    rate = survey.tax_rate_mismatches[0]
    assert rate.invoice_number == "INV-3"
    assert rate.authority_rate == Decimal(12)
    assert rate.book_rates == [Decimal(18)]

    # 4. Date, authority minus book
    assert len(survey.date_mismatches) == 1
    assert survey.date_mismatches[0].invoice_number == "INV-4"
    assert survey.date_mismatches[0].days_difference == 5

    assert survey.duplicate_invoices == []
    assert survey.total_discrepancies == 5


def test_survey_boundaries_are_not_discrepancies():
    batch = make_batch(inv("INV-1", 11800), inv("INV-2", 10000, idt="17-04-2024"))
    survey = identify_mismatches(batch, [book("INV-1", 11918), book("INV-2", 10000)])
    # Exactly 1% and exactly 2 days
    assert survey.amount_mismatches == []
    assert survey.date_mismatches == []


def test_duplicate_authority_invoices():
    batch = make_batch(inv("INV-1", 1000), inv("INV-1", 2000), inv("INV-1", 3000), inv("INV-2", 500))
    survey = identify_mismatches(batch, [book("INV-1", 1000), book("INV-2", 500)])

    assert len(survey.duplicate_invoices) == 1
    duplicate = survey.duplicate_invoices[0]
    assert duplicate.invoice_number == "INV-1"
    assert duplicate.occurrences == 3
    assert duplicate.total_amount == Decimal(6000)
    # The first occurrence is the one compared
    assert survey.amount_mismatches == []


def test_unparseable_date_is_reported_not_raised():
    batch = make_batch(inv("INV-1", 1000, idt="not-a-date"))
    survey = identify_mismatches(batch, [book("INV-1", 1000)])
    assert survey.date_mismatches == []
    assert len(survey.errors) == 1
    assert "not-a-date" in survey.errors[0]
