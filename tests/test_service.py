import json
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from itc_recon.core.exceptions import ImportValidationError, ReconciliationNotFound
from itc_recon.core.service import ReconciliationService
from itc_recon.db.memory import InMemoryReconciliationStore
from itc_recon.schemas.books import BookInvoice
from itc_recon.schemas.reconciliation import ReconciliationStatus
from itc_recon.schemas.report import ITCSource
from itc_recon.schemas.vendor import VendorReconciliationStatus

PERIOD = "042024"
VENDOR_A = "27AABCU9603R1ZN"
VENDOR_B = "29AAACR5055K1Z5"
VENDOR_C = "07AAACI1681G1ZM"
FIXED_NOW = datetime(2024, 5, 10, tzinfo=timezone.utc)


def inv(number, value, idt="15-04-2024", igst=None):
    igst = value * 18 / 118 if igst is None else igst
    return {"inum": number, "idt": idt, "val": value, "itms": [{"num": 1, "itm_det": {"txval": value - igst, "rt": 18, "iamt": igst}}]}


GSTR2A = {
    "gstin": "27AAPFU0939F1ZV",
    "fp": PERIOD,
    "b2b": [
        {"ctin": VENDOR_A, "inv": [inv("A-1", 11800, igst=1800), inv("A-2", 5900, igst=900)]},
        {"ctin": VENDOR_B, "inv": [inv("B-1", 23600, igst=3600)]},
    ],
}

BOOKS = [
    BookInvoice(vendor_gstin=VENDOR_A, invoice_number="A-1", invoice_date=date(2024, 4, 15),
                total_amount=Decimal(11800), igst=Decimal(1800)),
    BookInvoice(vendor_gstin=VENDOR_A, invoice_number="A-2", invoice_date=date(2024, 4, 15),
                total_amount=Decimal(7000), igst=Decimal(1100)),
    BookInvoice(vendor_gstin=VENDOR_C, invoice_number="C-1", invoice_date=date(2024, 4, 3),
                total_amount=Decimal(1180), igst=Decimal(180)),
]


@pytest.fixture
def service():
    return ReconciliationService("user-1", InMemoryReconciliationStore(), clock=lambda: FIXED_NOW)


def test_user_id_required():
    with pytest.raises(ValueError):
        ReconciliationService("", InMemoryReconciliationStore())


def test_import_rejections(service):
    with pytest.raises(ImportValidationError, match="Invalid JSON format in GSTR-2A data"):
        service.import_authority_data("{not json", PERIOD)

    with pytest.raises(ImportValidationError, match="Missing required GSTR-2A fields"):
        service.import_authority_data({"gstin": "27AAPFU0939F1ZV", "fp": PERIOD}, PERIOD)

    with pytest.raises(ImportValidationError, match="Invalid GSTIN format"):
        service.import_authority_data(dict(GSTR2A, gstin="BADGSTIN"), PERIOD)

    with pytest.raises(ImportValidationError, match="Malformed GSTR-2A data"):
        service.import_authority_data(dict(GSTR2A, b2b=[{"ctin": VENDOR_A, "inv": [{"inum": "X", "val": "abc"}]}]), PERIOD)

    # Nothing was stored
    with pytest.raises(ReconciliationNotFound):
        service.run(PERIOD)


def test_import_summary(service):
    result = service.import_authority_data(json.dumps(GSTR2A).encode(), PERIOD)
    assert result.success
    assert result.total_invoices == 3
    assert result.total_suppliers == 2
    assert result.total_itc_amount == Decimal(6300)
    assert result.amended_invoices == 0
    assert result.imported_at == FIXED_NOW


def run_period(service):
    service.import_authority_data(GSTR2A, PERIOD)
    service.record_book_invoices(PERIOD, BOOKS)
    return service.run(PERIOD)


def test_run_and_views(service):
    run = run_period(service)

    result = run.process_result
    assert result.total_processed == 3
    assert result.exact_matches == 1
    assert result.no_matches == 2
    assert result.accepted_matches == 1
    assert result.flagged_mismatches == 1
    assert result.vendor_follow_ups == 1
    assert len(result.actions) == 3
    assert run.completed_at == FIXED_NOW

    statuses = {m.authority_invoice.invoice_number: m.status for m in run.matches}
    assert statuses == {
        "A-1": ReconciliationStatus.MATCHED,
        "A-2": ReconciliationStatus.MISMATCHED,
        "B-1": ReconciliationStatus.MISSING_IN_BOOKS,
    }

    # 1. Summary
    summary = service.get_summary(PERIOD)
    assert summary.total_gstr2a_invoices == 3
    assert summary.total_purchase_invoices == 3
    assert summary.missing_in_books == 1
    assert summary.missing_in_gstr2a == 1
    assert summary.total_itc_available == Decimal(6300)
    assert summary.total_itc_claimed == Decimal(3080)
    assert summary.total_itc_pending == Decimal(4500)
    assert summary.excess_claim == Decimal(0)

    # 2. Vendors
    vendors = {v.vendor_gstin: v for v in service.list_vendor_reconciliations(PERIOD)}
    assert vendors[VENDOR_A].status == VendorReconciliationStatus.DISCREPANCIES
    assert vendors[VENDOR_A].matched_invoices == 1
    assert vendors[VENDOR_A].mismatched_invoices == 1
    assert vendors[VENDOR_B].status == VendorReconciliationStatus.PENDING
    assert vendors[VENDOR_B].missing_invoices == 1
    assert vendors[VENDOR_C].total_invoices == 1
    assert any("vendor" in item for item in vendors[VENDOR_C].action_items)
    assert service.list_vendor_reconciliations(PERIOD)[0].status == VendorReconciliationStatus.DISCREPANCIES

    unknown = service.get_vendor_reconciliation(PERIOD, "33AAACT2727Q1ZS")
    assert unknown.total_invoices == 0
    assert unknown.status == VendorReconciliationStatus.PENDING

    # 3. Mismatch report
    report = service.export_mismatch_report(PERIOD)
    assert report.period == PERIOD
    assert len(report.amount_mismatches) == 1
    assert len(report.missing_invoices) == 2
    assert report.total_discrepancies == 3

    # 4. ITC availability
    computed = service.track_itc_availability(PERIOD, ITCSource.COMPUTED)
    assert computed.available_itc == Decimal(1800)
    assert computed.excess_claim == Decimal(1280)
    vendor_b = service.track_itc_availability(PERIOD, ITCSource.GSTR2B, VENDOR_B)
    assert vendor_b.available_itc == Decimal(3600)
    assert vendor_b.claimed_itc == Decimal(0)
    assert vendor_b.unclaimed_itc == Decimal(3600)


def test_views_require_completed_run(service):
    service.import_authority_data(GSTR2A, PERIOD)
    with pytest.raises(ReconciliationNotFound):
        service.get_summary(PERIOD)


def test_runs_are_scoped_per_user():
    store = InMemoryReconciliationStore()
    owner = ReconciliationService("user-1", store)
    other = ReconciliationService("user-2", store)
    run_period(owner)
    with pytest.raises(ReconciliationNotFound):
        other.get_run(PERIOD)


def test_malformed_records_do_not_reject_the_import(service):
    payload = {
        "gstin": "27AAPFU0939F1ZV",
        "fp": PERIOD,
        "b2b": [
            {"ctin": VENDOR_A, "inv": [
                inv("A-1", 11800, igst=1800),
                {"inum": "A-3", "idt": "15-04-2024", "val": None},
                {"inum": "A-4", "idt": None, "val": 5900, "itms": [{"num": 1, "itm_det": {"txval": None, "rt": 18, "iamt": 900}}]},
            ]},
            # No ctin at all
            {"inv": [inv("X-1", 1180, igst=180)]},
        ],
    }
    result = service.import_authority_data(json.dumps(payload), PERIOD)
    assert result.total_invoices == 4

    service.record_book_invoices(PERIOD, BOOKS)
    run = service.run(PERIOD)
    process = run.process_result

    assert process.total_processed == 4
    assert process.successfully_processed == 1
    assert process.failed_processing == 3
    assert process.exact_matches == 1
    assert "Invalid supplier GSTIN: <missing>" in process.errors
    assert any(e.startswith("Invalid invoice data: A-3") for e in process.errors)
    assert any(e.startswith("Invalid invoice date") for e in process.errors)
    assert [m.authority_invoice.invoice_number for m in run.matches] == ["A-1"]

    # Genuinely wrong types are still rejected whole
    with pytest.raises(ImportValidationError, match="Malformed GSTR-2A data"):
        service.import_authority_data(dict(payload, b2b=[{"ctin": VENDOR_A, "inv": [{"inum": "A-5", "val": "abc"}]}]), PERIOD)


def test_duplicate_entries_count_itc_once(service):
    payload = dict(GSTR2A, b2b=[{"ctin": VENDOR_A, "inv": [inv("A-1", 11800, igst=1800), inv("A-1", 11800, igst=1800)]}])
    service.import_authority_data(payload, PERIOD)
    service.record_book_invoices(PERIOD, BOOKS)
    service.run(PERIOD)

    summary = service.get_summary(PERIOD)
    assert summary.exact_matches == 1
    assert summary.failed_records == 1
    assert summary.total_itc_available == Decimal(1800)
    assert len(service.export_mismatch_report(PERIOD).duplicate_invoices) == 1
