from types import SimpleNamespace

from itc_recon.core import ai
from itc_recon.schemas.explanation import ExplainRequest
from itc_recon.schemas.reconciliation import MatchType, MismatchDetail, MismatchSeverity, ReconciliationStatus


def make_request(status, mismatches=None):
    return ExplainRequest(
        match_id="27AABCU9603R1ZN-INV-1",
        invoice_number="INV-1",
        gstin="27AABCU9603R1ZN",
        status=status,
        match_type=MatchType.NO_MATCH,
        score=0.0,
        mismatches=mismatches or [],
    )


class FakeCompletions:
    def __init__(self, content):
        self.content = content

    def create(self, **kwargs):
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def fake_client(content):
    return SimpleNamespace(chat=SimpleNamespace(completions=FakeCompletions(content)))


def test_fallback_for_missing_invoice(monkeypatch):
    monkeypatch.setattr(ai, "client", None)
    response = ai.generate_explanation(make_request(ReconciliationStatus.MISSING_IN_BOOKS))
    assert response.root_cause == "Missing Book Entry"
    assert response.suggested_action == "Record invoice in books or contact vendor"
    assert response.original_status == ReconciliationStatus.MISSING_IN_BOOKS


def test_fallback_uses_first_mismatch():
    mismatches = [
        MismatchDetail(field="date", severity=MismatchSeverity.MEDIUM, description="Date difference of 3 days"),
        MismatchDetail(field="amount", severity=MismatchSeverity.HIGH, description="Amount difference beyond tolerance"),
    ]
    response = ai.fallback_explanation(make_request(ReconciliationStatus.PENDING_REVIEW, mismatches))
    assert response.root_cause == "Timing Issue"
    assert response.suggested_action == "Manual Review"
    assert response.explanation == "Date difference of 3 days (MEDIUM); Amount difference beyond tolerance (HIGH)"


def test_model_cannot_change_status(monkeypatch):
    content = '{"explanation": "Vendor typo", "root_cause": "Data Entry Error", "suggested_action": "Contact Vendor", "status": "MATCHED"}'
    monkeypatch.setattr(ai, "client", fake_client(content))
    response = ai.generate_explanation(make_request(ReconciliationStatus.MISMATCHED))
    assert response.explanation == "Vendor typo"
    assert response.original_status == ReconciliationStatus.MISMATCHED


def test_invalid_model_output_falls_back(monkeypatch):
    monkeypatch.setattr(ai, "client", fake_client("not json"))
    response = ai.generate_explanation(make_request(ReconciliationStatus.MISMATCHED))
    assert response == ai.fallback_explanation(make_request(ReconciliationStatus.MISMATCHED))


def test_non_object_model_output_falls_back(monkeypatch):
    for content in ('["Vendor typo"]', '"Vendor typo"', "42"):
        monkeypatch.setattr(ai, "client", fake_client(content))
        response = ai.generate_explanation(make_request(ReconciliationStatus.MISSING_IN_BOOKS))
        assert response == ai.fallback_explanation(make_request(ReconciliationStatus.MISSING_IN_BOOKS))
