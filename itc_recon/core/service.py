import json
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from itc_recon.core.actions import Clock, process_matches, utc_now
from itc_recon.core.exceptions import ImportValidationError, ReconciliationNotFound
from itc_recon.core.normalizer import authority_itc, is_valid_gstin
from itc_recon.core.reconciliation import reconcile_batch
from itc_recon.core.survey import identify_mismatches
from itc_recon.core.vendor_aggregation import (
    aggregate_vendor_reconciliation,
    build_mismatch_report,
    itc_availability,
    summarize_run,
)
from itc_recon.db.memory import ReconciliationStore
from itc_recon.schemas.authority import AuthorityBatch
from itc_recon.schemas.books import BookInvoice
from itc_recon.schemas.reconciliation import (
    ImportResult,
    MatchingPolicy,
    ReconciliationRun,
)
from itc_recon.schemas.report import ITCAvailability, ITCSource, ReconciliationSummary
from itc_recon.schemas.survey import MismatchReport
from itc_recon.schemas.vendor import VendorReconciliation

logger = logging.getLogger(__name__)

# Portal key first, canonical name second
REQUIRED_FIELDS = (("gstin",), ("fp", "fiscal_period"), ("b2b", "suppliers"))


def _missing(payload: Dict[str, Any], names) -> bool:
    return all(payload.get(name) in (None, "") for name in names)


class ReconciliationService:
    """
    One user's reconciliation work, period by period.

    Inputs are read from the store before matching starts, and a run is
    written back only once it has completed, so an abandoned or failed run
    leaves the previous state untouched.
    """

    def __init__(
        self,
        user_id: str,
        store: ReconciliationStore,
        policy: Optional[MatchingPolicy] = None,
        clock: Clock = utc_now,
    ):
        if not user_id:
            raise ValueError("User ID is required")
        self.user_id = user_id
        self.store = store
        self.policy = policy or MatchingPolicy()
        self.clock = clock

    # Import

    def import_authority_data(self, payload: Union[str, bytes, Dict[str, Any]], period: str) -> ImportResult:
        """Validate and store one authority export. Any failure rejects the whole import."""
        if isinstance(payload, (str, bytes)):
            try:
                payload = json.loads(payload)
            except json.JSONDecodeError:
                raise ImportValidationError("Invalid JSON format in GSTR-2A data")

        # An empty b2b list is a valid (if quiet) period.
        if not isinstance(payload, dict) or any(_missing(payload, names) for names in REQUIRED_FIELDS):
            raise ImportValidationError("Missing required GSTR-2A fields")

        if not is_valid_gstin(str(payload["gstin"])):
            raise ImportValidationError("Invalid GSTIN format")

        try:
            batch = AuthorityBatch.model_validate(payload)
        except ValidationError as e:
            raise ImportValidationError(f"Malformed GSTR-2A data: {e.error_count()} structural error(s)") from e

        total_itc = sum(
            (authority_itc(inv) for group in batch.suppliers for inv in group.invoices), Decimal(0)
        ) + sum(
            (authority_itc(inv) for group in batch.amendments for inv in group.invoices), Decimal(0)
        )

        self.store.save_authority_batch(self.user_id, period, batch)
        logger.info(f"Imported GSTR-2A data for user={self.user_id} period={period}: {batch.invoice_count} invoices")

        return ImportResult(
            success=True,
            total_invoices=batch.invoice_count,
            total_suppliers=len(batch.suppliers),
            total_itc_amount=total_itc,
            amended_invoices=sum(len(g.invoices) for g in batch.amendments),
            imported_at=self.clock(),
        )

    def record_book_invoices(self, period: str, invoices: List[BookInvoice]) -> int:
        self.store.save_book_invoices(self.user_id, period, invoices)
        return len(invoices)

    # Run

    def run(self, period: str, policy: Optional[MatchingPolicy] = None) -> ReconciliationRun:
        policy = policy or self.policy
        batch = self.store.get_authority_batch(self.user_id, period)
        if batch is None:
            raise ReconciliationNotFound(f"No GSTR-2A data imported for period {period}")
        books = self.store.get_book_invoices(self.user_id, period)

        outcome = reconcile_batch(batch, books, policy)
        tally = process_matches(outcome.matches, policy, self.user_id, self.clock)
        survey = identify_mismatches(batch, books)

        result = outcome.result
        result.accepted_matches = tally.accepted_matches
        result.flagged_mismatches = tally.flagged_mismatches
        result.pending_review = tally.pending_review
        result.vendor_follow_ups = tally.vendor_follow_ups
        result.actions = tally.actions

        run = ReconciliationRun(
            user_id=self.user_id,
            period=period,
            policy=policy,
            process_result=result,
            matches=outcome.matches,
            book_invoices=books,
            survey=survey,
            completed_at=self.clock(),
        )
        self.store.save_run(run)
        logger.info(
            f"Reconciliation COMPLETED for user={self.user_id} period={period}: "
            f"exact={result.exact_matches} partial={result.partial_matches} "
            f"fuzzy={result.fuzzy_matches} no_match={result.no_matches}"
        )
        return run

    def get_run(self, period: str) -> ReconciliationRun:
        run = self.store.get_run(self.user_id, period)
        if run is None:
            raise ReconciliationNotFound(f"No reconciliation results found for period {period}")
        return run

    # Views

    def get_summary(self, period: str) -> ReconciliationSummary:
        run = self.get_run(period)
        return summarize_run(run, run.book_invoices)

    def list_vendor_reconciliations(self, period: str) -> List[VendorReconciliation]:
        return aggregate_vendor_reconciliation(self.get_run(period))

    def get_vendor_reconciliation(self, period: str, vendor_gstin: str) -> VendorReconciliation:
        for vendor in self.list_vendor_reconciliations(period):
            if vendor.vendor_gstin == vendor_gstin:
                return vendor
        # Vendor absent from both sides this period
        return VendorReconciliation(vendor_gstin=vendor_gstin)

    def export_mismatch_report(self, period: str) -> MismatchReport:
        return build_mismatch_report(self.get_run(period))

    def track_itc_availability(
        self, period: str, source: ITCSource = ITCSource.GSTR2B, vendor_gstin: Optional[str] = None
    ) -> ITCAvailability:
        run = self.get_run(period)
        return itc_availability(run, run.book_invoices, source, vendor_gstin)
