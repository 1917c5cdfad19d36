import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from itc_recon.core.config import settings
from itc_recon.core.exceptions import BatchLimitExceeded
from itc_recon.core.matcher import match_invoice
from itc_recon.core.normalizer import (
    InvoiceKey,
    effective_supplier_groups,
    index_book_invoices,
    invoice_key,
    is_valid_gstin,
    normalize_invoice,
)
from itc_recon.schemas.authority import AuthorityBatch, SupplierGroup
from itc_recon.schemas.books import BookInvoice
from itc_recon.schemas.reconciliation import (
    MatchingPolicy,
    MatchResult,
    MatchType,
    ReconciliationProcessResult,
)

# AUTHORITATIVE BATCH RECONCILER – DO NOT DUPLICATE
# All authority-vs-books matching for a run goes through reconcile_batch.

logger = logging.getLogger(__name__)

MATCH_TYPE_COUNTERS = {
    MatchType.EXACT: "exact_matches",
    MatchType.PARTIAL: "partial_matches",
    MatchType.FUZZY: "fuzzy_matches",
    MatchType.NO_MATCH: "no_matches",
}


@dataclass
class BatchOutcome:
    result: ReconciliationProcessResult
    matches: List[MatchResult] = field(default_factory=list)

    def merge(self, other: "BatchOutcome") -> None:
        for name in ("total_processed", "successfully_processed", "failed_processing", *MATCH_TYPE_COUNTERS.values()):
            setattr(self.result, name, getattr(self.result, name) + getattr(other.result, name))
        self.result.errors.extend(other.result.errors)
        self.matches.extend(other.matches)


def reconcile_supplier_group(
    group: SupplierGroup,
    books: Dict[InvoiceKey, BookInvoice],
    policy: MatchingPolicy,
    occurrences: Optional[List[int]] = None,
) -> BatchOutcome:
    """
    Match every invoice of one supplier. Malformed records are counted and
    reported, never raised.

    `occurrences` gives, per invoice, how many times its key has been seen
    so far in the batch. Only the first occurrence is matched; repeats are
    failures so the same book record is never accepted twice.
    """
    outcome = BatchOutcome(result=ReconciliationProcessResult())
    result = outcome.result

    if not is_valid_gstin(group.supplier_id):
        result.total_processed += len(group.invoices)
        result.failed_processing += len(group.invoices)
        result.errors.append(f"Invalid supplier GSTIN: {group.supplier_id or '<missing>'}")
        logger.warning(f"Skipping supplier group with invalid GSTIN {group.supplier_id!r}")
        return outcome

    occurrences = occurrences or [1] * len(group.invoices)
    for invoice, occurrence in zip(group.invoices, occurrences):
        result.total_processed += 1

        if not invoice.invoice_number or invoice.declared_value <= 0:
            result.failed_processing += 1
            result.errors.append(f"Invalid invoice data: {invoice.invoice_number or '<empty>'} (supplier {group.supplier_id})")
            continue

        if occurrence > 1:
            result.failed_processing += 1
            result.errors.append(
                f"Duplicate invoice {invoice.invoice_number} (supplier {group.supplier_id}), "
                f"occurrence {occurrence}; only the first is reconciled"
            )
            continue

        try:
            flat = normalize_invoice(group.supplier_id, invoice)
        except ValueError:
            result.failed_processing += 1
            result.errors.append(
                f"Invalid invoice date '{invoice.invoice_date_text}' for invoice {invoice.invoice_number} "
                f"(supplier {group.supplier_id})"
            )
            continue

        try:
            candidate = books.get(invoice_key(group.supplier_id, invoice.invoice_number))
            match = match_invoice(flat, candidate, policy)
        except Exception as e:
            # One bad record must not abort the supplier or the batch.
            logger.exception(f"Matching failed for {flat.match_id}")
            result.failed_processing += 1
            result.errors.append(f"Error processing invoice {invoice.invoice_number}: {e}")
            continue

        outcome.matches.append(match)
        counter = MATCH_TYPE_COUNTERS[match.match_type]
        setattr(result, counter, getattr(result, counter) + 1)
        result.successfully_processed += 1

    return outcome


def _occurrence_numbers(groups: List[SupplierGroup]) -> List[List[int]]:
    seen: Dict[InvoiceKey, int] = {}
    numbered = []
    for group in groups:
        counts = []
        for invoice in group.invoices:
            key = invoice_key(group.supplier_id, invoice.invoice_number)
            seen[key] = seen.get(key, 0) + 1
            counts.append(seen[key])
        numbered.append(counts)
    return numbered


def _reconcile_chunk(
    chunk: List[Tuple[SupplierGroup, List[int]]], books: Dict[InvoiceKey, BookInvoice], policy: MatchingPolicy
) -> BatchOutcome:
    outcome = BatchOutcome(result=ReconciliationProcessResult())
    for group, occurrences in chunk:
        outcome.merge(reconcile_supplier_group(group, books, policy, occurrences))
    return outcome


def reconcile_batch(
    batch: AuthorityBatch,
    book_invoices: List[BookInvoice],
    policy: MatchingPolicy,
    max_invoices: Optional[int] = None,
    max_workers: Optional[int] = None,
    chunk_size: Optional[int] = None,
) -> BatchOutcome:
    """
    Match every authority invoice in the batch against the book records.

    Supplier groups are split into chunks and matched on a thread pool;
    partial outcomes are merged back in batch order. Matching is CPU-bound
    Python, so the pool bounds the work in flight per chunk rather than
    adding CPU parallelism. Raises BatchLimitExceeded before any work when the batch is
    larger than the configured limit.
    """
    max_invoices = settings.MAX_BATCH_INVOICES if max_invoices is None else max_invoices
    max_workers = settings.RECONCILE_MAX_WORKERS if max_workers is None else max_workers
    chunk_size = settings.RECONCILE_CHUNK_SIZE if chunk_size is None else chunk_size

    groups = effective_supplier_groups(batch)
    invoice_count = sum(len(g.invoices) for g in groups)
    if invoice_count > max_invoices:
        raise BatchLimitExceeded(invoice_count, max_invoices)

    books = index_book_invoices(book_invoices)
    # Duplicates are numbered across the whole batch before it is split
    work = list(zip(groups, _occurrence_numbers(groups)))
    step = max(1, chunk_size)
    chunks = [work[i:i + step] for i in range(0, len(work), step)]

    outcome = BatchOutcome(result=ReconciliationProcessResult())
    if max_workers <= 1 or len(chunks) <= 1:
        for chunk in chunks:
            outcome.merge(_reconcile_chunk(chunk, books, policy))
    else:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            for partial in executor.map(lambda c: _reconcile_chunk(c, books, policy), chunks):
                outcome.merge(partial)

    result = outcome.result
    logger.info(
        f"Batch reconciled for period {batch.fiscal_period}: processed={result.total_processed} "
        f"ok={result.successfully_processed} failed={result.failed_processing}"
    )
    if result.errors:
        logger.warning(f"{len(result.errors)} record(s) skipped in period {batch.fiscal_period}")
    return outcome
