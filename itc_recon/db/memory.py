from abc import ABC, abstractmethod
from threading import Lock
from typing import Dict, List, Optional, Tuple
import logging

from itc_recon.schemas.authority import AuthorityBatch
from itc_recon.schemas.books import BookInvoice
from itc_recon.schemas.reconciliation import ReconciliationRun

logger = logging.getLogger(__name__)

ScopeKey = Tuple[str, str]  # (user_id, period)


class ReconciliationStore(ABC):
    """Storage collaborator: supplies inputs and accepts completed runs."""

    @abstractmethod
    def save_authority_batch(self, user_id: str, period: str, batch: AuthorityBatch):
        pass

    @abstractmethod
    def get_authority_batch(self, user_id: str, period: str) -> Optional[AuthorityBatch]:
        pass

    @abstractmethod
    def save_book_invoices(self, user_id: str, period: str, invoices: List[BookInvoice]):
        pass

    @abstractmethod
    def get_book_invoices(self, user_id: str, period: str) -> List[BookInvoice]:
        pass

    @abstractmethod
    def save_run(self, run: ReconciliationRun):
        pass

    @abstractmethod
    def get_run(self, user_id: str, period: str) -> Optional[ReconciliationRun]:
        pass


class InMemoryReconciliationStore(ReconciliationStore):
    def __init__(self):
        self._batches: Dict[ScopeKey, AuthorityBatch] = {}
        self._books: Dict[ScopeKey, List[BookInvoice]] = {}
        self._runs: Dict[ScopeKey, ReconciliationRun] = {}
        self._lock = Lock()

    def save_authority_batch(self, user_id: str, period: str, batch: AuthorityBatch):
        with self._lock:
            self._batches[(user_id, period)] = batch

    def get_authority_batch(self, user_id: str, period: str) -> Optional[AuthorityBatch]:
        return self._batches.get((user_id, period))

    def save_book_invoices(self, user_id: str, period: str, invoices: List[BookInvoice]):
        with self._lock:
            self._books[(user_id, period)] = list(invoices)

    def get_book_invoices(self, user_id: str, period: str) -> List[BookInvoice]:
        return list(self._books.get((user_id, period), []))

    def save_run(self, run: ReconciliationRun):
        # A run replaces the previous one for the same scope as a whole.
        with self._lock:
            self._runs[(run.user_id, run.period)] = run
        logger.info(f"Stored reconciliation run for user={run.user_id} period={run.period}")

    def get_run(self, user_id: str, period: str) -> Optional[ReconciliationRun]:
        return self._runs.get((user_id, period))

    def clear(self):
        with self._lock:
            self._batches.clear()
            self._books.clear()
            self._runs.clear()


# Global Accessor
store = InMemoryReconciliationStore()
