from abc import ABC, abstractmethod
from typing import List, Optional
from threading import Lock
from itc_recon.schemas.audit import AuditLogEntry
import logging

logger = logging.getLogger(__name__)


class AuditRepository(ABC):
    """Append-only trail of requests. Entries are never updated or removed in production."""

    @abstractmethod
    def save(self, entry: AuditLogEntry):
        pass

    @abstractmethod
    def get_all(self) -> List[AuditLogEntry]:
        pass

    def for_user(self, user_id: str, period: Optional[str] = None) -> List[AuditLogEntry]:
        return [
            e for e in self.get_all()
            if e.user_id == user_id and (period is None or e.period == period)
        ]


class InMemoryAuditRepository(AuditRepository):
    def __init__(self):
        self._storage: List[AuditLogEntry] = []
        self._lock = Lock()

    def save(self, entry: AuditLogEntry):
        with self._lock:
            self._storage.append(entry)
        logger.info(
            f"Audit Logged: {entry.action_type} {entry.method} {entry.endpoint} "
            f"user={entry.user_id} period={entry.period} status={entry.status.value}"
        )

    def get_all(self) -> List[AuditLogEntry]:
        with self._lock:
            return list(self._storage)

    def clear(self):
        # Test isolation only
        with self._lock:
            self._storage.clear()


# Global Accessor
audit_repo = InMemoryAuditRepository()
