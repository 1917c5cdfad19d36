from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Any, List, Union
from datetime import datetime, timezone
from decimal import Decimal
from itc_recon.core.config import settings
from itc_recon.schemas.authority import AuthorityInvoice
from itc_recon.schemas.books import BookInvoice
from itc_recon.schemas.survey import MismatchSurveyResult


class MatchType(str, Enum):
    EXACT = "EXACT"
    PARTIAL = "PARTIAL"
    FUZZY = "FUZZY"
    NO_MATCH = "NO_MATCH"


class ReconciliationStatus(str, Enum):
    MATCHED = "MATCHED"
    MISMATCHED = "MISMATCHED"
    PENDING_REVIEW = "PENDING_REVIEW"
    MISSING_IN_BOOKS = "MISSING_IN_BOOKS"
    MISSING_IN_GSTR2A = "MISSING_IN_GSTR2A"


class MismatchSeverity(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class ActionType(str, Enum):
    ACCEPT_MATCH = "ACCEPT_MATCH"
    FLAG_MISMATCH = "FLAG_MISMATCH"
    MARK_RECONCILED = "MARK_RECONCILED"
    VENDOR_FOLLOW_UP = "VENDOR_FOLLOW_UP"
    MANUAL_REVIEW = "MANUAL_REVIEW"


class MatchingPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    amount_tolerance: float = Field(settings.DEFAULT_AMOUNT_TOLERANCE, ge=0)  # percent
    date_tolerance: int = Field(settings.DEFAULT_DATE_TOLERANCE_DAYS, ge=0)  # days
    fuzzy_threshold: float = Field(settings.DEFAULT_FUZZY_THRESHOLD, ge=0, le=1)
    auto_accept_exact_matches: bool = settings.AUTO_ACCEPT_EXACT_MATCHES
    require_manual_review_for_fuzzy: bool = settings.REQUIRE_MANUAL_REVIEW_FOR_FUZZY


class MismatchDetail(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    authority_value: Any = None
    book_value: Any = None
    tolerance: float = 0
    severity: MismatchSeverity
    description: str


class MatchResult(BaseModel):
    """Outcome of matching one authority invoice. A new run creates new results."""
    model_config = ConfigDict(frozen=True)

    id: str
    supplier_id: str
    authority_invoice: AuthorityInvoice
    book_invoice: Optional[BookInvoice] = None
    score: float = Field(0.0, ge=0, le=1)
    mismatches: List[MismatchDetail] = Field(default_factory=list)
    match_type: MatchType = MatchType.NO_MATCH
    status: ReconciliationStatus = ReconciliationStatus.MISSING_IN_BOOKS

    @property
    def has_high_severity(self) -> bool:
        return any(m.severity == MismatchSeverity.HIGH for m in self.mismatches)


class ReconciliationAction(BaseModel):
    """Append-only audit trail entry for one match."""
    model_config = ConfigDict(frozen=True)

    action_type: ActionType
    match_id: str
    status: Union[ReconciliationStatus, str]
    reason: str
    actor: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    notes: Optional[str] = None


class ReconciliationProcessResult(BaseModel):
    total_processed: int = 0
    successfully_processed: int = 0
    failed_processing: int = 0
    exact_matches: int = 0
    partial_matches: int = 0
    fuzzy_matches: int = 0
    no_matches: int = 0
    accepted_matches: int = 0
    flagged_mismatches: int = 0
    pending_review: int = 0
    vendor_follow_ups: int = 0
    actions: List[ReconciliationAction] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


class ImportResult(BaseModel):
    success: bool
    total_invoices: int
    total_suppliers: int
    total_itc_amount: Decimal
    amended_invoices: int
    imported_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ReconciliationRun(BaseModel):
    """Everything one completed run produced for a (user, period)."""
    user_id: str
    period: str
    policy: MatchingPolicy
    process_result: ReconciliationProcessResult
    matches: List[MatchResult] = Field(default_factory=list)
    book_invoices: List[BookInvoice] = Field(default_factory=list)
    survey: MismatchSurveyResult
    completed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
