from pydantic import BaseModel, Field
from typing import List
from itc_recon.schemas.reconciliation import ReconciliationStatus, MatchType, MismatchDetail

class ExplainRequest(BaseModel):
    match_id: str
    invoice_number: str
    gstin: str
    status: ReconciliationStatus
    match_type: MatchType
    score: float
    mismatches: List[MismatchDetail] = Field(default_factory=list)

class ExplainResponse(BaseModel):
    match_id: str
    explanation: str
    root_cause: str
    suggested_action: str
    original_status: ReconciliationStatus
