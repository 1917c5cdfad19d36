from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import datetime, timezone
import uuid
from enum import Enum


class AuditStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"


class AuditLogEntry(BaseModel):
    """One request against the engine. Bodies are stored as SHA-256 hashes only."""
    model_config = ConfigDict(frozen=True)

    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    endpoint: str
    method: str
    action_type: str
    user_id: str
    # Return period the request touched, when the path names one
    period: Optional[str] = None
    input_hash: Optional[str] = None
    output_hash: Optional[str] = None
    status: AuditStatus
    status_code: Optional[int] = None
