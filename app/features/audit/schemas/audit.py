"""
Audit Schemas

Job inputs, normalized findings and the three possible job outcomes.
"""
import enum
from datetime import datetime
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from app.features.usage.schemas.usage import Identity


# ============================================================================
# Job inputs
# ============================================================================

class AuditMode(str, enum.Enum):
    upload = "upload"
    url = "url"
    crawler = "crawler"
    accessibility = "accessibility"


class CaptureKind(str, enum.Enum):
    upload = "upload"
    url = "url"


class UploadedFile(BaseModel):
    """An uploaded screenshot, already read into memory."""
    filename: str
    content_type: Optional[str] = None
    data: bytes


class CaptureTarget(BaseModel):
    kind: CaptureKind
    url: Optional[str] = None
    upload: Optional[UploadedFile] = None


class CapturedImage(BaseModel):
    data: bytes
    mime_type: str
    public_url: str = ""  # best effort, empty when storage/renderer URL is unavailable
    source: str = ""  # page URL or original filename, for logs


class CrawlCandidate(BaseModel):
    absolute_url: str
    priority_score: int = 0


class AuditRequest(BaseModel):
    """What the caller asked for, before admission."""
    identity: Identity
    mode: AuditMode = AuditMode.upload
    framework: str = "nielsen"
    url: Optional[str] = None
    files: List[UploadedFile] = Field(default_factory=list)


class AuditJob(BaseModel):
    identity: Identity
    plan: str
    images: List[CapturedImage]
    framework: str
    mode: AuditMode
    token_budget: int


# ============================================================================
# Normalized findings
# ============================================================================

Severity = Literal["critical", "high", "medium", "low"]


class GranularFinding(BaseModel):
    title: str
    issue: str
    solution: str
    severity: Severity = "medium"
    category: str = "General"


class StrategicFinding(BaseModel):
    title: str
    issue: str
    solution: str


class NormalizedResult(BaseModel):
    score: float = 0
    granular: List[GranularFinding] = Field(default_factory=list)
    strategic: List[StrategicFinding] = Field(default_factory=list)
    ux_metrics: Dict[str, float] = Field(default_factory=dict)
    strengths: List[str] = Field(default_factory=list)
    weaknesses: List[str] = Field(default_factory=list)
    display_title: str = "Untitled Audit"


# ============================================================================
# Outcomes
# ============================================================================

class JobState(str, enum.Enum):
    """Audit job state machine"""
    admitted = "admitted"
    capturing = "capturing"
    inferring = "inferring"
    normalizing = "normalizing"
    committing = "committing"
    done = "done"
    rejected = "rejected"
    failed = "failed"


class FailureReason(str, enum.Enum):
    no_input = "no_input"
    capture_failed = "capture_failed"
    fetch_failed = "fetch_failed"
    inference_failed = "inference_failed"
    malformed_response = "malformed_response"
    timeout = "timeout"


class UsageAfter(BaseModel):
    plan: str
    used: int
    limit: Optional[int] = None


class AuditRejected(BaseModel):
    status: Literal["rejected"] = "rejected"
    reason: Literal["quota"] = "quota"
    plan: str
    limit: Optional[int] = None
    used: int


class AuditFailed(BaseModel):
    status: Literal["failed"] = "failed"
    reason: FailureReason
    detail: str


class AuditDone(BaseModel):
    status: Literal["done"] = "done"
    score: float
    strategic: List[StrategicFinding]
    granular: List[GranularFinding]
    ux_metrics: Dict[str, float]
    strengths: List[str]
    weaknesses: List[str]
    display_title: str
    primary_image_url: str = ""
    usage_after: UsageAfter
    audit_id: Optional[str] = None  # None when history storage failed


AuditOutcome = Union[AuditDone, AuditRejected, AuditFailed]


class AuditHistoryItem(BaseModel):
    id: str
    ui_title: str
    image_url: Optional[str] = None
    framework: str
    mode: str
    score: Optional[float] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
