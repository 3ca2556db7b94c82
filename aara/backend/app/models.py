from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

ReportType = Literal["pre_therapy", "therapy", "self_insight"]
REPORT_TYPES = ("pre_therapy", "therapy", "self_insight")

UserStateType = Literal["exploration", "preparing", "in_therapy", "maintenance"]
USER_STATES = ("exploration", "preparing", "in_therapy", "maintenance")

ShareMethod = Literal["pdf", "secure_link"]
ConsentResource = Literal["journal", "quote", "report_share"]
SourceType = Literal["check_in", "journal", "chat_summary"]
TrendType = Literal["improving", "stable", "declining", "volatile"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_document(model: BaseModel) -> dict:
    return model.model_dump(mode="json")


def in_period(
    created_at: datetime,
    start: Optional[datetime],
    end: Optional[datetime],
    include_start: bool = True,
) -> bool:
    if start is not None and (created_at < start or (created_at == start and not include_start)):
        return False
    return end is None or created_at <= end


class CheckInResponses(BaseModel):
    emotional_intensity: int = Field(ge=1, le=10)
    emotional_category: List[str] = Field(default_factory=list)
    context_flag: List[str] = Field(default_factory=list)

    @field_validator("emotional_category", "context_flag")
    @classmethod
    def strip_labels(cls, values: List[str]) -> List[str]:
        cleaned = [value.strip() for value in values if value and value.strip()]
        return list(dict.fromkeys(cleaned))


class CheckIn(BaseModel):
    id: Optional[str] = None
    user_id: str
    created_at: datetime
    level: int = 1
    responses: CheckInResponses
    processed: bool = False
    processed_at: Optional[datetime] = None


class Journal(BaseModel):
    id: Optional[str] = None
    user_id: str
    created_at: datetime
    updated_at: datetime
    title: Optional[str] = None
    content: str
    category: Optional[str] = None
    is_one_line: bool = False
    include_in_report: bool = False
    consent_given_at: Optional[datetime] = None
    processed: bool = False
    processed_at: Optional[datetime] = None
    processed_in_report_id: Optional[str] = None

    @field_validator("content")
    @classmethod
    def content_not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("Journal content cannot be empty")
        return value


class ChatSummary(BaseModel):
    id: Optional[str] = None
    user_id: str
    session_id: str
    created_at: datetime
    summary: str
    processed: bool = False
    processed_at: Optional[datetime] = None


class InsightSource(BaseModel):
    type: SourceType
    id: str
    weight: float


class InsightTheme(BaseModel):
    name: str
    count: int
    strength: float
    first_appearance: datetime


class EmotionalPattern(BaseModel):
    dominant: List[str] = Field(default_factory=list)
    intensity: float = 5.0
    trend: TrendType = "stable"


class RecurrenceSignal(BaseModel):
    pattern: str
    frequency: int
    first_seen: datetime
    last_seen: datetime


class TimeContext(BaseModel):
    period: str
    significant_dates: List[datetime] = Field(default_factory=list)


class Insight(BaseModel):
    id: Optional[str] = None
    user_id: str
    created_at: datetime
    period_start: datetime
    period_end: datetime
    sources: List[InsightSource] = Field(default_factory=list)
    themes: List[InsightTheme] = Field(default_factory=list)
    emotional_patterns: EmotionalPattern = Field(default_factory=EmotionalPattern)
    recurrence_signals: List[RecurrenceSignal] = Field(default_factory=list)
    time_context: TimeContext


class Theme(BaseModel):
    name: str
    strength: float
    description: str
    first_appearance: datetime


class Pattern(BaseModel):
    type: str
    description: str
    frequency: str
    trend: str


class ComparisonChange(BaseModel):
    metric: str
    direction: Literal["improved", "stable", "declined"]
    magnitude: float
    baseline_value: Optional[float] = None
    current_value: Optional[float] = None


class Comparison(BaseModel):
    baseline_report_id: str
    changes: List[ComparisonChange] = Field(default_factory=list)


class ReportContent(BaseModel):
    summary: str
    themes: List[Theme] = Field(default_factory=list)
    patterns: List[Pattern] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    metrics: Dict[str, Any] = Field(default_factory=dict)
    comparison: Optional[Comparison] = None


class ShareRecord(BaseModel):
    id: Optional[str] = None
    report_id: str
    shared_at: datetime
    share_method: ShareMethod
    recipient_type: Literal["therapist"] = "therapist"
    access_token: Optional[str] = None
    revoked_at: Optional[datetime] = None
    accessed_at: Optional[datetime] = None
    access_count: int = 0


class Report(BaseModel):
    id: Optional[str] = None
    user_id: str
    type: ReportType
    version: int
    created_at: datetime
    locked: bool = False
    period_start: datetime
    period_end: datetime
    insight_ids: List[str] = Field(default_factory=list)
    content: ReportContent
    share_history: List[ShareRecord] = Field(default_factory=list)


class ConsentLog(BaseModel):
    id: Optional[str] = None
    user_id: str
    timestamp: datetime
    action: Literal["grant", "revoke"]
    resource_type: ConsentResource
    resource_id: str
    purpose: str


class StateChange(BaseModel):
    from_state: Optional[UserStateType] = None
    to_state: UserStateType
    changed_at: datetime
    trigger_type: Literal["user_action", "system_suggestion"]
    user_confirmed: bool
    reason: Optional[str] = None


class UserProfile(BaseModel):
    """The ``users/{uid}`` document. Only the fields this backend reads or writes."""

    user_id: str
    state: Optional[UserStateType] = None
    state_changed_at: Optional[datetime] = None
    state_history: List[StateChange] = Field(default_factory=list)
    last_check_in_date: Optional[datetime] = None
    check_in_level: int = 1
    therapist_page_views: int = 0
    is_paid: bool = False
    active_days_count: int = 0
    last_active_date: Optional[date] = None
