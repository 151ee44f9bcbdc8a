"""Pydantic models and enums for the program advisor API."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

PLAN_VERSION = "1.0"
CARDS_VERSION = "2.0"


class Stage(str, Enum):
    """Enumerate the startup maturity stages."""

    IDEA = "idea"
    MVP = "mvp"
    POST_MVP = "post-mvp"
    SCALE = "scale"

    @classmethod
    def coerce(cls, value: Any) -> "Stage":
        """Map free-form stage labels onto the enum, defaulting to ``mvp``."""

        if isinstance(value, cls):
            return value
        text = str(value or "").strip().lower().replace("_", "-").replace(" ", "-")
        try:
            return cls(text)
        except ValueError:
            return cls.MVP


class ChatIntent(str, Enum):
    """Enumerate the routes a chat message can take."""

    SUMMARIZE = "summarize"
    PLAN = "plan"
    SMALLTALK = "smalltalk"


class ApiModel(BaseModel):
    """Base model exposing camelCase keys on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Planning input
# ---------------------------------------------------------------------------


class Impact(ApiModel):
    """Estimated contribution of a service to each impact dimension."""

    pmf: float = Field(default=0.0, ge=0.0, le=1.0)
    gtm: float = Field(default=0.0, ge=0.0, le=1.0)
    tech: float = Field(default=0.0, ge=0.0, le=1.0)
    fundraising: float = Field(default=0.0, ge=0.0, le=1.0)


class Service(ApiModel):
    """Catalog entry the planner can recommend."""

    id: str
    name: str
    category: Optional[str] = None
    credits: Optional[float] = Field(default=None, ge=0.0, description="Cost in credit units.")
    duration_weeks: Optional[int] = Field(default=None, ge=1)
    prerequisites: List[str] = Field(default_factory=list)
    impact: Optional[Impact] = None
    stage_fit: Optional[Dict[str, Annotated[float, Field(ge=0.0, le=1.0)]]] = Field(
        default=None,
        description="Suitability in [0, 1] keyed by stage value.",
    )


class Constraints(ApiModel):
    max_services: int = Field(..., ge=0)
    max_credits: Optional[float] = Field(default=None, ge=0.0)
    timeline_weeks: Optional[int] = Field(default=None, ge=1)


class StartupProfile(ApiModel):
    """Planning view of a startup."""

    name: Optional[str] = None
    stage: Stage = Stage.MVP
    sector: Optional[str] = None
    goals: List[str] = Field(default_factory=list)
    constraints: Constraints

    @field_validator("stage", mode="before")
    @classmethod
    def _coerce_stage(cls, value: Any) -> Stage:
        return Stage.coerce(value)


class AdvisorInput(ApiModel):
    """Payload for generating a recommendation plan."""

    profile: StartupProfile
    services_catalog: List[Service] = Field(default_factory=list)
    selected_service_ids: List[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Planning output
# ---------------------------------------------------------------------------


class RecommendedService(ApiModel):
    id: str
    reason: str = ""
    score: float = 0.0


class Swap(ApiModel):
    drop_id: str
    add_id: Optional[str] = None
    reason: str = ""


class PhaseService(ApiModel):
    id: str
    note: Optional[str] = None


class Phase(ApiModel):
    title: str
    weeks: Optional[Tuple[int, int]] = None
    goals: List[str] = Field(default_factory=list)
    services: List[PhaseService] = Field(default_factory=list)


class AdvisorPlan(ApiModel):
    """Canonical recommendation plan."""

    version: str = PLAN_VERSION
    rationale: str = ""
    recommended: List[RecommendedService] = Field(default_factory=list)
    swaps: List[Swap] = Field(default_factory=list)
    phases: List[Phase] = Field(default_factory=list)
    risks: List[str] = Field(default_factory=list)
    metrics: List[str] = Field(default_factory=list)
    source: Literal["llm", "fallback"] = "llm"
    diagnostics: List[str] = Field(default_factory=list)


class PlanCard(ApiModel):
    """One flat recommendation card."""

    id: str
    name: str
    category: Optional[str] = None
    reason: str = ""
    score: float = 0.0
    phase: Optional[str] = None
    weeks: Optional[Tuple[int, int]] = None


class PlanCards(ApiModel):
    """Card-list projection of an :class:`AdvisorPlan`."""

    version: str = CARDS_VERSION
    rationale: str = ""
    cards: List[PlanCard] = Field(default_factory=list)
    source: Literal["llm", "fallback"] = "llm"


# ---------------------------------------------------------------------------
# Chat surface
# ---------------------------------------------------------------------------


class ChatPackage(ApiModel):
    id: str
    name: str
    description: str = ""
    price: Optional[float] = None
    hours: Optional[float] = None


class ChatService(ApiModel):
    id: str
    name: str
    description: str = ""
    packages: List[ChatPackage] = Field(default_factory=list)


class MeetingNote(ApiModel):
    id: str
    meeting_date: str
    public_summary: Optional[str] = None
    action_items: List[str] = Field(default_factory=list)
    key_insights: List[str] = Field(default_factory=list)


class StartupSnapshot(ApiModel):
    """Startup record as returned by the profile reader."""

    id: str
    name: str
    founder_name: Optional[str] = None
    total_credits: float = 0.0
    used_credits: float = 0.0
    stage: Stage = Stage.MVP
    goals: List[str] = Field(default_factory=list)

    @field_validator("stage", mode="before")
    @classmethod
    def _coerce_stage(cls, value: Any) -> Stage:
        return Stage.coerce(value)

    @property
    def available_credits(self) -> float:
        return max(0.0, self.total_credits - self.used_credits)


class ChatContext(ApiModel):
    """Everything the chat turn needs from the upstream readers."""

    startup: StartupSnapshot
    services: List[ChatService] = Field(default_factory=list)
    meetings: List[MeetingNote] = Field(default_factory=list)
    selected_package_ids: List[str] = Field(default_factory=list)


class ChatRequest(ApiModel):
    message: str = Field(..., min_length=1)
    session_id: str = Field(..., min_length=1)
    context: ChatContext


class ChatRecommendation(ApiModel):
    """A ranked package; prices are intentionally not exposed."""

    service_id: str
    service_name: str
    package_id: str
    package_name: str
    hours: Optional[float] = None
    description: str = ""
    score: float = 0.0


class ChatTurnContext(ApiModel):
    available_credits: float
    selected_services: int


class ChatResponse(ApiModel):
    response: str
    intent: ChatIntent
    recommendations: List[ChatRecommendation] = Field(default_factory=list)
    plan: Optional[AdvisorPlan] = None
    context: ChatTurnContext


class ChatMessage(ApiModel):
    role: Literal["user", "assistant"]
    content: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ChatHistory(ApiModel):
    session_id: str
    messages: List[ChatMessage]
