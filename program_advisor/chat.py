"""Rule-based chat surface: intent routing, category filtering and ranking."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from .advisor import generate_plan, plan_to_markdown
from .catalog import category_matches, normalize_category, services_from_chat_catalog
from .config import AdvisorSettings, get_advisor_settings
from .memory import ChatMemory, chat_memory
from .schemas import (
    AdvisorInput,
    AdvisorPlan,
    ChatContext,
    ChatIntent,
    ChatPackage,
    ChatRecommendation,
    ChatRequest,
    ChatResponse,
    ChatService,
    ChatTurnContext,
    Constraints,
    MeetingNote,
    StartupProfile,
)

logger = logging.getLogger(__name__)

SUMMARIZE_PATTERN = re.compile(
    r"\b(summari[sz]e|summary|recap|meeting notes?|last meetings?|what did we (discuss|agree))\b"
)
PLAN_PATTERN = re.compile(
    r"\b(plan|planning|roadmap|recommend\w*|suggest\w*|services?|packages?|need help|help with"
    r"|which|what should|advice|advise)\b"
)
LEGAL_TEXT_FALLBACK = re.compile(r"legal|law|contract|compliance|regulat|agreement|terms")
PRIVATE_PATTERNS = [
    re.compile(r"manager[- ]?only", re.IGNORECASE),
    re.compile(r"private[- ]?note", re.IGNORECASE),
    re.compile(r"confidential", re.IGNORECASE),
    re.compile(r"internal[- ]?discussion", re.IGNORECASE),
    re.compile(r"off[- ]?record", re.IGNORECASE),
]

MESSAGE_WEIGHT = 1.2
NOTES_WEIGHT = 0.6
REQUESTED_CATEGORY_BOOST = 1.5
NOTES_CATEGORY_BOOST = 0.5
TOP_RECOMMENDATIONS = 3
MEETINGS_IN_RECAP = 5

STOP_WORDS = {
    "and",
    "the",
    "for",
    "with",
    "that",
    "this",
    "from",
    "into",
    "your",
    "our",
    "about",
    "need",
    "help",
    "want",
    "would",
    "like",
    "can",
    "you",
    "what",
    "which",
    "should",
    "some",
    "please",
    "service",
    "services",
    "package",
    "packages",
    "startup",
}


def _keywords(text: str) -> set[str]:
    words = re.findall(r"[a-z][a-z0-9-]+", (text or "").lower())
    return {word for word in words if word not in STOP_WORDS and len(word) > 2}


def redact_private_content(text: str) -> str:
    """Mask phrases that mark manager-only material."""

    filtered = text
    for pattern in PRIVATE_PATTERNS:
        filtered = pattern.sub("[REDACTED]", filtered)
    return filtered


def redact_plan(plan: AdvisorPlan) -> AdvisorPlan:
    """Return a copy of *plan* with every free-text field redacted."""

    return plan.model_copy(
        update={
            "rationale": redact_private_content(plan.rationale),
            "recommended": [
                item.model_copy(update={"reason": redact_private_content(item.reason)}) for item in plan.recommended
            ],
            "swaps": [swap.model_copy(update={"reason": redact_private_content(swap.reason)}) for swap in plan.swaps],
            "phases": [
                phase.model_copy(
                    update={
                        "title": redact_private_content(phase.title),
                        "goals": [redact_private_content(goal) for goal in phase.goals],
                        "services": [
                            entry.model_copy(
                                update={"note": redact_private_content(entry.note) if entry.note else entry.note}
                            )
                            for entry in phase.services
                        ],
                    }
                )
                for phase in plan.phases
            ],
            "risks": [redact_private_content(risk) for risk in plan.risks],
            "metrics": [redact_private_content(metric) for metric in plan.metrics],
        }
    )


# ---------------------------------------------------------------------------
# Intent routing and category extraction
# ---------------------------------------------------------------------------


def classify_intent(message: str) -> ChatIntent:
    """Route a message; summary requests win over planning requests."""

    text = (message or "").lower()
    if SUMMARIZE_PATTERN.search(text):
        return ChatIntent.SUMMARIZE
    if PLAN_PATTERN.search(text):
        return ChatIntent.PLAN
    return ChatIntent.SMALLTALK


def extract_categories(message: str) -> List[str]:
    """Return the service categories a message asks about."""

    return category_matches(message)


# ---------------------------------------------------------------------------
# Candidate filtering and ranking
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChatCandidate:
    """One package together with its parent service and normalized category."""

    service: ChatService
    package: ChatPackage
    category: Optional[str]

    @property
    def text(self) -> str:
        return " ".join(
            [self.service.name, self.package.name, self.service.description, self.package.description]
        ).lower()


def build_candidates(services: Iterable[ChatService]) -> List[ChatCandidate]:
    return [
        ChatCandidate(service=service, package=package, category=normalize_category(service.name))
        for service in services
        for package in service.packages
    ]


def filter_candidates(candidates: Sequence[ChatCandidate], categories: Sequence[str]) -> List[ChatCandidate]:
    """Keep only the requested categories.

    Legal requests also accept packages whose text mentions legal topics when
    no service name normalizes to ``legal``. No categories means no filtering.
    """

    if not categories:
        return list(candidates)
    matched = [candidate for candidate in candidates if candidate.category in categories]
    if not matched and "legal" in categories:
        matched = [candidate for candidate in candidates if LEGAL_TEXT_FALLBACK.search(candidate.text)]
    return matched


def _meeting_text(meetings: Iterable[MeetingNote]) -> str:
    parts: List[str] = []
    for meeting in meetings:
        if meeting.public_summary:
            parts.append(meeting.public_summary)
        parts.extend(meeting.action_items)
        parts.extend(meeting.key_insights)
    return " ".join(parts)


def rank_candidates(
    candidates: Sequence[ChatCandidate],
    message: str,
    meetings: Sequence[MeetingNote],
    categories: Sequence[str],
    available_credits: float,
    selected_package_ids: Iterable[str] = (),
    limit: int = TOP_RECOMMENDATIONS,
) -> List[ChatRecommendation]:
    """Score candidates by keyword overlap and return the affordable top picks."""

    message_keywords = _keywords(message)
    notes = _meeting_text(meetings)
    note_keywords = _keywords(notes)
    note_categories = set(category_matches(notes))
    requested = set(categories)
    already_selected = set(selected_package_ids)

    scored: List[tuple[float, ChatCandidate]] = []
    for candidate in candidates:
        if candidate.package.id in already_selected:
            continue
        price = candidate.package.price or 0.0
        if price > available_credits:
            continue
        tokens = _keywords(candidate.text)
        score = MESSAGE_WEIGHT * len(message_keywords & tokens) + NOTES_WEIGHT * len(note_keywords & tokens)
        if candidate.category and candidate.category in requested:
            score += REQUESTED_CATEGORY_BOOST
        if candidate.category and candidate.category in note_categories:
            score += NOTES_CATEGORY_BOOST
        scored.append((score, candidate))

    scored.sort(key=lambda item: item[0], reverse=True)
    return [
        ChatRecommendation(
            service_id=candidate.service.id,
            service_name=candidate.service.name,
            package_id=candidate.package.id,
            package_name=candidate.package.name,
            hours=candidate.package.hours,
            description=candidate.package.description or candidate.service.description,
            score=round(score, 3),
        )
        for score, candidate in scored[:limit]
    ]


# ---------------------------------------------------------------------------
# Reply builders
# ---------------------------------------------------------------------------


def _format_hours(hours: float | None) -> str:
    return f"{hours:g} hours" if hours is not None else "hours TBD"


def format_recommendations(recommendations: Sequence[ChatRecommendation]) -> str:
    lines = ["Here are the services I'd recommend next:"]
    for position, item in enumerate(recommendations, start=1):
        line = f"{position}. {item.service_name} - {item.package_name} ({_format_hours(item.hours)})"
        if item.description:
            line += f": {item.description}"
        lines.append(line)
    return "\n".join(lines)


def no_match_reply(categories: Sequence[str]) -> str:
    labels = ", ".join(categories)
    return (
        f"I couldn't find any services matching {labels} in the catalog. "
        "Would you like me to put together a new plan instead?"
    )


def unaffordable_reply() -> str:
    return (
        "None of the matching services fit within your remaining budget right now. "
        "Would you like me to put together a new plan?"
    )


def summarize_meetings(meetings: Sequence[MeetingNote]) -> str:
    """Recap the most recent meetings from their shareable notes."""

    recent = list(meetings[:MEETINGS_IN_RECAP])
    if not recent:
        return "There are no meeting notes for your startup yet."

    lines = [f"Here's a recap of your last {len(recent)} meeting(s):"]
    for meeting in recent:
        lines.append(f"- {meeting.meeting_date}: {meeting.public_summary or 'No summary'}")
        lines.extend(f"  - Action: {item}" for item in meeting.action_items)
        lines.extend(f"  - Insight: {item}" for item in meeting.key_insights)
    return "\n".join(lines)


def smalltalk_reply(context: ChatContext) -> str:
    return (
        f"Hi {context.startup.name}! I can recap your recent meetings or recommend services "
        "for your next steps. Try \"summarize our meetings\" or \"which services help with marketing?\""
    )


# ---------------------------------------------------------------------------
# Plan turn
# ---------------------------------------------------------------------------


def profile_from_context(
    context: ChatContext,
    settings: AdvisorSettings,
    max_credits: float | None = None,
) -> StartupProfile:
    """Derive a planning profile from the startup record and its meeting notes."""

    goals: List[str] = []
    for goal in [*context.startup.goals, *(insight for m in context.meetings for insight in m.key_insights)]:
        if goal and goal not in goals:
            goals.append(goal)
    return StartupProfile(
        name=context.startup.name,
        stage=context.startup.stage,
        goals=goals,
        constraints=Constraints(
            max_services=settings.max_services,
            max_credits=context.startup.available_credits if max_credits is None else max_credits,
            timeline_weeks=settings.timeline_weeks,
        ),
    )


def build_chat_plan(
    context: ChatContext,
    filtered: Sequence[ChatCandidate],
    categories: Sequence[str],
    settings: AdvisorSettings,
) -> tuple[AdvisorPlan, AdvisorInput]:
    """Plan over the requested categories, the current selection, or the whole catalog."""

    catalog = services_from_chat_catalog(context.services)
    max_credits: float | None = None
    if categories:
        already_selected = set(context.selected_package_ids)
        candidate_ids = [
            candidate.package.id for candidate in filtered if candidate.package.id not in already_selected
        ]
    elif context.selected_package_ids:
        # The selection is already paid for, so it is bounded by the full allowance.
        candidate_ids = list(context.selected_package_ids)
        max_credits = context.startup.total_credits
    else:
        candidate_ids = [service.id for service in catalog]

    payload = AdvisorInput(
        profile=profile_from_context(context, settings, max_credits),
        services_catalog=catalog,
        selected_service_ids=candidate_ids,
    )
    return generate_plan(payload), payload


def handle_chat_turn(request: ChatRequest, memory: ChatMemory = chat_memory) -> ChatResponse:
    """Answer one chat message and record both sides of the exchange."""

    context = request.context
    settings = get_advisor_settings()
    memory.append(request.session_id, "user", request.message)

    intent = classify_intent(request.message)
    recommendations: List[ChatRecommendation] = []
    plan: AdvisorPlan | None = None
    plan_markdown: str | None = None

    if intent is ChatIntent.SUMMARIZE:
        reply = summarize_meetings(context.meetings)
    elif intent is ChatIntent.PLAN:
        categories = extract_categories(request.message)
        filtered = filter_candidates(build_candidates(context.services), categories)
        if categories and not filtered:
            logger.info("No catalog match for categories %s", categories)
            reply = no_match_reply(categories)
        else:
            recommendations = rank_candidates(
                filtered,
                request.message,
                context.meetings,
                categories,
                context.startup.available_credits,
                context.selected_package_ids,
            )
            reply = format_recommendations(recommendations) if recommendations else unaffordable_reply()
            plan, payload = build_chat_plan(context, filtered, categories, settings)
            plan = redact_plan(plan)
            plan_markdown = redact_private_content(plan_to_markdown(plan, payload.services_catalog))
    else:
        reply = smalltalk_reply(context)

    reply = redact_private_content(reply)
    metadata = {"intent": intent.value, "context_startup": context.startup.name}
    memory.append(request.session_id, "assistant", reply, metadata)
    if plan is not None and plan_markdown is not None:
        memory.append(
            request.session_id,
            "assistant",
            plan_markdown,
            {**metadata, "kind": "plan", "plan": plan.model_dump(by_alias=True, mode="json")},
        )

    return ChatResponse(
        response=reply,
        intent=intent,
        recommendations=recommendations,
        plan=plan,
        context=ChatTurnContext(
            available_credits=context.startup.available_credits,
            selected_services=len(context.selected_package_ids),
        ),
    )
