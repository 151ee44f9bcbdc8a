"""Plan assembly: model-backed plans with a deterministic fallback."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List

from openai import APIError

from .catalog import index_catalog, to_compact_catalog
from .config import get_advisor_settings
from .llm import PlanGenerationError, parse_plan, request_plan
from .planner import PlanningArtifacts, PhaseBucket, build_artifacts, score_service
from .schemas import (
    AdvisorInput,
    AdvisorPlan,
    Phase,
    PhaseService,
    PlanCard,
    PlanCards,
    RecommendedService,
    Service,
)

logger = logging.getLogger(__name__)

FALLBACK_RATIONALE = (
    "Fallback plan (heuristic, LLM unavailable). Selected the highest-impact services "
    "within constraints and ordered them by prerequisites."
)
FALLBACK_REASON = "High heuristic score for current goals and stage."
FALLBACK_RISKS = [
    "Prerequisite accuracy may be incomplete.",
    "Fixed-duration bucketing may not match real availability.",
]
FALLBACK_METRICS = [
    "Activation rate",
    "Time-to-first-customer feedback",
    "Retention proxy (repeat usage)",
    "Fundraising readiness checklist coverage",
]


# ---------------------------------------------------------------------------
# Planning context and fallback
# ---------------------------------------------------------------------------


def build_planning_context(payload: AdvisorInput, artifacts: PlanningArtifacts) -> Dict[str, object]:
    """Assemble the JSON document sent to the model."""

    return {
        "profile": payload.profile.model_dump(by_alias=True, mode="json"),
        "catalog": to_compact_catalog(payload.services_catalog),
        "selectedServiceIds": list(payload.selected_service_ids),
        "preselectionScores": [
            {"id": item.service.id, "score": round(item.score, 3)} for item in artifacts.selection.scored
        ],
        "preliminaryPhases": [
            {
                "title": f"Phase {bucket.index}",
                "weeks": [bucket.start, bucket.end],
                "services": [{"id": service.id} for service in bucket.services],
            }
            for bucket in artifacts.phases
        ],
    }


def _phase_title(bucket: PhaseBucket, timeline_weeks: int) -> str:
    if bucket.overflow:
        return f"Unscheduled: beyond week {timeline_weeks}"
    return f"Phase {bucket.index}: Weeks {bucket.start}-{bucket.end}"


def build_fallback_plan(payload: AdvisorInput, artifacts: PlanningArtifacts) -> AdvisorPlan:
    """Build a plan from the heuristic artifacts alone. Never performs I/O."""

    profile = payload.profile
    goals = list(profile.goals[:2])
    overflow_note = f"Does not fit the {artifacts.timeline_weeks}-week timeline"

    return AdvisorPlan(
        rationale=FALLBACK_RATIONALE,
        recommended=[
            RecommendedService(
                id=service.id,
                reason=FALLBACK_REASON,
                score=round(score_service(service, profile, artifacts.weights), 3),
            )
            for service in artifacts.ordered
        ],
        swaps=[],
        phases=[
            Phase(
                title=_phase_title(bucket, artifacts.timeline_weeks),
                weeks=(bucket.start, bucket.end),
                goals=goals,
                services=[
                    PhaseService(id=service.id, note=overflow_note if bucket.overflow else None)
                    for service in bucket.services
                ],
            )
            for bucket in artifacts.phases
        ],
        risks=list(FALLBACK_RISKS),
        metrics=list(FALLBACK_METRICS),
        source="fallback",
        diagnostics=artifacts.diagnostics,
    )


def generate_plan(payload: AdvisorInput) -> AdvisorPlan:
    """Return a model-generated plan, or the deterministic fallback on any failure."""

    artifacts = build_artifacts(payload, get_advisor_settings().timeline_weeks)
    for note in artifacts.diagnostics:
        logger.info("Plan diagnostic: %s", note)

    try:
        reply = request_plan(build_planning_context(payload, artifacts))
        if reply is None:
            logger.warning("No LLM credentials configured, using heuristic fallback plan")
            return build_fallback_plan(payload, artifacts)
        plan = parse_plan(reply, (service.id for service in payload.services_catalog))
    except (APIError, PlanGenerationError) as exc:
        logger.warning("LLM unavailable, using heuristic fallback plan: %s", exc)
        return build_fallback_plan(payload, artifacts)

    return plan.model_copy(update={"diagnostics": artifacts.diagnostics + plan.diagnostics})


# ---------------------------------------------------------------------------
# Presentation projections
# ---------------------------------------------------------------------------


def _bullet_list(items: Iterable[str]) -> str:
    return "\n".join(f"- {item}" for item in items if item)


def _service_label(service_id: str, catalog: Dict[str, Service]) -> str:
    service = catalog.get(service_id)
    return service.name if service else service_id


def plan_to_markdown(plan: AdvisorPlan, services: Iterable[Service]) -> str:
    """Serialize a plan into the markdown stored as a chat message."""

    catalog = index_catalog(services)

    recommended_lines = [
        f"**{_service_label(item.id, catalog)}** (score {item.score:.3f}) — {item.reason}"
        for item in plan.recommended
    ]

    swap_lines = []
    for swap in plan.swaps:
        line = f"Drop **{_service_label(swap.drop_id, catalog)}**"
        if swap.add_id:
            line += f" → add **{_service_label(swap.add_id, catalog)}**"
        if swap.reason:
            line += f": {swap.reason}"
        swap_lines.append(line)

    phase_sections = []
    for phase in plan.phases:
        lines = [f"### {phase.title}"]
        if phase.goals:
            lines.append(f"*Goals:* {', '.join(phase.goals)}")
        service_lines = [
            f"{_service_label(entry.id, catalog)}" + (f" — {entry.note}" if entry.note else "")
            for entry in phase.services
        ]
        if service_lines:
            lines.append(_bullet_list(service_lines))
        phase_sections.append("\n".join(lines))

    return "\n\n".join(
        section
        for section in [
            f"## Rationale\n\n{plan.rationale}" if plan.rationale else "",
            f"## Recommended Services\n\n{_bullet_list(recommended_lines)}" if recommended_lines else "",
            f"## Suggested Swaps\n\n{_bullet_list(swap_lines)}" if swap_lines else "",
            "## Phases\n\n" + "\n\n".join(phase_sections) if phase_sections else "",
            f"## Risks\n\n{_bullet_list(plan.risks)}" if plan.risks else "",
            f"## Metrics\n\n{_bullet_list(plan.metrics)}" if plan.metrics else "",
        ]
        if section
    )


def plan_to_cards(plan: AdvisorPlan, services: Iterable[Service]) -> PlanCards:
    """Project a plan onto the flat card list used by the card-style chat view."""

    catalog = index_catalog(services)
    phase_of: Dict[str, Phase] = {}
    for phase in plan.phases:
        for entry in phase.services:
            phase_of.setdefault(entry.id, phase)

    cards: List[PlanCard] = []
    for item in plan.recommended:
        service = catalog.get(item.id)
        phase = phase_of.get(item.id)
        cards.append(
            PlanCard(
                id=item.id,
                name=service.name if service else item.id,
                category=service.category if service else None,
                reason=item.reason,
                score=item.score,
                phase=phase.title if phase else None,
                weeks=phase.weeks if phase else None,
            )
        )
    return PlanCards(rationale=plan.rationale, cards=cards, source=plan.source)
