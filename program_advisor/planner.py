"""Deterministic planning engine: weighting, scoring, selection, sequencing, phasing."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Sequence, Tuple

from .schemas import AdvisorInput, Service, StartupProfile

logger = logging.getLogger(__name__)

IMPACT_DIMENSIONS: Tuple[str, ...] = ("pmf", "gtm", "tech", "fundraising")

GOAL_PATTERNS: Dict[str, re.Pattern[str]] = {
    "pmf": re.compile(r"pmf|product[- ]market|validation|mvp"),
    "gtm": re.compile(r"growth|acquisition|gtm|marketing|sales"),
    "tech": re.compile(r"tech|scal(ing|able)|architecture|quality"),
    "fundraising": re.compile(r"fund|raise|investor|pre[- ]?seed|seed|series"),
}

IMPACT_SHARE = 0.6
STAGE_SHARE = 0.4
NEUTRAL_STAGE_FIT = 0.5
DEFAULT_DURATION_WEEKS = 2


# ---------------------------------------------------------------------------
# Goal weighting and scoring
# ---------------------------------------------------------------------------


def goal_weights(goals: Iterable[str]) -> Dict[str, float]:
    """Turn free-text goals into a normalized importance vector.

    A dimension gets one point when its keyword family appears anywhere in the
    goals. With no matches every weight is 0.
    """

    text = " ".join(goals).lower()
    weights = {dimension: 0.0 for dimension in IMPACT_DIMENSIONS}
    for dimension, pattern in GOAL_PATTERNS.items():
        if pattern.search(text):
            weights[dimension] += 1.0
    total = sum(weights.values()) or 1.0
    return {dimension: value / total for dimension, value in weights.items()}


def _impact_vector(service: Service) -> Dict[str, float]:
    if service.impact is None:
        return {dimension: 0.0 for dimension in IMPACT_DIMENSIONS}
    return {dimension: getattr(service.impact, dimension) for dimension in IMPACT_DIMENSIONS}


def _stage_fit(service: Service, profile: StartupProfile) -> float:
    if not service.stage_fit:
        return NEUTRAL_STAGE_FIT
    value = service.stage_fit.get(profile.stage.value)
    return NEUTRAL_STAGE_FIT if value is None else float(value)


def score_service(service: Service, profile: StartupProfile, weights: Dict[str, float]) -> float:
    """Blend goal alignment with stage suitability."""

    impact = _impact_vector(service)
    alignment = sum(impact[dimension] * weights.get(dimension, 0.0) for dimension in IMPACT_DIMENSIONS)
    return IMPACT_SHARE * alignment + STAGE_SHARE * _stage_fit(service, profile)


# ---------------------------------------------------------------------------
# Budget-constrained selection
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ScoredService:
    service: Service
    score: float
    ratio: float


@dataclass(frozen=True)
class Selection:
    """Accepted services in acceptance order plus every candidate's score."""

    picked: List[Service]
    scored: List[ScoredService]

    @property
    def total_credits(self) -> float:
        return sum(service.credits or 0.0 for service in self.picked)


def candidate_services(catalog: Sequence[Service], selected_ids: Iterable[str]) -> List[Service]:
    """Restrict the catalog to the candidate ids, keeping catalog order."""

    wanted = set(selected_ids)
    seen: set[str] = set()
    candidates: List[Service] = []
    for service in catalog:
        if service.id in wanted and service.id not in seen:
            seen.add(service.id)
            candidates.append(service)
    return candidates


def _effective_cost(service: Service) -> float:
    if service.credits is None or service.credits <= 0:
        return 1.0
    return service.credits


def select_services(
    candidates: Sequence[Service],
    profile: StartupProfile,
    weights: Dict[str, float],
) -> Selection:
    """Greedily accept the best score-per-credit candidates within the constraints."""

    scored = [
        ScoredService(service=service, score=score, ratio=score / _effective_cost(service))
        for service, score in ((service, score_service(service, profile, weights)) for service in candidates)
    ]
    # sorted() is stable, so equal ratios keep catalog order.
    ranked = sorted(scored, key=lambda item: item.ratio, reverse=True)

    max_services = profile.constraints.max_services
    max_credits = profile.constraints.max_credits
    picked: List[Service] = []
    used_credits = 0.0
    for item in ranked:
        if len(picked) >= max_services:
            break
        cost = item.service.credits
        if max_credits is not None and cost is not None:
            if used_credits + cost > max_credits:
                continue
            used_credits += cost
        picked.append(item.service)
    return Selection(picked=picked, scored=scored)


# ---------------------------------------------------------------------------
# Prerequisite sequencing
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SequenceResult:
    ordered: List[Service]
    cycles: List[str] = field(default_factory=list)


def sequence_services(services: Sequence[Service]) -> SequenceResult:
    """Order services so prerequisites come first.

    Prerequisites outside the given subset are ignored. A prerequisite that is
    already on the visit stack closes a cycle: the branch stops there and the
    cycle is reported instead of raised. The walk keeps its own stack, so long
    prerequisite chains do not hit the interpreter's recursion limit.
    """

    by_id = {service.id: service for service in services}
    visited: set[str] = set()
    on_stack: List[str] = []
    stacked: set[str] = set()
    ordered: List[Service] = []
    cycles: List[str] = []

    def enter(service_id: str) -> Iterator[str]:
        on_stack.append(service_id)
        stacked.add(service_id)
        return iter(by_id[service_id].prerequisites)

    for service in services:
        if service.id in visited:
            continue
        pending = [enter(service.id)]
        while pending:
            prerequisite = next(pending[-1], None)
            if prerequisite is None:
                pending.pop()
                finished = on_stack.pop()
                stacked.discard(finished)
                visited.add(finished)
                ordered.append(by_id[finished])
            elif prerequisite not in by_id or prerequisite in visited:
                continue
            elif prerequisite in stacked:
                loop = on_stack[on_stack.index(prerequisite):] + [prerequisite]
                description = "Prerequisite cycle: " + " -> ".join(loop)
                if description not in cycles:
                    cycles.append(description)
            else:
                pending.append(enter(prerequisite))

    for cycle in cycles:
        logger.info(cycle)
    return SequenceResult(ordered=ordered, cycles=cycles)


# ---------------------------------------------------------------------------
# Phase bucketing
# ---------------------------------------------------------------------------


@dataclass
class PhaseBucket:
    """Contiguous week range ``[start, end)`` and the services inside it."""

    index: int
    start: int
    end: int
    services: List[Service] = field(default_factory=list)
    overflow: bool = False


def bucket_phases(ordered: Sequence[Service], timeline_weeks: int = 12) -> List[PhaseBucket]:
    """Lay the sequenced services over the timeline and group them into phases.

    Services that arrive after the timeline is used up are collected in a
    trailing overflow bucket pinned at ``[timeline, timeline]``.
    """

    phases: List[PhaseBucket] = []
    deferred: List[Service] = []
    cursor = 0
    remaining = timeline_weeks

    for service in ordered:
        if remaining <= 0:
            deferred.append(service)
            continue
        length = max(1, min(service.duration_weeks or DEFAULT_DURATION_WEEKS, remaining))
        start = cursor
        end = min(timeline_weeks, cursor + length)
        if not phases or phases[-1].end < start:
            phases.append(PhaseBucket(index=len(phases) + 1, start=start, end=end, services=[service]))
        else:
            phases[-1].services.append(service)
            phases[-1].end = end
        cursor = end
        remaining = max(0, timeline_weeks - cursor)

    if deferred:
        phases.append(
            PhaseBucket(
                index=len(phases) + 1,
                start=timeline_weeks,
                end=timeline_weeks,
                services=deferred,
                overflow=True,
            )
        )
    return phases


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PlanningArtifacts:
    """Intermediate results shared by the LLM context and the fallback plan."""

    weights: Dict[str, float]
    selection: Selection
    sequence: SequenceResult
    phases: List[PhaseBucket]
    timeline_weeks: int

    @property
    def ordered(self) -> List[Service]:
        return self.sequence.ordered

    @property
    def diagnostics(self) -> List[str]:
        notes = list(self.sequence.cycles)
        deferred = [service.id for phase in self.phases if phase.overflow for service in phase.services]
        if deferred:
            notes.append(
                f"Timeline of {self.timeline_weeks} weeks exhausted; unscheduled: {', '.join(deferred)}"
            )
        return notes


def build_artifacts(payload: AdvisorInput, default_timeline_weeks: int = 12) -> PlanningArtifacts:
    """Run weighting, selection, sequencing and phasing for one request."""

    profile = payload.profile
    weights = goal_weights(profile.goals)
    candidates = candidate_services(payload.services_catalog, payload.selected_service_ids)
    selection = select_services(candidates, profile, weights)
    sequence = sequence_services(selection.picked)
    timeline = profile.constraints.timeline_weeks or default_timeline_weeks
    phases = bucket_phases(sequence.ordered, timeline)
    logger.debug(
        "Planned %d of %d candidates into %d phases over %d weeks",
        len(sequence.ordered),
        len(candidates),
        len(phases),
        timeline,
    )
    return PlanningArtifacts(
        weights=weights,
        selection=selection,
        sequence=sequence,
        phases=phases,
        timeline_weeks=timeline,
    )
