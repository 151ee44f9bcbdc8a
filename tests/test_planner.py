from __future__ import annotations

import pytest
from pydantic import ValidationError

from program_advisor.planner import (
    bucket_phases,
    build_artifacts,
    candidate_services,
    goal_weights,
    score_service,
    select_services,
    sequence_services,
)
from program_advisor.schemas import AdvisorInput, Constraints, Impact, Service, Stage, StartupProfile


def _profile(goals: list[str] | None = None, **constraints: object) -> StartupProfile:
    constraints.setdefault("max_services", 5)
    return StartupProfile(name="Acme", stage=Stage.MVP, goals=goals or [], constraints=Constraints(**constraints))


def _service(service_id: str, **fields: object) -> Service:
    return Service(id=service_id, name=service_id.title(), **fields)


def test_goal_weights_normalize_matched_families() -> None:
    weights = goal_weights(["Validate PMF", "raise a pre-seed round"])

    assert weights == {"pmf": 0.5, "gtm": 0.0, "tech": 0.0, "fundraising": 0.5}


def test_goal_weights_without_matches_are_zero() -> None:
    assert goal_weights(["hire a designer"]) == {"pmf": 0.0, "gtm": 0.0, "tech": 0.0, "fundraising": 0.0}
    assert sum(goal_weights([]).values()) == 0.0


def test_goal_weights_match_across_goal_boundaries() -> None:
    weights = goal_weights(["scalable", "architecture and sales"])

    assert weights["tech"] == pytest.approx(0.5)
    assert weights["gtm"] == pytest.approx(0.5)


def test_score_blends_impact_and_stage_fit() -> None:
    profile = _profile(["validate PMF"])
    weights = goal_weights(profile.goals)
    service = _service("pilot", impact=Impact(pmf=0.9), stage_fit={"mvp": 1.0, "idea": 0.2})

    assert score_service(service, profile, weights) == pytest.approx(0.6 * 0.9 + 0.4 * 1.0)


def test_score_uses_neutral_stage_fit_when_unannotated() -> None:
    profile = _profile(["validate PMF"])
    weights = goal_weights(profile.goals)

    assert score_service(_service("bare"), profile, weights) == pytest.approx(0.2)
    assert score_service(_service("other-stage", stage_fit={"scale": 0.9}), profile, weights) == pytest.approx(0.2)


def test_score_is_repeatable() -> None:
    profile = _profile(["growth marketing", "seed round"])
    weights = goal_weights(profile.goals)
    service = _service("ads", impact=Impact(gtm=0.7, fundraising=0.3), stage_fit={"mvp": 0.6})

    assert score_service(service, profile, weights) == score_service(service, profile, weights)


def test_selector_prefers_best_ratio_within_budget() -> None:
    profile = _profile(["validate PMF"], max_services=2, max_credits=1000)
    catalog = [
        _service("cheap", credits=400, impact=Impact(pmf=0.9)),
        _service("mid", credits=600, impact=Impact(pmf=0.2)),
        _service("pricey", credits=900, impact=Impact(pmf=0.1)),
    ]

    selection = select_services(catalog, profile, goal_weights(profile.goals))

    assert [service.id for service in selection.picked] == ["cheap", "mid"]
    assert selection.total_credits == 1000
    assert [item.service.id for item in selection.scored] == ["cheap", "mid", "pricey"]


def test_selector_skips_candidates_that_break_the_budget() -> None:
    profile = _profile(["validate PMF"], max_services=5, max_credits=500)
    catalog = [
        _service("a", credits=300, impact=Impact(pmf=1.0)),
        _service("b", credits=300, impact=Impact(pmf=0.9)),
        _service("c", credits=200, impact=Impact(pmf=0.1)),
    ]

    selection = select_services(catalog, profile, goal_weights(profile.goals))

    assert [service.id for service in selection.picked] == ["a", "c"]
    assert selection.total_credits <= 500


@pytest.mark.parametrize("max_services", [0, 1, 3, 10])
def test_selector_never_exceeds_max_services(max_services: int) -> None:
    profile = _profile(["mvp"], max_services=max_services)
    catalog = [_service(f"s{index}", credits=100 + index, impact=Impact(pmf=0.5)) for index in range(4)]

    selection = select_services(catalog, profile, goal_weights(profile.goals))

    assert len(selection.picked) <= min(max_services, len(catalog))


def test_selector_keeps_catalog_order_on_ties() -> None:
    profile = _profile([], max_services=3)
    catalog = [_service("first"), _service("second"), _service("third")]

    selection = select_services(catalog, profile, goal_weights(profile.goals))

    assert [service.id for service in selection.picked] == ["first", "second", "third"]


def test_selector_treats_free_services_as_unit_cost() -> None:
    profile = _profile(["validate PMF"], max_services=1)
    catalog = [
        _service("free", credits=0, impact=Impact(pmf=0.2)),
        _service("paid", credits=2, impact=Impact(pmf=1.0)),
    ]

    selection = select_services(catalog, profile, goal_weights(profile.goals))

    # free: 0.32 / 1, paid: 0.8 / 2
    assert [service.id for service in selection.picked] == ["paid"]


def test_selector_with_no_candidates_is_empty() -> None:
    selection = select_services([], _profile(), goal_weights([]))

    assert selection.picked == []
    assert selection.scored == []


def test_candidate_services_ignore_unknown_ids() -> None:
    catalog = [_service("a"), _service("b"), _service("c")]

    candidates = candidate_services(catalog, ["c", "missing", "a"])

    assert [service.id for service in candidates] == ["a", "c"]


def test_sequencer_places_prerequisites_first() -> None:
    a = _service("a")
    b = _service("b", prerequisites=["a"])
    c = _service("c", prerequisites=["b"])

    result = sequence_services([c, b, a])

    assert [service.id for service in result.ordered] == ["a", "b", "c"]
    assert result.cycles == []


def test_sequencer_ignores_prerequisites_outside_subset() -> None:
    result = sequence_services([_service("x", prerequisites=["not-selected"]), _service("y")])

    assert [service.id for service in result.ordered] == ["x", "y"]


def test_sequencer_reports_cycles_without_failing() -> None:
    a = _service("a", prerequisites=["b"])
    b = _service("b", prerequisites=["a"])

    result = sequence_services([a, b])

    assert sorted(service.id for service in result.ordered) == ["a", "b"]
    assert result.cycles == ["Prerequisite cycle: a -> b -> a"]


def test_bucketizer_merges_contiguous_services_within_timeline() -> None:
    ordered = [
        _service("a", duration_weeks=4),
        _service("b", duration_weeks=6),
        _service("c", duration_weeks=5),
        _service("d"),
    ]

    phases = bucket_phases(ordered, 12)

    assert [(phase.start, phase.end, phase.overflow) for phase in phases] == [(0, 12, False), (12, 12, True)]
    assert [service.id for phase in phases for service in phase.services] == ["a", "b", "c", "d"]


def test_bucketizer_uses_default_duration() -> None:
    phases = bucket_phases([_service("a"), _service("b")], 12)

    assert len(phases) == 1
    assert (phases[0].start, phases[0].end) == (0, 4)


def test_bucketizer_partitions_within_timeline_bound() -> None:
    ordered = [_service(f"s{index}", duration_weeks=index + 1) for index in range(6)]

    phases = bucket_phases(ordered, 8)

    assert [service.id for phase in phases for service in phase.services] == [s.id for s in ordered]
    assert all(0 <= phase.start <= phase.end <= 8 for phase in phases)


def test_bucketizer_with_nothing_to_place() -> None:
    assert bucket_phases([], 12) == []


def test_build_artifacts_reports_overflow() -> None:
    payload = AdvisorInput(
        profile=_profile(["validate PMF"], max_services=3, timeline_weeks=1),
        services_catalog=[_service("a"), _service("b")],
        selected_service_ids=["a", "b"],
    )

    artifacts = build_artifacts(payload)

    assert artifacts.timeline_weeks == 1
    assert [phase.overflow for phase in artifacts.phases] == [False, True]
    assert artifacts.diagnostics == ["Timeline of 1 weeks exhausted; unscheduled: b"]


def test_build_artifacts_defaults_timeline() -> None:
    payload = AdvisorInput(
        profile=_profile(), services_catalog=[_service("a")], selected_service_ids=["a"]
    )

    assert build_artifacts(payload, default_timeline_weeks=6).timeline_weeks == 6


def test_unknown_stage_defaults_to_mvp() -> None:
    profile = StartupProfile(stage="growth", constraints=Constraints(max_services=1))

    assert profile.stage is Stage.MVP
    assert StartupProfile(stage="Post MVP", constraints=Constraints(max_services=1)).stage is Stage.POST_MVP


def test_sequencer_handles_long_prerequisite_chains() -> None:
    chain = [_service("s0")] + [_service(f"s{index}", prerequisites=[f"s{index - 1}"]) for index in range(1, 1200)]

    result = sequence_services(list(reversed(chain)))

    assert [service.id for service in result.ordered] == [service.id for service in chain]
    assert result.cycles == []


def test_sequencer_reports_cycle_inside_longer_chain() -> None:
    services = [
        _service("a", prerequisites=["b"]),
        _service("b", prerequisites=["c"]),
        _service("c", prerequisites=["b", "d"]),
        _service("d"),
    ]

    result = sequence_services(services)

    assert [service.id for service in result.ordered] == ["d", "c", "b", "a"]
    assert result.cycles == ["Prerequisite cycle: b -> c -> b"]


@pytest.mark.parametrize("value", [-0.5, 1.5])
def test_stage_fit_must_stay_in_unit_range(value: float) -> None:
    with pytest.raises(ValidationError):
        _service("bad", stage_fit={"mvp": value})
