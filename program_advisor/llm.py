"""OpenAI-compatible client wrapper that asks a model for a structured plan."""

from __future__ import annotations

import json
from dataclasses import dataclass
from textwrap import dedent
from typing import Any, Dict, Iterable

from openai import OpenAI
from pydantic import ValidationError

from .config import get_llm_settings
from .rate_limiter import get_rate_limiter
from .schemas import AdvisorPlan, PLAN_VERSION


class PlanGenerationError(RuntimeError):
    """Raised when the model reply cannot be turned into a valid plan."""


@dataclass(frozen=True)
class PromptSpec:
    """Container describing how to call the LLM."""

    system_prompt: str
    user_prompt: str
    model: str
    temperature: float = 0.2
    max_tokens: int = 1500


SYSTEM_PROMPT = dedent(
    """
    You are an incubation program advisor. The user sends one JSON object with:
    - profile: startup stage, sector, goals and constraints
    - catalog: the available services
    - selectedServiceIds: the candidate set chosen by the startup
    - preselectionScores and preliminaryPhases: a heuristic baseline

    Validate the candidates, swap any that fit the goals and constraints poorly,
    then sequence the final services into phases across the timeline.

    Reply with STRICT JSON ONLY, no prose, using this schema:
    {
      "version": "1.0",
      "rationale": "string",
      "recommended": [{"id": "string", "reason": "string", "score": 0.0}],
      "swaps": [{"dropId": "string", "addId": "string", "reason": "string"}],
      "phases": [{"title": "string", "weeks": [start, end], "goals": ["string"],
                  "services": [{"id": "string", "note": "string"}]}],
      "risks": ["string"],
      "metrics": ["string"]
    }

    Rules:
    - Respect maxServices and maxCredits when provided.
    - Prefer services with strong impact on the stated goals and stage.
    - Place prerequisites before the services that depend on them.
    - Keep phases small (2-4 services) and goal-focused.
    - Only use service ids that appear in the catalog.
    """
)

ClientCache = tuple[tuple[str, str | None, float], OpenAI]
_client_cache: ClientCache | None = None


def _get_client() -> OpenAI | None:
    """Return a cached client when an API key is configured."""

    global _client_cache
    settings = get_llm_settings()
    api_key = settings.get_api_key()
    if not api_key:
        return None
    cache_key = (api_key, settings.base_url, settings.timeout_seconds)
    if _client_cache and _client_cache[0] == cache_key:
        return _client_cache[1]
    client = OpenAI(
        api_key=api_key,
        base_url=settings.base_url,
        timeout=settings.timeout_seconds,
        max_retries=0,
    )
    _client_cache = (cache_key, client)
    return client


def _parse_structured_response(raw_text: str) -> Dict[str, Any] | None:
    """Attempt to coerce the model output into a JSON object."""

    text = raw_text.strip()
    if text.startswith("```"):
        lines = [line.rstrip() for line in text.splitlines()]
        if len(lines) >= 2:
            lines = lines[1:]
            if lines and lines[-1].strip() == "```":
                lines = lines[:-1]
            text = "\n".join(lines).strip()
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def _invoke(client: OpenAI, spec: PromptSpec) -> Dict[str, Any]:
    get_rate_limiter().wait_for_slot()
    response = client.chat.completions.create(
        model=spec.model,
        messages=[
            {"role": "system", "content": spec.system_prompt.strip()},
            {"role": "user", "content": spec.user_prompt.strip()},
        ],
        temperature=spec.temperature,
        max_tokens=spec.max_tokens,
        response_format={"type": "json_object"},
    )

    message = response.choices[0].message.content if response.choices else None
    if not message:
        raise PlanGenerationError("Empty completion")
    parsed = _parse_structured_response(message)
    if parsed is None:
        raise PlanGenerationError("Completion is not a JSON object")
    return parsed


def request_plan(planning_context: Dict[str, Any]) -> Dict[str, Any] | None:
    """Send the planning context to the model.

    Returns ``None`` when no credentials are configured. Transport failures
    surface as ``openai.APIError``; unusable replies as ``PlanGenerationError``.
    """

    client = _get_client()
    if client is None:
        return None

    spec = PromptSpec(
        system_prompt=SYSTEM_PROMPT,
        user_prompt=json.dumps(planning_context, ensure_ascii=False, default=str),
        model=get_llm_settings().model,
    )
    return _invoke(client, spec)


def parse_plan(payload: Dict[str, Any], catalog_ids: Iterable[str]) -> AdvisorPlan:
    """Validate a model reply and return it as an :class:`AdvisorPlan`."""

    recommended = payload.get("recommended")
    if not isinstance(recommended, list) or not recommended:
        raise PlanGenerationError("Plan schema mismatch: 'recommended' must be a non-empty array")
    if not isinstance(payload.get("phases"), list):
        raise PlanGenerationError("Plan schema mismatch: 'phases' must be an array")

    try:
        plan = AdvisorPlan.model_validate(payload)
    except ValidationError as exc:
        raise PlanGenerationError(f"Plan schema mismatch: {exc.error_count()} invalid field(s)") from exc

    known = set(catalog_ids)
    referenced = [item.id for item in plan.recommended]
    referenced += [service.id for phase in plan.phases for service in phase.services]
    for swap in plan.swaps:
        referenced.append(swap.drop_id)
        if swap.add_id:
            referenced.append(swap.add_id)
    unknown = sorted({service_id for service_id in referenced if service_id not in known})
    if unknown:
        raise PlanGenerationError(f"Plan references unknown services: {', '.join(unknown)}")

    return plan.model_copy(update={"version": PLAN_VERSION, "source": "llm"})
