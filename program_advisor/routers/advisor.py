"""Advisor endpoints for the program advisor FastAPI backend."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException

from ..advisor import generate_plan, plan_to_cards
from ..chat import handle_chat_turn
from ..memory import chat_memory
from ..schemas import AdvisorInput, AdvisorPlan, ChatHistory, ChatRequest, ChatResponse, PlanCards


router = APIRouter(prefix="/advisor", tags=["advisor"])


@router.get("/health")
async def healthcheck() -> dict[str, str]:
    """Simple health check endpoint."""

    return {"status": "ok"}


@router.post("/plan", response_model=AdvisorPlan)
def create_plan(payload: AdvisorInput) -> AdvisorPlan:
    """Generate a phased recommendation plan for the candidate services."""

    return generate_plan(payload)


@router.post("/plan/cards", response_model=PlanCards)
def create_plan_cards(payload: AdvisorInput) -> PlanCards:
    """Generate a plan and return it as flat recommendation cards."""

    return plan_to_cards(generate_plan(payload), payload.services_catalog)


@router.post("/chat", response_model=ChatResponse)
def chat(payload: ChatRequest) -> ChatResponse:
    """Answer a chat message and store the exchange in the session."""

    return handle_chat_turn(payload)


@router.get("/chat/{session_id}", response_model=ChatHistory)
async def fetch_chat(session_id: str) -> ChatHistory:
    """Return the stored messages for the given chat session."""

    messages = chat_memory.history(session_id)
    if not messages:
        raise HTTPException(status_code=404, detail=f"No chat history found for session '{session_id}'.")
    return ChatHistory(session_id=session_id, messages=messages)
