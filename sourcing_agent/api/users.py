"""REST endpoints for inspecting and driving a user's sourcing workflow."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from sourcing_agent.agents.actions import WorkflowActions
from sourcing_agent.agents.orchestrator import TurnResult, WorkflowOrchestrator
from sourcing_agent.models.workflow import UserWorkflowState, WorkflowAction, WorkflowStep
from sourcing_agent.services.sourcing_api import SourcingApiClient
from sourcing_agent.session import StateStore
from sourcing_agent.workflow.context import planner_context, welcome_message
from sourcing_agent.workflow.state_machine import (
    generate_state_id,
    legal_actions_for,
    validate_and_repair,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["workflow"])

_STATE_CHECK_KEY = "__state_check__"

_store: StateStore | None = None
_api_client: SourcingApiClient | None = None
_orchestrator: WorkflowOrchestrator | None = None


def get_store() -> StateStore:
    global _store
    if _store is None:
        _store = StateStore()
    return _store


def get_orchestrator() -> WorkflowOrchestrator:
    global _api_client, _orchestrator
    if _orchestrator is None:
        _api_client = SourcingApiClient()
        _orchestrator = WorkflowOrchestrator(get_store(), WorkflowActions(_api_client))
    return _orchestrator


async def close_api_client() -> None:
    if _api_client is not None:
        await _api_client.aclose()


class TurnRequest(BaseModel):
    text: str = ""
    action: WorkflowAction | None = None


class ContextResponse(BaseModel):
    step: WorkflowStep
    welcome: str
    planner: str
    legal_actions: list[WorkflowAction]


@router.get("/users/{user_id}/state")
async def get_state(user_id: str, store: StateStore = Depends(get_store)) -> dict:
    """Stored state after repair. Read-only: the repaired record is not saved."""
    state = store.load(user_id)
    validate_and_repair(state)
    return state.model_dump(mode="json")


@router.get("/users/{user_id}/context", response_model=ContextResponse)
async def get_context(user_id: str, store: StateStore = Depends(get_store)) -> ContextResponse:
    state = store.load(user_id)
    step = validate_and_repair(state)
    return ContextResponse(
        step=step,
        welcome=welcome_message(step, state.email_id, state.project_id),
        planner=planner_context(step),
        legal_actions=sorted(legal_actions_for(step), key=lambda a: a.value),
    )


@router.post("/users/{user_id}/turn", response_model=TurnResult)
async def post_turn(
    user_id: str,
    body: TurnRequest,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
) -> TurnResult:
    return await orchestrator.handle_turn(user_id, body.text, body.action)


@router.post("/users/{user_id}/reset", response_model=TurnResult)
async def post_reset(
    user_id: str, orchestrator: WorkflowOrchestrator = Depends(get_orchestrator)
) -> TurnResult:
    return await orchestrator.handle_turn(user_id, action=WorkflowAction.RESET)


@router.get("/state-check")
async def state_check(store: StateStore = Depends(get_store)) -> dict:
    """Write a probe record, read it back and report whether storage round-trips it."""
    now = datetime.now(timezone.utc)
    probe = UserWorkflowState(
        current_step=WorkflowStep.PROJECT_CREATED,
        email_id="probe@example.com",
        project_id="probe",
        state_id=generate_state_id(now),
        last_activity_time=now,
    )
    store.save(_STATE_CHECK_KEY, probe)
    loaded = store.load(_STATE_CHECK_KEY)
    store.delete(_STATE_CHECK_KEY)

    ok = loaded == probe
    if not ok:
        logger.warning("State storage round trip mismatch: wrote %s, read %s", probe, loaded)
    return {
        "ok": ok,
        "written_step": probe.current_step.value,
        "read_step": loaded.current_step.value,
        "checked_at": now.isoformat(),
    }
