"""Step legality, consistency repair and reset for a user's workflow state.

Nothing here advances the step on its own. Actions move ``current_step``
forward after a successful backend call; this module only says which
actions are legal and puts an inconsistent record back into a usable shape.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sourcing_agent.models.workflow import UserWorkflowState, WorkflowAction, WorkflowStep

logger = logging.getLogger(__name__)

LEGAL_ACTIONS: dict[WorkflowStep, frozenset[WorkflowAction]] = {
    WorkflowStep.PROJECT_TO_BE_CREATED: frozenset({WorkflowAction.CREATE_PROJECT, WorkflowAction.RESET}),
    WorkflowStep.PROJECT_CREATED: frozenset({WorkflowAction.UPSERT_MILESTONES, WorkflowAction.RESET}),
    WorkflowStep.MILESTONES_CREATED: frozenset({WorkflowAction.FIND_SUPPLIERS, WorkflowAction.RESET}),
    WorkflowStep.SUPPLIERS_FOUND: frozenset({WorkflowAction.SELECT_SUPPLIERS, WorkflowAction.RESET}),
    WorkflowStep.SUPPLIERS_SELECTED: frozenset(
        {WorkflowAction.PUBLISH_PROJECT, WorkflowAction.CONFIRM_PUBLISH, WorkflowAction.RESET}
    ),
    WorkflowStep.PUBLISHED: frozenset({WorkflowAction.RESET}),
    WorkflowStep.ERROR: frozenset({WorkflowAction.CREATE_PROJECT, WorkflowAction.RESET}),
}

# Steps whose record must still carry an email or a project id
_CORRELATED_STEPS = frozenset(
    {
        WorkflowStep.PROJECT_CREATED,
        WorkflowStep.MILESTONES_CREATED,
        WorkflowStep.SUPPLIERS_SELECTED,
    }
)

STATE_ID_FORMAT = "%Y%m%d%H%M"


def legal_actions_for(step: WorkflowStep) -> frozenset[WorkflowAction]:
    return LEGAL_ACTIONS.get(step, frozenset({WorkflowAction.RESET}))


def is_action_allowed(step: WorkflowStep, action: WorkflowAction) -> bool:
    return action in legal_actions_for(step)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_state_id(now: datetime | None = None) -> str:
    """Timestamp-derived session id, ``YYYYMMDDHHMM`` in UTC."""
    now = now or _utcnow()
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return now.strftime(STATE_ID_FORMAT)


def ensure_state_id(state: UserWorkflowState, now: datetime | None = None) -> str:
    if not state.state_id:
        state.state_id = generate_state_id(now)
    return state.state_id


def touch(state: UserWorkflowState, now: datetime | None = None) -> None:
    state.last_activity_time = now or _utcnow()


def validate_and_repair(state: UserWorkflowState) -> WorkflowStep:
    """Check the record against its step and repair it in place.

    When both correlating keys (email and project id) are gone the record
    cannot be resumed, so it drops back to ``project_to_be_created``. When
    only one is missing the step is kept and the gap is logged; the missing
    value is never guessed.
    """
    step = state.current_step
    if step not in _CORRELATED_STEPS:
        return step

    if not state.email_id and not state.project_id:
        logger.warning(
            "State at %s has neither email nor project id, resetting to %s",
            step.value,
            WorkflowStep.PROJECT_TO_BE_CREATED.value,
        )
        state.current_step = WorkflowStep.PROJECT_TO_BE_CREATED
        state.email_id = ""
        state.project_id = ""
        state.engagement_id = ""
    elif not state.email_id or not state.project_id:
        logger.warning(
            "State at %s is missing %s, keeping step",
            step.value,
            "email id" if not state.email_id else "project id",
        )
    return state.current_step


def missing_identifiers(state: UserWorkflowState, *fields: str) -> list[str]:
    """Names of the requested identifier fields that are empty, e.g. ``["engagement_id"]``."""
    return [name for name in fields if not getattr(state, name)]


def reset_state(state: UserWorkflowState, now: datetime | None = None) -> UserWorkflowState:
    """Clear every identifying and cached field and start a new session id."""
    now = now or _utcnow()
    defaults = UserWorkflowState()
    for name in UserWorkflowState.model_fields:
        setattr(state, name, getattr(defaults, name))
    state.state_id = generate_state_id(now)
    state.last_activity_time = now
    return state
