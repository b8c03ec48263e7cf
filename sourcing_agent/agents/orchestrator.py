"""Workflow orchestrator: runs one chat turn for one user against a state snapshot."""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field

from sourcing_agent.agents.actions import ActionRequest, ActionResult, WorkflowActions
from sourcing_agent.models.workflow import UserWorkflowState, WorkflowAction, WorkflowStep
from sourcing_agent.session import StateStore
from sourcing_agent.workflow.context import planner_context, status_message, welcome_message
from sourcing_agent.workflow.state_machine import (
    ensure_state_id,
    legal_actions_for,
    validate_and_repair,
)

logger = logging.getLogger(__name__)

RESET_COMMAND = "/reset"
STATUS_COMMAND = "/status"
SUPPLIERS_COMMAND = "/suppliers"


class TurnResult(BaseModel):
    outcome: str
    message: str
    step: WorkflowStep
    legal_actions: list[WorkflowAction] = Field(default_factory=list)


def _sorted_actions(step: WorkflowStep) -> list[WorkflowAction]:
    return sorted(legal_actions_for(step), key=lambda a: a.value)


class WorkflowOrchestrator:
    """Loads the user's state once, repairs it, dispatches, then saves it once.

    There is no cross-turn cache: every turn starts from what the store holds.
    """

    def __init__(self, store: StateStore, actions: WorkflowActions):
        self.store = store
        self.actions = actions

    def _load(self, user_id: str) -> UserWorkflowState:
        state = self.store.load(user_id)
        validate_and_repair(state)
        return state

    def _result(self, state: UserWorkflowState, outcome: str, message: str) -> TurnResult:
        return TurnResult(
            outcome=outcome,
            message=message,
            step=state.current_step,
            legal_actions=_sorted_actions(state.current_step),
        )

    async def handle_turn(
        self, user_id: str, text: str = "", action: WorkflowAction | None = None
    ) -> TurnResult:
        state = self._load(user_id)
        command = (text or "").strip()
        logger.info(
            "Turn for %s at step %s (action=%s)",
            user_id,
            state.current_step.value,
            action.value if action else None,
        )

        if command == STATUS_COMMAND:
            result = self._result(state, "status", status_message(state))
        elif command == SUPPLIERS_COMMAND:
            shown = self.actions.show_suppliers(state)
            result = self._result(state, shown.outcome, shown.message)
        else:
            if command == RESET_COMMAND:
                action = WorkflowAction.RESET

            if action is None:
                result = self._result(
                    state, "no action", welcome_message(state.current_step, state.email_id, state.project_id)
                )
            elif action not in legal_actions_for(state.current_step):
                legal = ", ".join(a.value for a in _sorted_actions(state.current_step))
                logger.info("Rejected %s at step %s", action.value, state.current_step.value)
                result = self._result(
                    state,
                    "illegal action",
                    f"'{action.value}' isn't possible while your project is at step "
                    f"'{state.current_step.value}'. You can do one of: {legal}.",
                )
            else:
                action_result: ActionResult = await self.actions.run(
                    action, state, ActionRequest(text=text or "")
                )
                result = self._result(state, action_result.outcome, action_result.message)

        ensure_state_id(state)
        self.store.save(user_id, state)
        return result

    def welcome(self, user_id: str) -> str:
        state = self._load(user_id)
        return welcome_message(state.current_step, state.email_id, state.project_id)

    def planner_context_for(self, user_id: str) -> str:
        return planner_context(self._load(user_id).current_step)
