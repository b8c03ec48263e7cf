"""Workflow actions: one coroutine per sourcing step.

Each action checks that the user's state allows it, parses the turn's text,
calls the backend and, only when that succeeds, records the returned ids
and moves ``current_step`` forward. Failures never escape an action: they
are logged, kept in ``state.last_error`` and turned into a chat reply.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Awaitable, Callable
from datetime import date, datetime, timedelta, timezone
from typing import Any

from pydantic import BaseModel

from sourcing_agent.config import settings
from sourcing_agent.extraction.milestones import (
    extract_milestones,
    milestones_from_json,
    milestones_to_json,
)
from sourcing_agent.extraction.project_details import extract_project_details
from sourcing_agent.extraction.suppliers import (
    extract_order_ids,
    load_supplier_results,
    match_selected_suppliers,
    parse_supplier_results,
)
from sourcing_agent.models.project import ProjectDetails, SupplierResult
from sourcing_agent.models.workflow import UserWorkflowState, WorkflowAction, WorkflowStep
from sourcing_agent.services.sourcing_api import SourcingApiClient
from sourcing_agent.workflow.context import welcome_message
from sourcing_agent.workflow.state_machine import (
    ensure_state_id,
    is_action_allowed,
    missing_identifiers,
    reset_state,
    touch,
)

logger = logging.getLogger(__name__)

_EMAIL_SHAPE = re.compile(r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")

_FORMAT_HINT = (
    "Please describe the project like this:\n"
    "\"Create a project called 'Website Redesign' with description "
    "'Update company website', email john@company.com, budget 25000\""
)

_MILESTONE_FORMAT_HINT = (
    "I couldn't find any milestones in that message. Please list them with a date, e.g.:\n"
    "• Kickoff meeting - due 2025-10-01\n"
    "• Ship laptops - due 2025-11-01\n"
    "or 'Deliver 10 laptops by 2025-10-15'."
)

_SELECTION_HINT = (
    "I couldn't identify which suppliers you want. Please use their numbers from the list, "
    "e.g. 'select supplier #1 and #2' or 'choose suppliers 1, 2'."
)


class ActionRequest(BaseModel):
    text: str = ""


class ActionResult(BaseModel):
    outcome: str
    message: str
    success: bool = False


def validate_project_details(details: ProjectDetails) -> list[str]:
    """Return one readable line per problem; an empty list means the details are usable."""
    problems: list[str] = []
    if not details.title:
        problems.append("Project title is missing.")
    if not details.description:
        problems.append("Project description is missing.")
    if not details.email:
        problems.append("Email address is missing.")
    elif not _EMAIL_SHAPE.match(details.email):
        problems.append(f"'{details.email}' is not a valid email address.")
    if details.budget <= 0:
        problems.append("Budget must be greater than zero.")
    if details.start_date and details.end_date and details.start_date >= details.end_date:
        problems.append("Start date must be before the end date.")
    return problems


def apply_defaults(details: ProjectDetails, now: datetime) -> ProjectDetails:
    """Fill in the dates and budget a user may leave out."""
    return details.model_copy(
        update={
            "start_date": details.start_date or now + timedelta(days=settings.default_start_offset_days),
            "end_date": details.end_date or now + timedelta(days=settings.default_end_offset_days),
            "budget": details.budget if details.budget > 0 else settings.default_budget,
        }
    )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _graphql_field(response: dict[str, Any], field: str) -> dict[str, Any]:
    data = response.get("data") or {}
    value = data.get(field) if isinstance(data, dict) else None
    return value if isinstance(value, dict) else {}


def _bullets(lines: list[str]) -> str:
    return "\n".join(f"• {line}" for line in lines)


def _supplier_table(suppliers: list[SupplierResult]) -> str:
    rows = ["| # | Supplier | Vendor # | Location | Rating | Experience | Cost |", "|---|---|---|---|---|---|---|"]
    for s in suppliers:
        rating = f"{s.feedback_rating:.1f}" if s.feedback_rating is not None else "-"
        rows.append(
            f"| {s.order_id} | {s.vendor_name or '-'} | {s.vendor_number or '-'} | "
            f"{s.vendor_location or '-'} | {rating} | {s.experience_level or '-'} | {s.cost_rating or '-'} |"
        )
    return "\n".join(rows)


class WorkflowActions:
    def __init__(self, api: SourcingApiClient, clock: Callable[[], datetime] = _utcnow):
        self.api = api
        self._clock = clock
        self._handlers: dict[
            WorkflowAction, Callable[[UserWorkflowState, ActionRequest], Awaitable[ActionResult]]
        ] = {
            WorkflowAction.CREATE_PROJECT: self.create_project,
            WorkflowAction.UPSERT_MILESTONES: self.upsert_milestones,
            WorkflowAction.FIND_SUPPLIERS: self.find_suppliers,
            WorkflowAction.SELECT_SUPPLIERS: self.select_suppliers,
            WorkflowAction.PUBLISH_PROJECT: self.publish_project,
            WorkflowAction.CONFIRM_PUBLISH: self.confirm_publish,
            WorkflowAction.RESET: self.reset_workflow,
        }

    async def run(
        self, action: WorkflowAction, state: UserWorkflowState, request: ActionRequest
    ) -> ActionResult:
        """Dispatch *action*; any exception becomes an apology and ``last_error``."""
        handler = self._handlers[action]
        try:
            return await handler(state, request)
        except Exception as exc:
            logger.exception("Action %s failed", action.value)
            state.last_error = str(exc)
            return ActionResult(
                outcome=f"{action.value} failed",
                message=f"Sorry, I ran into a problem while processing that: {exc}. Please try again.",
            )

    def _not_available(self, state: UserWorkflowState, action: WorkflowAction) -> ActionResult | None:
        if is_action_allowed(state.current_step, action):
            return None
        logger.info("%s requested at step %s, ignoring", action.value, state.current_step.value)
        return ActionResult(
            outcome="action not available",
            message=(
                f"I can't {action.value} right now: your project is at step "
                f"'{state.current_step.value}'."
            ),
        )

    def _missing(self, state: UserWorkflowState, fields: list[str], redo: str) -> ActionResult:
        names = ", ".join(f.replace("_", " ") for f in fields)
        logger.error("Missing %s at step %s", names, state.current_step.value)
        return ActionResult(
            outcome=f"missing {names}",
            message=f"I'm missing the {names} for your project. Please {redo}.",
        )

    def _failed(self, state: UserWorkflowState, outcome: str, message: str) -> ActionResult:
        state.last_error = outcome
        return ActionResult(outcome=outcome, message=message)

    # ------------------------------------------------------------------
    # createProject
    # ------------------------------------------------------------------

    async def create_project(self, state: UserWorkflowState, request: ActionRequest) -> ActionResult:
        blocked = self._not_available(state, WorkflowAction.CREATE_PROJECT)
        if blocked:
            return blocked

        now = self._clock()
        details = apply_defaults(extract_project_details(request.text), now)
        problems = validate_project_details(details)
        if problems:
            logger.info("Project details incomplete: %s", problems)
            return ActionResult(
                outcome="validation failed",
                message=f"I need a bit more before I can create the project:\n{_bullets(problems)}\n\n{_FORMAT_HINT}",
            )

        engagement_id = ensure_state_id(state, now)
        response = await self.api.create_project(
            title=details.title,
            description=details.description,
            email=details.email,
            budget=details.budget,
            start_date=details.start_date,
            end_date=details.end_date,
            engagement_id=engagement_id,
        )
        created = _graphql_field(response, "createProject")
        project_id = created.get("projectId")
        if project_id in (None, ""):
            logger.error("createProject returned no project id: %s", response)
            return self._failed(
                state,
                "no project id returned",
                "The sourcing project could not be created: the backend returned no project id. Please try again.",
            )

        state.email_id = details.email
        state.project_id = str(project_id)
        state.engagement_id = str(created.get("engagementId") or engagement_id)
        state.project_title = details.title
        state.project_description = details.description
        state.last_api_response = json.dumps(response)
        state.last_error = ""
        state.current_step = WorkflowStep.PROJECT_CREATED
        touch(state, now)
        logger.info("Project %s created for %s", state.project_id, state.email_id)

        return ActionResult(
            outcome="project created",
            success=True,
            message=(
                "Sourcing project created!\n\n"
                f"Project ID: {state.project_id}\n"
                f"Title: {details.title}\n"
                f"Description: {details.description}\n"
                f"Email: {details.email}\n"
                f"Start date: {details.start_date:%Y-%m-%d}\n"
                f"End date: {details.end_date:%Y-%m-%d}\n"
                f"Budget: ${details.budget:,.0f} USD\n"
                f"Engagement ID: {state.engagement_id}\n\n"
                "Next, tell me the project milestones and their delivery dates."
            ),
        )

    # ------------------------------------------------------------------
    # upsertMilestones
    # ------------------------------------------------------------------

    async def upsert_milestones(self, state: UserWorkflowState, request: ActionRequest) -> ActionResult:
        blocked = self._not_available(state, WorkflowAction.UPSERT_MILESTONES)
        if blocked:
            return blocked
        missing = missing_identifiers(state, "engagement_id")
        if missing:
            return self._missing(state, missing, "create the project again")

        milestones = extract_milestones(request.text)
        if not milestones:
            return ActionResult(outcome="no milestones found", message=_MILESTONE_FORMAT_HINT)

        response = await self.api.upsert_milestones(state.engagement_id, milestones)
        if not _graphql_field(response, "upsertEngagementInfo"):
            logger.error("upsertEngagementInfo returned no data: %s", response)
            return self._failed(
                state, "invalid api response", "The milestones could not be saved. Please try again."
            )

        state.milestones_json = milestones_to_json(milestones)
        state.last_api_response = json.dumps(response)
        state.last_error = ""
        state.current_step = WorkflowStep.MILESTONES_CREATED
        touch(state, self._clock())
        logger.info("Saved %d milestones for engagement %s", len(milestones), state.engagement_id)

        lines = [f"{m.title} - {m.delivery_date.isoformat()}" for m in milestones]
        return ActionResult(
            outcome="milestones created",
            success=True,
            message=(
                f"Saved {len(milestones)} milestone(s):\n{_bullets(lines)}\n\n"
                "Say 'find suppliers' to see recommended suppliers."
            ),
        )

    # ------------------------------------------------------------------
    # findSuppliers
    # ------------------------------------------------------------------

    async def find_suppliers(self, state: UserWorkflowState, request: ActionRequest) -> ActionResult:
        blocked = self._not_available(state, WorkflowAction.FIND_SUPPLIERS)
        if blocked:
            return blocked
        missing = missing_identifiers(state, "project_id", "engagement_id")
        if missing:
            return self._missing(state, missing, "create the project again")

        response = await self.api.get_supplier_recommendations(settings.supplier_category)
        suppliers = parse_supplier_results(response, settings.default_company_code)
        if not suppliers:
            return ActionResult(
                outcome="no suppliers found",
                message="No suppliers were recommended for this project. Please try again later.",
            )

        state.suppliers_json = json.dumps(response)
        state.last_error = ""
        state.current_step = WorkflowStep.SUPPLIERS_FOUND
        touch(state, self._clock())
        logger.info("Found %d suppliers for project %s", len(suppliers), state.project_id)

        return ActionResult(
            outcome="suppliers found",
            success=True,
            message=(
                f"I found {len(suppliers)} recommended supplier(s):\n\n{_supplier_table(suppliers)}\n\n"
                "Tell me which ones to invite by number, e.g. 'select supplier #1 and #3'."
            ),
        )

    def show_suppliers(self, state: UserWorkflowState) -> ActionResult:
        """Re-display the stored search results without touching the state."""
        if state.current_step.ordinal < WorkflowStep.MILESTONES_CREATED.ordinal:
            return ActionResult(
                outcome="suppliers not available",
                message="Suppliers are not available yet. Please create the project and add milestones first.",
            )
        suppliers = load_supplier_results(state.suppliers_json, settings.default_company_code)
        if not suppliers:
            return ActionResult(
                outcome="no supplier data",
                message="No suppliers have been found yet. Say 'find suppliers' to run a supplier search.",
            )
        return ActionResult(
            outcome="suppliers shown",
            success=True,
            message=f"Suppliers found for your project:\n\n{_supplier_table(suppliers)}",
        )

    # ------------------------------------------------------------------
    # selectSuppliers
    # ------------------------------------------------------------------

    async def select_suppliers(self, state: UserWorkflowState, request: ActionRequest) -> ActionResult:
        blocked = self._not_available(state, WorkflowAction.SELECT_SUPPLIERS)
        if blocked:
            return blocked
        missing = missing_identifiers(state, "project_id")
        if missing:
            return self._missing(state, missing, "create the project again")

        order_ids = extract_order_ids(request.text)
        selected = match_selected_suppliers(order_ids, state.suppliers_json, settings.default_company_code)
        if not selected:
            return ActionResult(outcome="no suppliers identified", message=_SELECTION_HINT)

        response = await self.api.upsert_project_suppliers(state.project_id, selected)
        if not _graphql_field(response, "upsertProjectSuppliers").get("projectId"):
            logger.error("upsertProjectSuppliers returned no project id: %s", response)
            return self._failed(
                state, "invalid api response", "Your supplier selection could not be saved. Please try again."
            )

        state.last_api_response = json.dumps(response)
        state.last_error = ""
        state.current_step = WorkflowStep.SUPPLIERS_SELECTED
        touch(state, self._clock())
        logger.info("Selected %d suppliers for project %s", len(selected), state.project_id)

        lines = [f"#{s.order_id} {s.vendor_name} ({s.vendor_number})" for s in selected]
        return ActionResult(
            outcome="suppliers selected",
            success=True,
            message=(
                f"Saved your selection of {len(selected)} supplier(s):\n{_bullets(lines)}\n\n"
                "Say 'publish project' to review the publication details."
            ),
        )

    # ------------------------------------------------------------------
    # publishProject / confirmPublish
    # ------------------------------------------------------------------

    def _schedule(self, state: UserWorkflowState, now: datetime) -> tuple[datetime, datetime, date]:
        """Release now, responses due after the response window, award on the last milestone."""
        due = now + timedelta(days=settings.supplier_response_days)
        milestones = milestones_from_json(state.milestones_json)
        if milestones:
            award = max(m.delivery_date for m in milestones)
        else:
            award = (now + timedelta(days=settings.award_target_days)).date()
        return now, due, award

    async def publish_project(self, state: UserWorkflowState, request: ActionRequest) -> ActionResult:
        blocked = self._not_available(state, WorkflowAction.PUBLISH_PROJECT)
        if blocked:
            return blocked
        missing = missing_identifiers(state, "project_id")
        if missing:
            return self._missing(state, missing, "create the project again")

        release, due, award = self._schedule(state, self._clock())
        return ActionResult(
            outcome="awaiting publish confirmation",
            success=True,
            message=(
                "Ready to publish:\n\n"
                f"Project: {state.project_title or state.project_id}\n"
                f"Project ID: {state.project_id}\n"
                f"Release to suppliers: {release:%b %d, %Y}\n"
                f"Supplier responses due by: {due:%b %d, %Y}\n"
                f"Award target date: {award:%b %d, %Y}\n\n"
                "Say 'confirm publish' to send it to the selected suppliers."
            ),
        )

    async def confirm_publish(self, state: UserWorkflowState, request: ActionRequest) -> ActionResult:
        blocked = self._not_available(state, WorkflowAction.CONFIRM_PUBLISH)
        if blocked:
            return blocked
        missing = missing_identifiers(state, "project_id")
        if missing:
            return self._missing(state, missing, "create the project again")

        now = self._clock()
        release, due, award = self._schedule(state, now)
        response = await self.api.publish_project(
            state.project_id, state.project_title, release, due, award
        )
        if not _graphql_field(response, "publishProject"):
            logger.error("publishProject returned no data: %s", response)
            return self._failed(
                state, "invalid api response", "The project could not be published. Please try again."
            )

        state.last_api_response = json.dumps(response)
        state.last_error = ""
        state.current_step = WorkflowStep.PUBLISHED
        touch(state, now)
        logger.info("Project %s published", state.project_id)

        return ActionResult(
            outcome="project published",
            success=True,
            message=(
                f"Project {state.project_id} is published! The selected suppliers will be "
                f"notified and responses are due by {due:%b %d, %Y}.\n\n"
                "Say /reset whenever you want to start a new sourcing project."
            ),
        )

    # ------------------------------------------------------------------
    # reset
    # ------------------------------------------------------------------

    async def reset_workflow(self, state: UserWorkflowState, request: ActionRequest) -> ActionResult:
        reset_state(state, self._clock())
        logger.info("Workflow reset, new state id %s", state.state_id)
        return ActionResult(
            outcome="workflow reset",
            success=True,
            message=f"Workflow reset complete.\n\n{welcome_message(state.current_step)}",
        )
