"""Tests for the workflow actions.

The backend client is an AsyncMock, so these exercise step guards,
extraction wiring, state updates and error handling without any HTTP.
"""

from __future__ import annotations

import json
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

from sourcing_agent.agents.actions import ActionRequest, WorkflowActions
from sourcing_agent.extraction.milestones import milestones_from_json, milestones_to_json
from sourcing_agent.models.project import ProjectMilestone
from sourcing_agent.models.workflow import UserWorkflowState, WorkflowAction, WorkflowStep
from sourcing_agent.services.sourcing_api import SourcingApiError

NOW = datetime(2025, 10, 16, 18, 30, tzinfo=timezone.utc)

WIDGET_REQUEST = (
    "Create a project called 'Widget Sourcing' with description "
    "'Find widget suppliers', email a@b.com, budget 5000"
)

SUPPLIERS = {
    "count": 2,
    "results": [
        {"currentOrder": 1, "vendorNumber": "V-1", "vendorName": "Contoso", "feedbackRating": 4.2},
        {"currentOrder": 2, "vendorNumber": "V-2", "vendorName": "Fabrikam", "companyCode": "2020"},
    ],
}


def _make_actions() -> tuple[WorkflowActions, AsyncMock]:
    api = AsyncMock()
    api.create_project.return_value = {
        "data": {"createProject": {"projectId": 42, "projectStatus": "Draft", "engagementId": "202510161830"}}
    }
    api.upsert_milestones.return_value = {"data": {"upsertEngagementInfo": {"engagementMilestoneResponse": {}}}}
    api.get_supplier_recommendations.return_value = SUPPLIERS
    api.upsert_project_suppliers.return_value = {"data": {"upsertProjectSuppliers": {"projectId": 42}}}
    api.publish_project.return_value = {"data": {"publishProject": {"projectId": 42}}}
    return WorkflowActions(api, clock=lambda: NOW), api


def _state(step: WorkflowStep, **fields) -> UserWorkflowState:
    base = {"email_id": "a@b.com", "project_id": "42", "engagement_id": "202510161830"}
    base.update(fields)
    return UserWorkflowState(current_step=step, **base)


# ---------------------------------------------------------------------------
# TestCreateProject
# ---------------------------------------------------------------------------


class TestCreateProject:
    async def test_success_advances_and_stores_ids(self):
        actions, api = _make_actions()
        state = UserWorkflowState()

        result = await actions.create_project(state, ActionRequest(text=WIDGET_REQUEST))

        assert result.success
        assert result.outcome == "project created"
        assert state.current_step == WorkflowStep.PROJECT_CREATED
        assert state.project_id == "42"
        assert state.email_id == "a@b.com"
        assert state.engagement_id == "202510161830"
        assert state.project_title == "Widget Sourcing"
        assert state.state_id == "202510161830"
        assert json.loads(state.last_api_response)["data"]["createProject"]["projectId"] == 42

    async def test_defaults_are_applied(self):
        actions, api = _make_actions()
        await actions.create_project(UserWorkflowState(), ActionRequest(text=WIDGET_REQUEST.replace(", budget 5000", "")))

        kwargs = api.create_project.await_args.kwargs
        assert kwargs["budget"] == Decimal("1000")
        assert kwargs["start_date"] == NOW + timedelta(days=1)
        assert kwargs["end_date"] == NOW + timedelta(days=30)
        assert kwargs["engagement_id"] == "202510161830"

    async def test_missing_fields_are_itemized(self):
        actions, api = _make_actions()
        state = UserWorkflowState()

        result = await actions.create_project(state, ActionRequest(text="email a@b.com"))

        assert not result.success
        assert result.outcome == "validation failed"
        assert "Project title is missing." in result.message
        assert "Project description is missing." in result.message
        assert state.current_step == WorkflowStep.PROJECT_TO_BE_CREATED
        api.create_project.assert_not_awaited()

    async def test_no_project_id_does_not_advance(self):
        actions, api = _make_actions()
        api.create_project.return_value = {"data": {"createProject": None}}
        state = UserWorkflowState()

        result = await actions.create_project(state, ActionRequest(text=WIDGET_REQUEST))

        assert result.outcome == "no project id returned"
        assert state.current_step == WorkflowStep.PROJECT_TO_BE_CREATED
        assert state.last_error == "no project id returned"

    async def test_wrong_step_is_a_no_op(self):
        actions, api = _make_actions()
        state = _state(WorkflowStep.MILESTONES_CREATED)

        result = await actions.create_project(state, ActionRequest(text=WIDGET_REQUEST))

        assert result.outcome == "action not available"
        assert state.current_step == WorkflowStep.MILESTONES_CREATED
        api.create_project.assert_not_awaited()


# ---------------------------------------------------------------------------
# TestUpsertMilestones
# ---------------------------------------------------------------------------


class TestUpsertMilestones:
    async def test_success(self):
        actions, api = _make_actions()
        state = _state(WorkflowStep.PROJECT_CREATED)

        result = await actions.upsert_milestones(
            state, ActionRequest(text="• Kickoff - due 2025-10-01\n• Ship laptops - due 2025-11-01")
        )

        assert result.success
        assert state.current_step == WorkflowStep.MILESTONES_CREATED
        assert [m.title for m in milestones_from_json(state.milestones_json)] == ["Kickoff", "Ship laptops"]
        engagement_id, milestones = api.upsert_milestones.await_args.args
        assert engagement_id == "202510161830"
        assert len(milestones) == 2

    async def test_missing_engagement_id(self):
        actions, api = _make_actions()
        state = _state(WorkflowStep.PROJECT_CREATED, engagement_id="")

        result = await actions.upsert_milestones(state, ActionRequest(text="• Kickoff - due 2025-10-01"))

        assert result.outcome == "missing engagement id"
        assert "create the project again" in result.message
        assert state.current_step == WorkflowStep.PROJECT_CREATED
        api.upsert_milestones.assert_not_awaited()

    async def test_no_milestones_gives_hint(self):
        actions, api = _make_actions()
        state = _state(WorkflowStep.PROJECT_CREATED)

        result = await actions.upsert_milestones(state, ActionRequest(text="not sure yet"))

        assert result.outcome == "no milestones found"
        assert state.current_step == WorkflowStep.PROJECT_CREATED

    async def test_api_error_is_caught_by_run(self):
        actions, api = _make_actions()
        api.upsert_milestones.side_effect = SourcingApiError("GraphQL request failed with status 502")
        state = _state(WorkflowStep.PROJECT_CREATED)

        result = await actions.run(
            WorkflowAction.UPSERT_MILESTONES, state, ActionRequest(text="• Kickoff - due 2025-10-01")
        )

        assert not result.success
        assert result.outcome == "upsertMilestones failed"
        assert "Sorry" in result.message
        assert state.last_error == "GraphQL request failed with status 502"
        assert state.current_step == WorkflowStep.PROJECT_CREATED


# ---------------------------------------------------------------------------
# TestSuppliers
# ---------------------------------------------------------------------------


class TestSuppliers:
    async def test_find_suppliers(self):
        actions, api = _make_actions()
        state = _state(WorkflowStep.MILESTONES_CREATED)

        result = await actions.find_suppliers(state, ActionRequest())

        assert result.success
        assert state.current_step == WorkflowStep.SUPPLIERS_FOUND
        assert json.loads(state.suppliers_json) == SUPPLIERS
        assert "| 1 | Contoso | V-1 |" in result.message
        api.get_supplier_recommendations.assert_awaited_once_with("IT Consulting-1010")

    async def test_find_suppliers_with_no_results(self):
        actions, api = _make_actions()
        api.get_supplier_recommendations.return_value = {"count": 0, "results": []}
        state = _state(WorkflowStep.MILESTONES_CREATED)

        result = await actions.find_suppliers(state, ActionRequest())

        assert result.outcome == "no suppliers found"
        assert state.current_step == WorkflowStep.MILESTONES_CREATED

    async def test_find_suppliers_requires_project_id(self):
        actions, api = _make_actions()
        state = _state(WorkflowStep.MILESTONES_CREATED, project_id="")

        result = await actions.find_suppliers(state, ActionRequest())

        assert result.outcome == "missing project id"
        api.get_supplier_recommendations.assert_not_awaited()

    async def test_select_suppliers(self):
        actions, api = _make_actions()
        state = _state(WorkflowStep.SUPPLIERS_FOUND, suppliers_json=json.dumps(SUPPLIERS))

        result = await actions.select_suppliers(state, ActionRequest(text="select supplier #2 and #1"))

        assert result.success
        assert state.current_step == WorkflowStep.SUPPLIERS_SELECTED
        project_id, selected = api.upsert_project_suppliers.await_args.args
        assert project_id == "42"
        assert [(s.vendor_number, s.company_code) for s in selected] == [("V-1", "1010"), ("V-2", "2020")]

    async def test_select_unknown_suppliers(self):
        actions, api = _make_actions()
        state = _state(WorkflowStep.SUPPLIERS_FOUND, suppliers_json=json.dumps(SUPPLIERS))

        result = await actions.select_suppliers(state, ActionRequest(text="supplier #7"))

        assert result.outcome == "no suppliers identified"
        assert state.current_step == WorkflowStep.SUPPLIERS_FOUND
        api.upsert_project_suppliers.assert_not_awaited()

    def test_show_suppliers_renders_stored_results(self):
        actions, api = _make_actions()
        state = _state(WorkflowStep.SUPPLIERS_SELECTED, suppliers_json=json.dumps(SUPPLIERS))
        before = state.model_copy()

        result = actions.show_suppliers(state)

        assert result.success
        assert "| 1 | Contoso | V-1 |" in result.message
        assert "| 2 | Fabrikam | V-2 |" in result.message
        assert state == before
        api.get_supplier_recommendations.assert_not_awaited()

    def test_show_suppliers_before_a_search(self):
        actions, api = _make_actions()

        result = actions.show_suppliers(_state(WorkflowStep.MILESTONES_CREATED))

        assert result.outcome == "no supplier data"
        assert "find suppliers" in result.message

    def test_show_suppliers_too_early(self):
        actions, api = _make_actions()

        result = actions.show_suppliers(_state(WorkflowStep.PROJECT_CREATED))

        assert result.outcome == "suppliers not available"


# ---------------------------------------------------------------------------
# TestPublish
# ---------------------------------------------------------------------------


class TestPublish:
    async def test_publish_shows_summary_without_changing_state(self):
        actions, api = _make_actions()
        state = _state(WorkflowStep.SUPPLIERS_SELECTED, project_title="Widgets")
        before = state.model_copy()

        result = await actions.publish_project(state, ActionRequest())

        assert result.outcome == "awaiting publish confirmation"
        assert "Oct 26, 2025" in result.message  # responses due after 10 days
        assert "Nov 01, 2025" in result.message  # award target 16 days out
        assert state == before
        api.publish_project.assert_not_awaited()

    async def test_confirm_publish_uses_last_milestone_as_award_date(self):
        actions, api = _make_actions()
        milestones = [
            ProjectMilestone(title="Kickoff", delivery_date=date(2025, 10, 20)),
            ProjectMilestone(title="Handover", delivery_date=date(2025, 12, 5)),
        ]
        state = _state(
            WorkflowStep.SUPPLIERS_SELECTED,
            project_title="Widgets",
            milestones_json=milestones_to_json(milestones),
        )

        result = await actions.confirm_publish(state, ActionRequest())

        assert result.success
        assert state.current_step == WorkflowStep.PUBLISHED
        project_id, title, release, due, award = api.publish_project.await_args.args
        assert (project_id, title) == ("42", "Widgets")
        assert release == NOW
        assert due == NOW + timedelta(days=10)
        assert award == date(2025, 12, 5)

    async def test_publish_rejected_before_project_exists(self):
        actions, api = _make_actions()
        state = UserWorkflowState()

        result = await actions.publish_project(state, ActionRequest())

        assert result.outcome == "action not available"
        assert not result.success

    async def test_publish_requires_project_id(self):
        actions, api = _make_actions()
        state = _state(WorkflowStep.SUPPLIERS_SELECTED, project_id="")

        result = await actions.publish_project(state, ActionRequest())

        assert result.outcome == "missing project id"
        assert "create the project again" in result.message
        api.publish_project.assert_not_awaited()


# ---------------------------------------------------------------------------
# TestReset
# ---------------------------------------------------------------------------


class TestReset:
    async def test_reset_clears_state_from_any_step(self):
        actions, api = _make_actions()
        state = _state(WorkflowStep.SUPPLIERS_FOUND, suppliers_json="{}", last_error="boom")

        result = await actions.reset_workflow(state, ActionRequest())

        assert result.outcome == "workflow reset"
        assert state == UserWorkflowState(state_id="202510161830", last_activity_time=NOW)
        assert "Workflow reset complete." in result.message
