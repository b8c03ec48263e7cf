from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel


class WorkflowStep(str, Enum):
    PROJECT_TO_BE_CREATED = "project_to_be_created"
    PROJECT_CREATED = "project_created"
    MILESTONES_CREATED = "milestones_created"
    SUPPLIERS_FOUND = "suppliers_found"
    SUPPLIERS_SELECTED = "suppliers_selected"
    PUBLISHED = "published"
    ERROR = "error"

    @property
    def ordinal(self) -> int:
        """Position in the sourcing process; ERROR sorts after every progress step."""
        return list(WorkflowStep).index(self)


class WorkflowAction(str, Enum):
    CREATE_PROJECT = "createProject"
    UPSERT_MILESTONES = "upsertMilestones"
    FIND_SUPPLIERS = "findSuppliers"
    SELECT_SUPPLIERS = "selectSuppliers"
    PUBLISH_PROJECT = "publishProject"
    CONFIRM_PUBLISH = "confirmPublish"
    RESET = "reset"


class UserWorkflowState(BaseModel):
    current_step: WorkflowStep = WorkflowStep.PROJECT_TO_BE_CREATED
    email_id: str = ""
    project_id: str = ""  # backend-assigned, empty until project_created
    engagement_id: str = ""
    project_title: str = ""
    project_description: str = ""
    # Opaque blobs owned by the actions that write them
    milestones_json: str = ""
    suppliers_json: str = ""
    last_api_response: str = ""
    last_error: str = ""
    last_activity_time: datetime | None = None
    state_id: str = ""
