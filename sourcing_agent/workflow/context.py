"""User-facing and planner-facing guidance for each workflow step."""

from __future__ import annotations

from sourcing_agent.models.workflow import UserWorkflowState, WorkflowStep
from sourcing_agent.workflow.state_machine import legal_actions_for

GET_STARTED = (
    "Hello! I'm your sourcing assistant. I can help you create sourcing projects, "
    "add milestones, find and select suppliers, and publish the project.\n\n"
    "Say 'create project' to get started!"
)

_EXAMPLE_REQUEST = (
    "\"Create a project called 'Website Redesign' with description "
    "'Update company website for better UX', email john@company.com, "
    'start date 2025-01-01, budget 25000"'
)

_MILESTONE_HINT = (
    "List them one per line, for example:\n"
    "• Kickoff meeting - due 2025-10-01\n"
    "• Ship laptops - due 2025-11-01"
)

_PLANNER_TEXT: dict[WorkflowStep, str] = {
    WorkflowStep.PROJECT_TO_BE_CREATED: (
        "The user is at the beginning of the sourcing workflow. They need to provide "
        "project details (title, description, email, dates, budget) to create a sourcing project."
    ),
    WorkflowStep.PROJECT_CREATED: (
        "The user has created a sourcing project and now needs to add milestones and deliverables."
    ),
    WorkflowStep.MILESTONES_CREATED: (
        "Milestones are saved. The next step is to search for supplier recommendations."
    ),
    WorkflowStep.SUPPLIERS_FOUND: (
        "Supplier recommendations were shown as a numbered list. The user should pick "
        "suppliers by their order number."
    ),
    WorkflowStep.SUPPLIERS_SELECTED: (
        "Suppliers are selected. Show the publication summary, then publish once the user confirms."
    ),
    WorkflowStep.PUBLISHED: (
        "The project is published to the selected suppliers. The user can start a new project by resetting."
    ),
    WorkflowStep.ERROR: (
        "An error occurred in the workflow. The user can restart or try again."
    ),
}


_WELCOME_TEXT: dict[WorkflowStep, str] = {
    WorkflowStep.PROJECT_TO_BE_CREATED: (
        "Hello! I'm here to help you create a sourcing project.\n\n"
        f"Describe the project in your own words, like:\n{_EXAMPLE_REQUEST}"
    ),
    WorkflowStep.MILESTONES_CREATED: (
        "Your milestones are saved. Say 'find suppliers' to see recommended suppliers."
    ),
    WorkflowStep.SUPPLIERS_FOUND: (
        "Pick the suppliers you want from the list by their number, "
        "e.g. 'select supplier #1 and #3'."
    ),
    WorkflowStep.SUPPLIERS_SELECTED: (
        "Your suppliers are selected. Say 'publish project' to review and publish."
    ),
    WorkflowStep.ERROR: (
        "I encountered an error in our previous interaction. Let's start fresh.\n\n"
        "Say 'create project' and I'll guide you through creating a new sourcing project."
    ),
}


def welcome_message(step: WorkflowStep, email_id: str = "", project_id: str = "") -> str:
    if step == WorkflowStep.PROJECT_CREATED:
        if project_id:
            return (
                f"Welcome back! Your sourcing project (ID: {project_id}) has been created. "
                f"Now let's add milestones and deliverables.\n\n{_MILESTONE_HINT}"
            )
        return f"Your project has been created. Let's add milestones and deliverables.\n\n{_MILESTONE_HINT}"
    if step == WorkflowStep.PUBLISHED:
        owner = f" for {email_id}" if email_id else ""
        return f"Your project{owner} is published. Say /reset to start a new sourcing project."
    return _WELCOME_TEXT.get(step, GET_STARTED)


def planner_context(step: WorkflowStep) -> str:
    """Describe the step for an action planner, ending with the legal action ids."""
    text = _PLANNER_TEXT.get(step)
    if text is None:
        return "The user can interact with the sourcing system. Help them get started by creating a sourcing project."
    actions = ", ".join(sorted(action.value for action in legal_actions_for(step)))
    return f"{text} Available actions: {actions}."


def status_message(state: UserWorkflowState) -> str:
    lines = [
        "Current workflow status:",
        f"- Step: {state.current_step.value}",
        f"- Project ID: {state.project_id or '(none)'}",
        f"- Engagement ID: {state.engagement_id or '(none)'}",
        f"- Title: {state.project_title or '(none)'}",
        f"- Email: {state.email_id or '(none)'}",
        f"- State ID: {state.state_id or '(none)'}",
    ]
    if state.last_error:
        lines.append(f"- Last error: {state.last_error}")
    return "\n".join(lines)
