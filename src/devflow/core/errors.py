"""Exception hierarchy for the workflow orchestration engine."""

from typing import Optional


class DevflowError(Exception):
    """Base class for all devflow errors."""

    code: str = "DEVFLOW_ERROR"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def __str__(self) -> str:
        return self.message


class ValidationError(DevflowError):
    """Caller-facing validation failure. Surfaced verbatim, never retried."""

    code = "VALIDATION_ERROR"


class WorkflowValidationError(ValidationError):
    """A workflow definition is structurally invalid."""

    code = "WORKFLOW_INVALID"

    def __init__(
        self,
        message: str,
        phase: Optional[str] = None,
        transition: Optional[str] = None,
        source: Optional[str] = None,
    ):
        if source:
            message = f"{message} (in {source})"
        super().__init__(message)
        self.phase = phase
        self.transition = transition
        self.source = source


class WorkflowConfigError(ValidationError):
    """The project configuration file is malformed."""

    code = "CONFIG_INVALID"


class WorkflowNotFoundError(ValidationError):
    """No workflow with the requested name is visible to the project."""

    code = "WORKFLOW_NOT_FOUND"


class PhaseValidationError(ValidationError):
    """The requested phase does not exist in the active workflow."""

    code = "PHASE_INVALID"


class RoleValidationError(ValidationError):
    """The caller's role has no transition to the requested phase."""

    code = "ROLE_INVALID"


class RequestValidationError(ValidationError):
    """A request carries inconsistent or missing arguments."""

    code = "REQUEST_INVALID"


class ConversationNotFoundError(DevflowError):
    """No usable conversation state exists for the current project and branch."""

    code = "CONVERSATION_NOT_FOUND"

    def __init__(self, project_path: str, git_branch: str, reason: Optional[str] = None):
        found = (
            f"The development conversation for project '{project_path}' on branch "
            f"'{git_branch}' cannot be used ({reason})."
            if reason
            else f"No development conversation found for project '{project_path}' on branch '{git_branch}'."
        )
        super().__init__(
            f"{found} Call start_development first to initialize a workflow for this project."
        )
        self.project_path = project_path
        self.git_branch = git_branch
        self.reason = reason


class TaskBackendError(DevflowError):
    """An external task tracker command failed or timed out.

    Raised by the tracker client only; callers recover locally.
    """

    code = "TASK_BACKEND_ERROR"
