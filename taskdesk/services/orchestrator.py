"""Command orchestrator: the named operations an agent (or REST caller) may invoke.

Each operation validates its input model, resolves fuzzy references
against the team context, mutates through the store services and returns
a ``ToolResult``. Expected failures come back as structured results; the
orchestrator never lets an exception escape ``invoke``.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Type

from pydantic import BaseModel, ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from taskdesk.core.exceptions import (
    AmbiguousReferenceError, EntityNotFoundError, TaskdeskError, ValidationError,
)
from taskdesk.core.middleware import current_correlation_id
from taskdesk.core.security import Principal
from taskdesk.models.issue import Issue
from taskdesk.models.project import Project
from taskdesk.schemas import tools as schemas
from taskdesk.services.invitation_service import InvitationService, Mailer
from taskdesk.services.issue_numbering import IssueNumberAllocator
from taskdesk.services.issue_service import IssueService, normalize_assignee
from taskdesk.services.member_service import MemberService
from taskdesk.services.project_service import ProjectService
from taskdesk.services.query_engine import IssueFilter, IssueQueryEngine, IssueSort
from taskdesk.services.resolver import (
    Ambiguous, Resolution, Resolved, TeamContext, load_issue_entries, load_team_context,
    resolve_issue_by_title, resolve_label, resolve_member, resolve_project,
    resolve_project_by_name, resolve_workflow_state,
)
from taskdesk.services.team_service import TeamService

logger = logging.getLogger("taskdesk.orchestrator")

GENERIC_FAILURE = "Something went wrong. Please try again."


@dataclass
class ToolResult:
    """Outcome of one operation, shaped for display to an end user."""

    success: bool
    message: str
    data: Dict[str, Any] = field(default_factory=dict)
    error_kind: Optional[str] = None
    error_field: Optional[str] = None
    candidates: List[Dict[str, str]] = field(default_factory=list)
    correlation_id: Optional[str] = None

    @classmethod
    def ok(cls, message: str, **data) -> "ToolResult":
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(cls, kind: str, message: str, **extra) -> "ToolResult":
        return cls(success=False, message=message, error_kind=kind, **extra)

    @classmethod
    def from_error(cls, error: TaskdeskError) -> "ToolResult":
        return cls.fail(
            error.kind,
            error.message,
            error_field=getattr(error, "field", None),
            candidates=list(getattr(error, "candidates", []) or []),
            correlation_id=getattr(error, "correlation_id", None),
        )

    def to_dict(self) -> Dict[str, Any]:
        if self.success:
            return {"success": True, "message": self.message, **self.data}
        payload: Dict[str, Any] = {
            "success": False,
            "error": self.message,
            "errorKind": self.error_kind,
        }
        if self.error_field:
            payload["field"] = self.error_field
        if self.candidates:
            payload["candidates"] = self.candidates
        if self.correlation_id:
            payload["correlationId"] = self.correlation_id
        return payload


@dataclass(frozen=True)
class ToolSpec:
    name: str
    input_model: Type[BaseModel]
    handler: str
    min_role: str = "viewer"

    @property
    def description(self) -> str:
        return (self.input_model.__doc__ or self.name).strip()

    def schema(self) -> Dict[str, Any]:
        """OpenAI function-calling definition for this tool."""
        parameters = self.input_model.model_json_schema()
        parameters.pop("title", None)
        parameters.pop("description", None)
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": parameters,
            },
        }


TOOLS: Dict[str, ToolSpec] = {spec.name: spec for spec in (
    ToolSpec("createIssue", schemas.CreateIssueInput, "create_issue", "developer"),
    ToolSpec("updateIssue", schemas.UpdateIssueInput, "update_issue", "developer"),
    ToolSpec("getIssue", schemas.GetIssueInput, "get_issue"),
    ToolSpec("listIssues", schemas.ListIssuesInput, "list_issues"),
    ToolSpec("deleteIssue", schemas.DeleteIssueInput, "delete_issue", "developer"),
    ToolSpec("createProject", schemas.CreateProjectInput, "create_project", "developer"),
    ToolSpec("updateProject", schemas.UpdateProjectInput, "update_project", "developer"),
    ToolSpec("listProjects", schemas.ListProjectsInput, "list_projects"),
    ToolSpec("inviteTeamMember", schemas.InviteTeamMemberInput, "invite_team_member", "admin"),
    ToolSpec("listTeamMembers", schemas.ListTeamMembersInput, "list_team_members"),
    ToolSpec("getTeamStats", schemas.GetTeamStatsInput, "get_team_stats"),
)}


def _describe_validation(error: PydanticValidationError) -> str:
    parts = []
    for item in error.errors():
        where = ".".join(str(loc) for loc in item.get("loc", ())) or "input"
        parts.append(f"{where}: {item.get('msg', 'invalid value')}")
    return "Invalid input - " + "; ".join(parts)


def _require(resolution: Resolution, field_name: str, noun: str, phrase: str = "matching") -> Resolved:
    """Unwrap a resolution or raise the matching reference error for ``field_name``."""
    if isinstance(resolution, Resolved):
        return resolution
    if isinstance(resolution, Ambiguous):
        labels = ", ".join(c.label for c in resolution.candidates)
        raise AmbiguousReferenceError(
            f'Multiple {noun}s found matching "{resolution.reference}": {labels}. Please be more specific.',
            reference=resolution.reference,
            candidates=[{"id": c.id, "label": c.label} for c in resolution.candidates],
            field=field_name,
        )
    raise EntityNotFoundError(
        f'No {noun} found {phrase} "{resolution.reference}"',
        reference=resolution.reference,
        field=field_name,
    )


def _summary(issue: Dict[str, Any]) -> Dict[str, Any]:
    """Compact issue view handed back to the agent."""
    return {
        "id": issue["id"],
        "number": issue["number"],
        "identifier": issue["identifier"],
        "title": issue["title"],
        "description": issue["description"],
        "priority": issue["priority"],
        "estimate": issue["estimate"],
        "assignee": issue["assigneeName"],
        "assigneeId": issue["assigneeId"],
        "project": issue["project"]["name"] if issue["project"] else None,
        "projectId": issue["projectId"],
        "workflowState": issue["workflowState"]["name"] if issue["workflowState"] else None,
        "workflowStateId": issue["workflowStateId"],
        "labels": [label["name"] for label in issue["labels"]],
        "commentCount": issue["commentCount"],
    }


def project_view(project: Project, issue_count: Optional[int] = None) -> Dict[str, Any]:
    view = {
        "id": project.id,
        "name": project.name,
        "key": project.key,
        "description": project.description,
        "color": project.color,
        "icon": project.icon,
        "status": project.status.value,
        "leadId": project.lead_id,
        "lead": project.lead_name,
    }
    if issue_count is not None:
        view["issueCount"] = issue_count
    return view


class CommandOrchestrator:
    """Runs catalogue operations for one (team, caller) pair."""

    def __init__(
        self,
        db: Session,
        team_id: str,
        principal: Principal,
        mailer: Optional[Mailer] = None,
        allocator: Optional[IssueNumberAllocator] = None,
        context: Optional[TeamContext] = None,
    ):
        self.db = db
        self.team_id = team_id
        self.principal = principal
        self.mailer = mailer
        self.allocator = allocator
        self._context = context

    @property
    def context(self) -> TeamContext:
        if self._context is None:
            self._context = load_team_context(self.db, self.team_id)
        return self._context

    def refresh_context(self) -> None:
        self._context = None

    @staticmethod
    def tool_schemas() -> List[Dict[str, Any]]:
        return [spec.schema() for spec in TOOLS.values()]

    def invoke(self, name: str, arguments: Optional[Dict[str, Any]]) -> ToolResult:
        """Run ``name`` with raw ``arguments``; always returns a result."""
        spec = TOOLS.get(name)
        if spec is None:
            return ToolResult.fail(ValidationError.kind, f"Unknown operation '{name}'")
        if arguments is not None and not isinstance(arguments, dict):
            return ToolResult.fail(ValidationError.kind, "Invalid input - arguments must be an object")

        try:
            params = spec.input_model.model_validate(arguments or {})
        except PydanticValidationError as e:
            return ToolResult.fail(ValidationError.kind, _describe_validation(e))

        handler: Callable[[Any], ToolResult] = getattr(self, spec.handler)
        try:
            MemberService.require_membership(self.db, self.team_id, self.principal, spec.min_role)
            result = handler(params)
        except TaskdeskError as e:
            self.db.rollback()
            logger.info("%s failed for team %s: [%s] %s", name, self.team_id, e.kind, e.message)
            return ToolResult.from_error(e)
        except Exception:
            self.db.rollback()
            correlation_id = current_correlation_id()
            logger.exception("%s crashed for team %s [%s]", name, self.team_id, correlation_id)
            return ToolResult.fail("dependency_failure", GENERIC_FAILURE, correlation_id=correlation_id)

        logger.info("%s succeeded for team %s", name, self.team_id)
        return result

    # ---- Resolution helpers ----

    def _issue_view(self, issue: Issue) -> Dict[str, Any]:
        return IssueQueryEngine.project_all(self.db, self.team_id, [issue])[0]

    def _find_issue(self, issue_id: Optional[str], title: Optional[str]) -> Issue:
        if issue_id:
            return IssueService.get(self.db, self.team_id, issue_id)
        if title is not None and title.strip():
            entries = load_issue_entries(self.db, self.team_id)
            match = _require(resolve_issue_by_title(entries, title), "title", "issue", "with title")
            return IssueService.get(self.db, self.team_id, match.id)
        raise ValidationError("Either issueId or title must be provided")

    def _assignee(self, reference: Optional[str], field_name: str = "assigneeId"):
        """Return (user_id, user_name) for an assignee reference, or (None, None)."""
        if normalize_assignee(reference) is None:
            return None, None
        member = _require(resolve_member(self.context, reference), field_name, "team member")
        return member.id, member.label

    def _label_ids(self, references: Optional[List[str]]) -> List[str]:
        return [
            _require(resolve_label(self.context, ref), "labelIds", "label").id
            for ref in references or []
        ]

    def _project_id(self, reference: Optional[str]) -> Optional[str]:
        if reference is None or not reference.strip():
            return None
        return _require(resolve_project(self.context, reference), "projectId", "project").id

    # ---- Issues ----

    def create_issue(self, params: schemas.CreateIssueInput) -> ToolResult:
        state = _require(
            resolve_workflow_state(self.context, params.workflowStateId), "workflowStateId", "workflow state",
        )
        project_id = self._project_id(params.projectId)
        assignee_id, assignee_name = self._assignee(params.assigneeId)
        issue = IssueService.create(
            self.db,
            self.team_id,
            self.principal,
            title=params.title,
            workflow_state_id=state.id,
            description=params.description,
            priority=params.priority,
            estimate=params.estimate,
            project_id=project_id,
            assignee_id=assignee_id,
            assignee_name=assignee_name,
            label_ids=self._label_ids(params.labelIds),
            allocator=self.allocator,
        )
        return ToolResult.ok(
            f'Issue #{issue.number} "{issue.title}" has been created successfully.',
            issue=_summary(self._issue_view(issue)),
        )

    def update_issue(self, params: schemas.UpdateIssueInput) -> ToolResult:
        issue = self._find_issue(params.issueId, params.title)
        provided = params.model_fields_set
        changes: Dict[str, Any] = {}

        if "newTitle" in provided and params.newTitle is not None:
            changes["title"] = params.newTitle
        if "description" in provided:
            changes["description"] = params.description
        if "projectId" in provided:
            changes["project_id"] = self._project_id(params.projectId)
        if "workflowStateId" in provided and params.workflowStateId is not None:
            changes["workflow_state_id"] = _require(
                resolve_workflow_state(self.context, params.workflowStateId),
                "workflowStateId", "workflow state",
            ).id
        if "assigneeId" in provided:
            changes["assignee_id"], changes["assignee_name"] = self._assignee(params.assigneeId)
        if "priority" in provided and params.priority is not None:
            changes["priority"] = params.priority
        if "estimate" in provided:
            changes["estimate"] = params.estimate
        if "labelIds" in provided:
            changes["label_ids"] = self._label_ids(params.labelIds)

        if not changes:
            raise ValidationError("No changes provided for the issue")

        issue = IssueService.update(self.db, self.team_id, issue.id, changes)
        return ToolResult.ok(
            f'Issue #{issue.number} "{issue.title}" has been updated successfully.',
            issue=_summary(self._issue_view(issue)),
        )

    def get_issue(self, params: schemas.GetIssueInput) -> ToolResult:
        view = self._issue_view(IssueService.get(self.db, self.team_id, params.issueId))
        return ToolResult.ok(f'Issue {view["identifier"]} "{view["title"]}"', issue=_summary(view))

    def list_issues(self, params: schemas.ListIssuesInput) -> ToolResult:
        filters = IssueFilter(search=params.search)
        if params.workflowStateId:
            filters.status = [_require(
                resolve_workflow_state(self.context, params.workflowStateId),
                "workflowStateId", "workflow state",
            ).id]
        if params.assigneeId:
            assignee_id, _ = self._assignee(params.assigneeId)
            filters.assignee = [assignee_id or "unassigned"]
        if params.projectId:
            filters.project = [self._project_id(params.projectId)]
        if params.priority:
            filters.priority = [params.priority]
        sort = IssueSort(params.sortField or "createdAt", params.sortDirection or "desc")

        result = IssueQueryEngine.search(self.db, self.team_id, filters, sort, params.limit)
        count, total = result["count"], result["total"]
        message = f"Found all {total} issues" if count == total else f"Showing {count} of {total} total issues"
        return ToolResult.ok(
            message,
            issues=[_summary(issue) for issue in result["issues"]],
            count=count,
            total=total,
        )

    def delete_issue(self, params: schemas.DeleteIssueInput) -> ToolResult:
        issue = self._find_issue(params.issueId, params.title)
        number, title, issue_id = issue.number, issue.title, issue.id
        IssueService.delete(self.db, self.team_id, issue_id)
        return ToolResult.ok(
            f'Issue #{number} "{title}" has been deleted successfully.',
            issue={"id": issue_id, "number": number, "title": title},
        )

    # ---- Projects ----

    def create_project(self, params: schemas.CreateProjectInput) -> ToolResult:
        lead_id, lead_name = self._assignee(params.leadId, "leadId")
        project = ProjectService.create(
            self.db,
            self.team_id,
            name=params.name,
            key=params.key,
            description=params.description,
            color=params.color,
            icon=params.icon,
            status=params.status,
            lead_id=lead_id,
            lead_name=lead_name,
        )
        self.refresh_context()
        return ToolResult.ok(
            f'Project "{project.name}" has been created successfully.',
            project=project_view(project),
        )

    def update_project(self, params: schemas.UpdateProjectInput) -> ToolResult:
        if params.projectId:
            project = ProjectService.get(self.db, self.team_id, params.projectId)
        elif params.name is not None and params.name.strip():
            match = _require(
                resolve_project_by_name(self.context, params.name), "name", "project", "with name",
            )
            project = ProjectService.get(self.db, self.team_id, match.id)
        else:
            raise ValidationError("Either projectId or name must be provided")

        provided = params.model_fields_set
        changes: Dict[str, Any] = {}
        if "newName" in provided and params.newName is not None:
            changes["name"] = params.newName
        if "description" in provided:
            changes["description"] = params.description
        for attr in ("status", "color", "icon"):
            if attr in provided and getattr(params, attr) is not None:
                changes[attr] = getattr(params, attr)
        if "leadId" in provided:
            changes["lead_id"], changes["lead_name"] = self._assignee(params.leadId, "leadId")

        if not changes:
            raise ValidationError("No changes provided for the project")

        project = ProjectService.update(self.db, self.team_id, project.id, changes)
        self.refresh_context()
        return ToolResult.ok(
            f'Project "{project.name}" has been updated successfully.',
            project=project_view(project),
        )

    def list_projects(self, params: schemas.ListProjectsInput) -> ToolResult:
        rows = ProjectService.list_with_issue_counts(self.db, self.team_id)
        return ToolResult.ok(
            f"Found {len(rows)} projects",
            projects=[project_view(project, count) for project, count in rows],
        )

    # ---- Team ----

    def invite_team_member(self, params: schemas.InviteTeamMemberInput) -> ToolResult:
        invitation = InvitationService.create(
            self.db, self.team_id, params.email, self.principal, params.role, mailer=self.mailer,
        )
        return ToolResult.ok(
            f"Invitation sent to {invitation.email}",
            invitation={
                "id": invitation.id,
                "email": invitation.email,
                "role": invitation.role.value,
                "status": invitation.status.value,
                "expiresAt": invitation.expires_at,
            },
        )

    def list_team_members(self, params: schemas.ListTeamMembersInput) -> ToolResult:
        members = MemberService.list_members(self.db, self.team_id)
        return ToolResult.ok(
            f"Found {len(members)} team members",
            members=[
                {"id": m.id, "userId": m.user_id, "name": m.user_name, "email": m.user_email, "role": m.role.value}
                for m in members
            ],
        )

    def get_team_stats(self, params: schemas.GetTeamStatsInput) -> ToolResult:
        stats = TeamService.stats(self.db, self.team_id)
        summary = stats["stats"]
        return ToolResult.ok(
            f"{summary['totalIssues']} issues ({summary['completedIssues']} completed), "
            f"{summary['projects']} projects, {summary['members']} members",
            **stats,
        )
