"""Input models for the command catalogue.

The same models validate tool arguments and produce the JSON schemas the
completion provider sees, so field names follow the wire (camelCase).
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Literal

Priority = Literal["none", "low", "medium", "high", "urgent"]
ProjectStatus = Literal["active", "completed", "canceled"]
Role = Literal["admin", "developer", "viewer"]


# ---- Issues ----
class CreateIssueInput(BaseModel):
    """Create a new issue. Workflow states, projects and assignees may be given by name."""

    title: str = Field(..., min_length=1, max_length=255, description="The title of the issue")
    description: Optional[str] = Field(None, description="A detailed description of the issue")
    projectId: Optional[str] = Field(
        None, description='The project ID, key, or name this issue belongs to',
    )
    workflowStateId: str = Field(
        ..., description='The workflow state ID or name (e.g. "Todo", "In Progress", "Done")',
    )
    assigneeId: Optional[str] = Field(
        None, description='The user ID or name to assign this issue to, or "unassigned"',
    )
    priority: Priority = "none"
    estimate: Optional[float] = Field(None, description="Story points or hours estimate")
    labelIds: Optional[List[str]] = Field(None, description="Label IDs or names")


class UpdateIssueInput(BaseModel):
    """Update an existing issue by ID or by (part of) its title."""

    issueId: Optional[str] = Field(None, description="The ID of the issue to update")
    title: Optional[str] = Field(
        None, description="The title of the issue to find (if issueId not provided)",
    )
    newTitle: Optional[str] = Field(None, max_length=255, description="New title for the issue")
    description: Optional[str] = None
    projectId: Optional[str] = Field(None, description="Project ID, key, or name")
    workflowStateId: Optional[str] = Field(None, description="Workflow state ID or name")
    assigneeId: Optional[str] = Field(None, description='User ID or name, or "unassigned"')
    priority: Optional[Priority] = None
    estimate: Optional[float] = None
    labelIds: Optional[List[str]] = Field(None, description="Label IDs or names; replaces existing labels")


class GetIssueInput(BaseModel):
    """Get details of a specific issue by ID."""

    issueId: str = Field(..., description="The ID of the issue")


class ListIssuesInput(BaseModel):
    """List the team's issues. Returns ALL issues unless a limit is requested."""

    limit: Optional[int] = Field(
        None, ge=1, description="Maximum number of issues to return (omit to get all issues)",
    )
    search: Optional[str] = Field(None, description="Text to look for in title or description")
    workflowStateId: Optional[str] = Field(None, description="Only issues in this workflow state (ID or name)")
    assigneeId: Optional[str] = Field(None, description='Only issues assigned to this user (ID or name), or "unassigned"')
    projectId: Optional[str] = Field(None, description="Only issues in this project (ID, key, or name)")
    priority: Optional[Priority] = None
    sortField: Optional[str] = Field(None, description="title, number, createdAt, updatedAt or priority")
    sortDirection: Optional[Literal["asc", "desc"]] = None


class DeleteIssueInput(BaseModel):
    """Delete an issue by ID or by (part of) its title."""

    issueId: Optional[str] = Field(None, description="The ID of the issue to delete")
    title: Optional[str] = Field(None, description="The title of the issue to delete")


# ---- Projects ----
class CreateProjectInput(BaseModel):
    """Create a new project. Color defaults to #6366f1 and status to active."""

    name: str = Field(..., min_length=1, max_length=255, description="The name of the project")
    key: str = Field(..., min_length=1, max_length=10, description="Short project identifier, e.g. WEB")
    description: Optional[str] = None
    color: Optional[str] = None
    icon: Optional[str] = None
    leadId: Optional[str] = Field(None, description="User ID or name of the project lead")
    status: Optional[ProjectStatus] = None


class UpdateProjectInput(BaseModel):
    """Update an existing project by ID or by (part of) its name."""

    projectId: Optional[str] = Field(None, description="The ID of the project to update")
    name: Optional[str] = Field(
        None, description="The name of the project to find (if projectId not provided)",
    )
    newName: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    status: Optional[ProjectStatus] = None
    color: Optional[str] = None
    icon: Optional[str] = None
    leadId: Optional[str] = Field(None, description='User ID or name of the lead; "" clears it')


class ListProjectsInput(BaseModel):
    """Get all projects for the team."""


# ---- Team ----
class InviteTeamMemberInput(BaseModel):
    """Invite a new team member via email."""

    email: str = Field(..., min_length=5, description="The email address to invite")
    role: Role = Field("developer", description="The role for the member")


class ListTeamMembersInput(BaseModel):
    """Get all team members."""


class GetTeamStatsInput(BaseModel):
    """Get team statistics and summary."""
