"""Issues API router: query, commands, and comments."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from taskdesk.api.deps import RequireTeamRole, get_orchestrator, respond
from taskdesk.core.security import Principal, get_current_principal
from taskdesk.db.session import get_db
from taskdesk.models.team import TeamMember
from taskdesk.schemas.schemas import CommentCreate, CommentOut, MessageResponse
from taskdesk.schemas.tools import CreateIssueInput, UpdateIssueInput
from taskdesk.services.issue_service import issue_service
from taskdesk.services.orchestrator import CommandOrchestrator
from taskdesk.services.query_engine import IssueFilter, IssueSort, issue_query_engine

router = APIRouter(prefix="/teams/{team_id}/issues", tags=["issues"])


@router.get("")
async def list_issues(
    team_id: str,
    status: Optional[List[str]] = Query(None),
    assignee: Optional[List[str]] = Query(None),
    project: Optional[List[str]] = Query(None),
    label: Optional[List[str]] = Query(None),
    priority: Optional[List[str]] = Query(None),
    search: Optional[str] = Query(None),
    sort_field: str = Query("createdAt", alias="sortField"),
    sort_direction: str = Query("desc", alias="sortDirection"),
    limit: Optional[int] = Query(None, ge=1),
    stats: bool = Query(False),
    db: Session = Depends(get_db),
    member: TeamMember = Depends(RequireTeamRole()),
):
    """List issues by filter and sort, or aggregate counts with ``stats=true``."""
    filters = IssueFilter(
        status=status or [],
        assignee=assignee or [],
        project=project or [],
        label=label or [],
        priority=priority or [],
        search=search,
    )
    if stats:
        return issue_query_engine.stats(db, team_id, filters)
    return issue_query_engine.search(db, team_id, filters, IssueSort(sort_field, sort_direction), limit)


@router.post("")
async def create_issue(
    body: CreateIssueInput,
    orchestrator: CommandOrchestrator = Depends(get_orchestrator),
):
    return respond(orchestrator.invoke("createIssue", body.model_dump(exclude_unset=True)), 201)


@router.get("/{issue_id}")
async def get_issue(
    team_id: str,
    issue_id: str,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(RequireTeamRole()),
):
    issue = issue_service.get(db, team_id, issue_id)
    return issue_query_engine.project_all(db, team_id, [issue])[0]


@router.patch("/{issue_id}")
async def update_issue(
    issue_id: str,
    body: UpdateIssueInput,
    orchestrator: CommandOrchestrator = Depends(get_orchestrator),
):
    """Patch an issue; use ``newTitle`` to rename it."""
    arguments = body.model_dump(exclude_unset=True)
    arguments["issueId"] = issue_id
    return respond(orchestrator.invoke("updateIssue", arguments))


@router.delete("/{issue_id}")
async def delete_issue(
    issue_id: str,
    orchestrator: CommandOrchestrator = Depends(get_orchestrator),
):
    return respond(orchestrator.invoke("deleteIssue", {"issueId": issue_id}))


# ---- Comments ----

@router.get("/{issue_id}/comments", response_model=list[CommentOut])
async def list_comments(
    team_id: str,
    issue_id: str,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(RequireTeamRole()),
):
    return issue_service.list_comments(db, team_id, issue_id)


@router.post("/{issue_id}/comments", response_model=CommentOut, status_code=201)
async def add_comment(
    team_id: str,
    issue_id: str,
    body: CommentCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    member: TeamMember = Depends(RequireTeamRole("developer")),
):
    return issue_service.add_comment(db, team_id, issue_id, principal, body.content)


@router.delete("/{issue_id}/comments/{comment_id}", response_model=MessageResponse)
async def delete_comment(
    team_id: str,
    issue_id: str,
    comment_id: str,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(RequireTeamRole()),
):
    """Delete one of your own comments."""
    issue_service.delete_comment(db, team_id, issue_id, comment_id, member.user_id)
    return MessageResponse(message="Comment deleted")
