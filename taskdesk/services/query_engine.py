"""Issue query engine: filter, sort, project, and aggregate team issues."""

from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any, Iterable

from sqlalchemy import case, func, or_, exists, and_, false
from sqlalchemy.orm import Session, Query

from taskdesk.models.issue import Issue, Comment, PriorityEnum, PRIORITY_RANK
from taskdesk.models.label import IssueLabel
from taskdesk.models.team import Team
from taskdesk.models.workflow_state import WorkflowState
from taskdesk.services.issue_service import UNASSIGNED

DEFAULT_SORT_FIELD = "createdAt"
DEFAULT_SORT_DIRECTION = "desc"

_priority_rank = case(
    *[(Issue.priority == priority, rank) for priority, rank in PRIORITY_RANK.items()],
    else_=0,
)

SORT_COLUMNS = {
    "title": Issue.title,
    "number": Issue.number,
    "createdAt": Issue.created_at,
    "updatedAt": Issue.updated_at,
    "priority": _priority_rank,
}


def _clean(values: Optional[Iterable[str]]) -> List[str]:
    return [v for v in dict.fromkeys(values or []) if v not in (None, "")]


@dataclass
class IssueFilter:
    """Optional AND-combined constraints; an empty field matches everything."""

    status: List[str] = field(default_factory=list)
    assignee: List[str] = field(default_factory=list)
    project: List[str] = field(default_factory=list)
    label: List[str] = field(default_factory=list)
    priority: List[str] = field(default_factory=list)
    search: Optional[str] = None

    def is_empty(self) -> bool:
        return not (
            self.status or self.assignee or self.project
            or self.label or self.priority or (self.search or "").strip()
        )


@dataclass
class IssueSort:
    field: str = DEFAULT_SORT_FIELD
    direction: str = DEFAULT_SORT_DIRECTION

    def normalized(self) -> "IssueSort":
        """Unknown fields or directions fall back to the default ordering."""
        direction = (self.direction or "").lower()
        if self.field not in SORT_COLUMNS or direction not in ("asc", "desc"):
            return IssueSort()
        return IssueSort(self.field, direction)


def _matches_text(needle: str, *texts: Optional[str]) -> bool:
    """Unicode case-insensitive substring test, independent of database collation."""
    return any(needle in (text or "").casefold() for text in texts)


def identifier_for(issue: Issue, team_key: str) -> str:
    """Human identifier: project key when the issue has a project, else team key."""
    prefix = issue.project.key if issue.project is not None else team_key
    return f"{prefix}-{issue.number}"


def comment_counts(db: Session, issue_ids: List[str]) -> Dict[str, int]:
    if not issue_ids:
        return {}
    return dict(
        db.query(Comment.issue_id, func.count(Comment.id))
        .filter(Comment.issue_id.in_(issue_ids))
        .group_by(Comment.issue_id)
        .all()
    )


def project_issue(issue: Issue, team_key: str, comment_count: int = 0) -> Dict[str, Any]:
    """Read-only projection of an issue with its denormalized relations."""
    project = issue.project
    state = issue.workflow_state
    return {
        "id": issue.id,
        "teamId": issue.team_id,
        "number": issue.number,
        "identifier": identifier_for(issue, team_key),
        "title": issue.title,
        "description": issue.description,
        "priority": issue.priority.value,
        "estimate": issue.estimate,
        "projectId": issue.project_id,
        "project": {
            "id": project.id, "name": project.name, "key": project.key, "color": project.color,
        } if project is not None else None,
        "workflowStateId": issue.workflow_state_id,
        "workflowState": {
            "id": state.id, "name": state.name, "type": state.type.value, "color": state.color,
        } if state is not None else None,
        "assigneeId": issue.assignee_id,
        "assigneeName": issue.assignee_name,
        "creatorId": issue.creator_id,
        "creatorName": issue.creator_name,
        "labels": [{"id": l.id, "name": l.name, "color": l.color} for l in issue.labels],
        "commentCount": comment_count,
        "completedAt": issue.completed_at,
        "createdAt": issue.created_at,
        "updatedAt": issue.updated_at,
    }


class IssueQueryEngine:
    """Builds issue result sets from filter and sort specifications."""

    @staticmethod
    def _filtered(db: Session, team_id: str, filters: Optional[IssueFilter]) -> Query:
        query = db.query(Issue).filter(Issue.team_id == team_id)
        if filters is None:
            return query

        status = _clean(filters.status)
        if status:
            query = query.filter(Issue.workflow_state_id.in_(status))

        assignee = _clean(filters.assignee)
        if assignee:
            # "unassigned" selects issues with no assignee
            named = [a for a in assignee if a.lower() != UNASSIGNED]
            clauses = []
            if named:
                clauses.append(Issue.assignee_id.in_(named))
            if len(named) != len(assignee):
                clauses.append(Issue.assignee_id.is_(None))
            query = query.filter(or_(*clauses))

        project = _clean(filters.project)
        if project:
            query = query.filter(Issue.project_id.in_(project))

        label = _clean(filters.label)
        if label:
            query = query.filter(exists().where(and_(
                IssueLabel.issue_id == Issue.id, IssueLabel.label_id.in_(label),
            )))

        priority = _clean(filters.priority)
        if priority:
            known = [p for p in (str(v).lower() for v in priority) if p in PriorityEnum.__members__]
            # Unknown priority values match nothing
            query = query.filter(Issue.priority.in_([PriorityEnum(p) for p in known]) if known else false())

        search = (filters.search or "").strip()
        if search:
            needle = search.casefold()
            matching = [
                issue_id
                for issue_id, title, description in query.with_entities(Issue.id, Issue.title, Issue.description)
                if _matches_text(needle, title, description)
            ]
            query = query.filter(Issue.id.in_(matching) if matching else false())
        return query

    @staticmethod
    def list_issues(
        db: Session,
        team_id: str,
        filters: Optional[IssueFilter] = None,
        sort: Optional[IssueSort] = None,
        limit: Optional[int] = None,
    ) -> List[Issue]:
        """Return the filtered issues, totally ordered (ties broken by id ascending)."""
        sort = (sort or IssueSort()).normalized()
        column = SORT_COLUMNS[sort.field]
        primary = column.asc() if sort.direction == "asc" else column.desc()
        query = IssueQueryEngine._filtered(db, team_id, filters).order_by(primary, Issue.id.asc())
        if limit is not None:
            query = query.limit(max(limit, 0))
        return query.all()

    @staticmethod
    def count(db: Session, team_id: str, filters: Optional[IssueFilter] = None) -> int:
        return IssueQueryEngine._filtered(db, team_id, filters).count()

    @staticmethod
    def project_all(db: Session, team_id: str, issues: List[Issue]) -> List[Dict[str, Any]]:
        """Attach project/state/label/comment-count projections to a result set."""
        team_key = db.query(Team.key).filter(Team.id == team_id).scalar() or ""
        counts = comment_counts(db, [issue.id for issue in issues])
        return [project_issue(issue, team_key, counts.get(issue.id, 0)) for issue in issues]

    @staticmethod
    def search(
        db: Session,
        team_id: str,
        filters: Optional[IssueFilter] = None,
        sort: Optional[IssueSort] = None,
        limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        """List projected issues with the filtered and team-wide totals."""
        issues = IssueQueryEngine.list_issues(db, team_id, filters, sort, limit)
        return {
            "issues": IssueQueryEngine.project_all(db, team_id, issues),
            "count": len(issues),
            "matched": IssueQueryEngine.count(db, team_id, filters),
            "total": IssueQueryEngine.count(db, team_id),
        }

    @staticmethod
    def stats(db: Session, team_id: str, filters: Optional[IssueFilter] = None) -> Dict[str, Any]:
        """Aggregate counts over the filtered set instead of rows."""
        base = IssueQueryEngine._filtered(db, team_id, filters).subquery()

        by_status = (
            db.query(WorkflowState.id, WorkflowState.name, func.count(base.c.id))
            .join(base, base.c.workflow_state_id == WorkflowState.id)
            .group_by(WorkflowState.id, WorkflowState.name, WorkflowState.position)
            .order_by(WorkflowState.position.asc(), WorkflowState.name.asc())
            .all()
        )
        by_priority = dict(
            db.query(base.c.priority, func.count(base.c.id)).group_by(base.c.priority).all()
        )
        by_assignee = (
            db.query(base.c.assignee_id, base.c.assignee_name, func.count(base.c.id))
            .group_by(base.c.assignee_id, base.c.assignee_name)
            .all()
        )

        assignees: Dict[Optional[str], Dict[str, Any]] = {}
        for assignee_id, assignee_name, count in by_assignee:
            entry = assignees.setdefault(
                assignee_id, {"assigneeId": assignee_id, "assigneeName": assignee_name, "count": 0},
            )
            entry["count"] += count

        return {
            "total": db.query(func.count(base.c.id)).scalar() or 0,
            "byStatus": [
                {"workflowStateId": state_id, "name": name, "count": count}
                for state_id, name, count in by_status
            ],
            "byPriority": {
                priority.value: by_priority.get(priority, 0) for priority in PriorityEnum
            },
            "byAssignee": sorted(
                assignees.values(), key=lambda e: (-e["count"], e["assigneeName"] or ""),
            ),
        }


issue_query_engine = IssueQueryEngine()
