"""Entity resolver: turn fuzzy references into team-scoped ids.

A reference is tried in order against:

1. the entity ids (exact, case-sensitive);
2. the natural keys of the entity kind, case-insensitively
   (``MatchMode.EXACT``), or as a case-insensitive substring of the
   title/name (``MatchMode.SUBSTRING``).

Every lookup returns exactly one of ``Resolved``, ``NotFound`` or
``Ambiguous``. Nothing here touches the database except
``load_team_context`` and ``load_issue_entries``, which build the
snapshot the pure functions operate on.
"""

import enum
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple, Union

from sqlalchemy.orm import Session

from taskdesk.models.issue import Issue
from taskdesk.models.label import Label
from taskdesk.models.project import Project
from taskdesk.models.team import Team, TeamMember
from taskdesk.models.workflow_state import WorkflowState
from taskdesk.core.exceptions import EntityNotFoundError


class MatchMode(str, enum.Enum):
    EXACT = "exact"
    SUBSTRING = "substring"


@dataclass(frozen=True)
class Candidate:
    id: str
    label: str


@dataclass(frozen=True)
class Resolved:
    id: str
    label: str


@dataclass(frozen=True)
class NotFound:
    reference: str


@dataclass(frozen=True)
class Ambiguous:
    reference: str
    candidates: Tuple[Candidate, ...]


Resolution = Union[Resolved, NotFound, Ambiguous]


@dataclass(frozen=True)
class Entry:
    """One resolvable entity: its id, display label and natural keys."""

    id: str
    label: str
    keys: Tuple[str, ...]


@dataclass
class TeamContext:
    """Snapshot of the reference data a team's commands resolve against."""

    team_id: str
    team_name: str
    team_key: str
    workflow_states: List[WorkflowState] = field(default_factory=list)
    projects: List[Project] = field(default_factory=list)
    labels: List[Label] = field(default_factory=list)
    members: List[TeamMember] = field(default_factory=list)

    def state_entries(self) -> List[Entry]:
        return [Entry(s.id, s.name, (s.name,)) for s in self.workflow_states]

    def project_entries(self) -> List[Entry]:
        return [Entry(p.id, f"{p.name} ({p.key})", (p.key, p.name)) for p in self.projects]

    def project_name_entries(self) -> List[Entry]:
        return [Entry(p.id, f"{p.name} ({p.key})", (p.name,)) for p in self.projects]

    def label_entries(self) -> List[Entry]:
        return [Entry(l.id, l.name, (l.name,)) for l in self.labels]

    def member_entries(self) -> List[Entry]:
        return [Entry(m.user_id, m.user_name, (m.user_name, m.user_id)) for m in self.members]

    def member_name(self, user_id: Optional[str]) -> Optional[str]:
        for member in self.members:
            if member.user_id == user_id:
                return member.user_name
        return None


def resolve(entries: Sequence[Entry], reference: Optional[str],
            mode: MatchMode = MatchMode.EXACT) -> Resolution:
    """Resolve ``reference`` against ``entries``; total over all inputs."""
    raw = reference if reference is not None else ""
    ref = raw.strip()
    if not ref:
        return NotFound(raw)

    for entry in entries:
        if entry.id == ref:
            return Resolved(entry.id, entry.label)

    needle = ref.casefold()
    if mode == MatchMode.SUBSTRING:
        matches = [e for e in entries if any(needle in k.casefold() for k in e.keys if k)]
    else:
        matches = [e for e in entries if any(needle == k.casefold() for k in e.keys if k)]

    if not matches:
        return NotFound(raw)
    if len(matches) == 1:
        return Resolved(matches[0].id, matches[0].label)
    return Ambiguous(raw, tuple(Candidate(m.id, m.label) for m in matches))


def resolve_workflow_state(context: TeamContext, reference: Optional[str]) -> Resolution:
    return resolve(context.state_entries(), reference)


def resolve_project(context: TeamContext, reference: Optional[str]) -> Resolution:
    """By id, then project key or name."""
    return resolve(context.project_entries(), reference)


def resolve_project_by_name(context: TeamContext, reference: Optional[str]) -> Resolution:
    """By id, then case-insensitive substring of the project name."""
    return resolve(context.project_name_entries(), reference, MatchMode.SUBSTRING)


def resolve_member(context: TeamContext, reference: Optional[str]) -> Resolution:
    """By user id, then user name or user id ignoring case."""
    return resolve(context.member_entries(), reference)


def resolve_label(context: TeamContext, reference: Optional[str]) -> Resolution:
    return resolve(context.label_entries(), reference)


def resolve_issue_by_title(entries: Sequence[Entry], reference: Optional[str]) -> Resolution:
    return resolve(entries, reference, MatchMode.SUBSTRING)


def load_team_context(db: Session, team_id: str) -> TeamContext:
    """Read projects, states, labels and members for a team in one session.

    Any failing read propagates; a partial context is never returned.
    """
    team = db.query(Team).filter(Team.id == team_id).first()
    if team is None:
        raise EntityNotFoundError(f"Team {team_id} not found", reference=team_id)
    return TeamContext(
        team_id=team.id,
        team_name=team.name,
        team_key=team.key,
        workflow_states=(
            db.query(WorkflowState)
            .filter(WorkflowState.team_id == team_id)
            .order_by(WorkflowState.position.asc(), WorkflowState.name.asc(), WorkflowState.id.asc())
            .all()
        ),
        projects=(
            db.query(Project)
            .filter(Project.team_id == team_id)
            .order_by(Project.name.asc(), Project.id.asc())
            .all()
        ),
        labels=(
            db.query(Label)
            .filter(Label.team_id == team_id)
            .order_by(Label.name.asc(), Label.id.asc())
            .all()
        ),
        members=(
            db.query(TeamMember)
            .filter(TeamMember.team_id == team_id)
            .order_by(TeamMember.joined_at.asc(), TeamMember.id.asc())
            .all()
        ),
    )


def load_issue_entries(db: Session, team_id: str) -> List[Entry]:
    """Title-searchable entries for every issue in the team, by number."""
    rows = (
        db.query(Issue.id, Issue.number, Issue.title)
        .filter(Issue.team_id == team_id)
        .order_by(Issue.number.asc())
        .all()
    )
    return [Entry(row.id, f'#{row.number} "{row.title}"', (row.title,)) for row in rows]
