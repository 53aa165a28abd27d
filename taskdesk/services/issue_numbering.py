"""Per-team issue number allocation strategies."""

from typing import Protocol

from sqlalchemy import func
from sqlalchemy.orm import Session

from taskdesk.core.config import settings
from taskdesk.core.exceptions import ValidationError
from taskdesk.models.issue import Issue
from taskdesk.models.team import Team


class IssueNumberAllocator(Protocol):
    """Hands out the next issue number inside the caller's open transaction."""

    name: str

    def next_number(self, db: Session, team_id: str) -> int:
        ...


class MaxScanAllocator:
    """Read max(number) and add one.

    Two concurrent creates can read the same max; the (team_id, number)
    unique constraint turns that race into a conflict instead of a duplicate.
    """

    name = "max_scan"

    def next_number(self, db: Session, team_id: str) -> int:
        current = db.query(func.max(Issue.number)).filter(Issue.team_id == team_id).scalar()
        return (current or 0) + 1


class CounterAllocator:
    """Atomic ``last_issue_number = last_issue_number + 1`` on the team row.

    The UPDATE holds the team row lock until the issue insert commits, so
    concurrent creates for one team serialize on it. Teams that predate the
    counter are seeded from the current max on first use.
    """

    name = "counter"

    def next_number(self, db: Session, team_id: str) -> int:
        counter = db.query(Team.last_issue_number).filter(Team.id == team_id).scalar()
        if counter is None:
            current_max = MaxScanAllocator().next_number(db, team_id) - 1
            db.query(Team).filter(
                Team.id == team_id, Team.last_issue_number.is_(None),
            ).update({Team.last_issue_number: current_max}, synchronize_session=False)
        db.query(Team).filter(Team.id == team_id).update(
            {Team.last_issue_number: Team.last_issue_number + 1}, synchronize_session=False,
        )
        return db.query(Team.last_issue_number).filter(Team.id == team_id).scalar()


_ALLOCATORS = {
    CounterAllocator.name: CounterAllocator,
    MaxScanAllocator.name: MaxScanAllocator,
}


def get_allocator(strategy: str = None) -> IssueNumberAllocator:
    """Build the allocator named by ``strategy`` (defaults to settings)."""
    strategy = strategy or settings.ISSUE_NUMBER_STRATEGY
    try:
        return _ALLOCATORS[strategy]()
    except KeyError:
        raise ValidationError(f"Unknown issue number strategy '{strategy}'")
