"""Team-scoped lookup and patch helpers shared by the store services."""

from typing import Any, Dict, Iterable, Type, TypeVar

from sqlalchemy.orm import Session

from taskdesk.core.exceptions import EntityNotFoundError

T = TypeVar("T")


def get_scoped(db: Session, model: Type[T], team_id: str, entity_id: str, noun: str) -> T:
    """Fetch ``model`` by id, refusing rows that belong to another team.

    A row owned by a different team is reported exactly like a missing row.
    """
    entity = (
        db.query(model)
        .filter(model.id == entity_id, model.team_id == team_id)
        .first()
    )
    if entity is None:
        raise EntityNotFoundError(f"{noun} {entity_id} not found", reference=entity_id)
    return entity


def apply_patch(entity: Any, changes: Dict[str, Any], allowed: Iterable[str]) -> Dict[str, Any]:
    """Set the allowed attributes present in ``changes``; return what was applied."""
    applied = {}
    for key in allowed:
        if key in changes:
            setattr(entity, key, changes[key])
            applied[key] = changes[key]
    return applied
