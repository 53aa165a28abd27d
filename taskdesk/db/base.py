"""Declarative base and shared column helpers."""

import uuid
from datetime import datetime, timezone

from sqlalchemy.orm import declarative_base

Base = declarative_base()


def new_id() -> str:
    """Primary key generator for every entity."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Naive UTC timestamp; all stored datetimes are naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
