from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union


@dataclass(frozen=True)
class Active:
    pass


@dataclass(frozen=True)
class DeletedAt:
    at: datetime


Deletion = Union[Active, DeletedAt]

ACTIVE = Active()


def deletion_state(deleted_at: Optional[datetime]) -> Deletion:
    return ACTIVE if deleted_at is None else DeletedAt(deleted_at)


def is_deleted(state: Deletion) -> bool:
    return isinstance(state, DeletedAt)
