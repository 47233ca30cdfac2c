"""Result types returned by the booking, ordering and venue services.

Services never let domain failures escape as exceptions. They return either
``Ok(value)`` or ``Err(kind, message)`` and the HTTP layer maps the kind to a
status code.
"""

from __future__ import annotations

import dataclasses
import functools
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Generic, Optional, TypeVar, Union

import structlog
from sqlmodel import Session

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class ErrorKind(Enum):
    """Error kinds a caller can branch on."""

    VALIDATION = "VALIDATION"
    NOT_FOUND = "NOT_FOUND"
    GONE = "GONE"
    CONFLICT = "CONFLICT"
    INVALID_STATE = "INVALID_STATE"
    PAYMENT = "PAYMENT"
    INTERNAL = "INTERNAL"


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    message: str
    field: Optional[str] = None
    details: dict[str, Any] = dataclasses.field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return False

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


Result = Union[Ok[T], Err]


def validation_error(message: str, field: Optional[str] = None, **details: Any) -> Err:
    return Err(ErrorKind.VALIDATION, message, field=field, details=details)


def not_found(what: str, **details: Any) -> Err:
    return Err(ErrorKind.NOT_FOUND, f"{what} not found", details=details)


def gone(what: str, **details: Any) -> Err:
    return Err(ErrorKind.GONE, f"{what} has been deleted", details=details)


def conflict(message: str, **details: Any) -> Err:
    return Err(ErrorKind.CONFLICT, message, details=details)


def invalid_state(message: str, **details: Any) -> Err:
    return Err(ErrorKind.INVALID_STATE, message, details=details)


def payment_error(message: str, **details: Any) -> Err:
    return Err(ErrorKind.PAYMENT, message, details=details)


def service_boundary(fn: Callable[..., Result]) -> Callable[..., Result]:
    """Turn unexpected exceptions into ``Err(INTERNAL)``.

    The first positional argument must be the SQLModel session. A failed
    operation leaves no changes behind, and no operation returns with a
    transaction still open (under sqlite that transaction holds the write lock).
    """

    @functools.wraps(fn)
    def wrapper(session: Session, *args: Any, **kwargs: Any) -> Result:
        try:
            result = fn(session, *args, **kwargs)
            if isinstance(result, Err):
                session.rollback()
            elif session.in_transaction():
                session.commit()
            return result
        except Exception:
            session.rollback()
            logger.exception("service_failed", operation=fn.__name__)
            return Err(ErrorKind.INTERNAL, "internal error")

    return wrapper
