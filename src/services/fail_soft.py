# src/services/fail_soft.py

"""Fail-soft query outcomes.

Every collaborator call made by the engine goes through :func:`attempt`,
which never raises.  The returned :class:`QueryOutcome` still records
whether the call failed, so the search state machine can tell a failed
stage apart from an empty one.
"""

import logging
from collections.abc import Awaitable
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")

logger = logging.getLogger("marketplace.fail_soft")


@dataclass
class QueryOutcome(Generic[T]):
    """The value of a collaborator call, or its default plus the error."""

    value: T
    error: BaseException | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


async def attempt(
    label: str,
    call: Awaitable[T],
    default: T,
    log: logging.Logger | None = None,
) -> QueryOutcome[T]:
    """Await *call*, converting any exception into *default*.

    The failure is logged at ERROR on *log* (``marketplace.fail_soft``
    when omitted) together with its traceback.
    """
    try:
        value = await call
    except Exception as exc:
        (log or logger).error(
            "%s failed: %s", label, exc, exc_info=exc,
        )
        return QueryOutcome(value=default, error=exc)
    return QueryOutcome(value=value)
