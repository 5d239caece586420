from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Callable, Optional

from croniter import croniter

from state.models import State

from .errors import ConfigurationError


logger = logging.getLogger(__name__)

# Reserved State key holding the next execution time (RFC3339).
ACTION_NEXT_EXEC = "action_next_exec"

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _croniter_for(expression: str, base: datetime) -> croniter:
    fields = expression.split()
    if len(fields) == 5:
        return croniter(expression, base)
    if len(fields) == 6:
        # Six fields carry leading seconds ("0 */30 * * * *"); croniter wants them last.
        return croniter(" ".join(fields[1:] + fields[:1]), base)
    raise ConfigurationError(
        f"Invalid schedule {expression!r}: expected 5 fields, or 6 with leading seconds"
    )


def next_occurrence(expression: str, after: datetime) -> datetime:
    """Next time strictly after `after` matching the cron `expression` (UTC)."""
    try:
        it = _croniter_for(expression, after.astimezone(UTC))
        nxt = it.get_next(datetime)
    except ConfigurationError:
        raise
    except (ValueError, KeyError) as ex:
        # croniter's parse errors subclass ValueError
        raise ConfigurationError(f"Invalid schedule {expression!r}: {ex}") from ex
    if nxt.tzinfo is None:
        nxt = nxt.replace(tzinfo=UTC)
    return nxt


def validate_schedule(expression: str) -> None:
    """Raise ConfigurationError if `expression` is not a usable cron schedule."""
    next_occurrence(expression, _utcnow())


def _parse_rfc3339(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        raise ValueError("timestamp has no UTC offset")
    return parsed


class ScheduleGate:
    """
    Decides whether an action is due and books its next run.

    - No `action_next_exec` in State: due.
    - Otherwise due iff now is strictly after the stored time.
    - When due and a schedule is set, the next occurrence strictly after now is
      written to State. Without a schedule nothing is recorded, so the action
      runs on every batch.
    - When not due, State is left untouched.

    `clock` returns the current aware UTC time; injectable for tests.
    """

    def __init__(self, *, clock: Clock = _utcnow) -> None:
        self._clock = clock

    def is_due(self, state: State, schedule: Optional[str] = None) -> bool:
        now = self._clock()
        stored = state.get(ACTION_NEXT_EXEC)
        due = True
        if stored is not None:
            try:
                due = now > _parse_rfc3339(stored)
            except ValueError:
                logger.warning("Ignoring unparsable %s=%r", ACTION_NEXT_EXEC, stored)

        if due and schedule is not None:
            state[ACTION_NEXT_EXEC] = next_occurrence(schedule, now).isoformat()
        return due


__all__ = [
    "ACTION_NEXT_EXEC",
    "Clock",
    "ScheduleGate",
    "next_occurrence",
    "validate_schedule",
]
