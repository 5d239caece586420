from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from state.models import State

from .contracts import Feed, Mapper, Sink
from .errors import ActionError
from .schedule import ScheduleGate


logger = logging.getLogger(__name__)


@dataclass
class ActionResult:
    """Outcome of one `ActionRun.execute()`.

    Attributes
    - key: action key
    - state: final State to persist (cursor and schedule bookkeeping)
    - ran: the gate reported the action as due
    - fetched: records returned by the feed
    - delivered: records mapped and sunk successfully
    - error: message of the contained failure, None on success
    """

    key: str
    state: State
    ran: bool = False
    fetched: int = 0
    delivered: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class ActionRun:
    """
    One configured feed -> mapper -> sink pipeline for a single batch.

    `execute()` gates on the schedule, pulls records from the feed, renders each
    through the mapper and hands it to the sink, in order. Failures are contained
    to this action: the first error stops the remaining records and is reported
    in the returned `ActionResult` instead of being raised.

    State handling
    - The gate writes its bookkeeping directly into `state`.
    - The feed works on a copy that replaces `state` only when `feed()` succeeds,
      so a failed fetch never leaves a half-advanced cursor behind.
    - Cursor updates survive a later mapping or delivery failure.
    """

    key: str
    feed: Feed
    mapper: Mapper
    sink: Sink
    state: State = field(default_factory=dict)
    schedule: Optional[str] = None
    gate: ScheduleGate = field(default_factory=ScheduleGate)

    async def execute(self) -> ActionResult:
        result = ActionResult(key=self.key, state=self.state)
        try:
            if not self.gate.is_due(self.state, self.schedule):
                logger.debug("Action %s not due; skipped", self.key)
                return result
            result.ran = True

            working = dict(self.state)
            records = await self.feed.feed(working)
            self.state = working
            result.state = working
            result.fetched = len(records)

            for record in records:
                rendered = self.mapper.map(record)
                await self.sink.sink(rendered)
                result.delivered += 1
        except ActionError as ex:
            result.error = f"{type(ex).__name__}: {ex}"
            logger.error(
                "Action %s failed after %d/%d record(s): %s",
                self.key,
                result.delivered,
                result.fetched,
                result.error,
            )
            return result

        if result.fetched:
            logger.info("Action %s delivered %d record(s)", self.key, result.delivered)
        else:
            logger.info("Action %s: nothing new", self.key)
        return result


__all__ = ["ActionResult", "ActionRun"]
