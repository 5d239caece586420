"""
Action execution engine.

An action is a feed -> mapper -> sink pipeline with its own persisted State.
This package holds the capability contracts, the schedule gate, the per-action
orchestrator and the configuration layer that builds actions from JSON.
"""

from .contracts import Feed, Mapper, Record, Sink
from .errors import ActionError, ConfigurationError, DeliveryError, TemplateError, TransportError
from .run import ActionResult, ActionRun
from .schedule import ACTION_NEXT_EXEC, ScheduleGate

__all__ = [
    "ACTION_NEXT_EXEC",
    "ActionError",
    "ActionResult",
    "ActionRun",
    "ConfigurationError",
    "DeliveryError",
    "Feed",
    "Mapper",
    "Record",
    "ScheduleGate",
    "Sink",
    "TemplateError",
    "TransportError",
]
