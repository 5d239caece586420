from __future__ import annotations


class ActionError(RuntimeError):
    """Base error for failures contained to a single action."""


class ConfigurationError(ActionError):
    """Missing or invalid option, unknown connector kind, malformed schedule."""


class TransportError(ActionError):
    """Feed fetch or parse failure."""


class DeliveryError(TransportError):
    """Sink delivery failure."""


class TemplateError(ActionError):
    """Template has a `{` without a matching `}`."""


class ConfigLoadError(ValueError):
    """The configuration document as a whole cannot be loaded."""


__all__ = [
    "ActionError",
    "ConfigurationError",
    "TransportError",
    "DeliveryError",
    "TemplateError",
    "ConfigLoadError",
]
