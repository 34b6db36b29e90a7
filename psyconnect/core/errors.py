class ConfigurationError(RuntimeError):
    """A required credential or setting is missing. Fatal for the request."""


class CompletionError(RuntimeError):
    """The completion service failed (network, HTTP status, or response shape)."""


class IllegalTransition(ValueError):
    def __init__(self, current: str, target: str, reason: str = "not allowed"):
        super().__init__(f"Cannot move from {current} to {target}: {reason}")
        self.current = current
        self.target = target
        self.reason = reason


class IncompleteAssessment(ValueError):
    """A PHQ-9 score was requested before all nine items were answered."""


class EmailDeliveryError(RuntimeError):
    pass


class SessionBusy(RuntimeError):
    """A turn is already being processed for this session."""
