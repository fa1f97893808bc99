"""Exception types raised by the stepflow core."""


class StepflowError(Exception):
    """Base class for stepflow errors."""


class InvalidSlugError(StepflowError):
    """Raised when a node label or id does not produce a usable slug."""

    def __init__(self, node_id: str, label: str):
        self.node_id = node_id
        self.label = label
        super().__init__(f"Node '{node_id}' has no valid slug (label: {label!r})")


class RunInProgressError(StepflowError):
    """Raised when a run is started while another one is still active."""

    def __init__(self, active_run_id: str):
        self.active_run_id = active_run_id
        super().__init__(f"Run '{active_run_id}' is still in progress")


class ExecutorNotFoundError(StepflowError):
    """Raised when no executor is registered for a node kind."""

    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(f"No executor registered for node kind '{kind}'")
