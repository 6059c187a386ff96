"""Exception taxonomy for the pipeline."""


class PipelineError(Exception):
    """Base class for all pipeline errors."""


class InputValidationError(PipelineError):
    """Request rejected before any state was created. Never retried."""

    def __init__(self, issues):
        self.issues = list(issues)
        super().__init__("Invalid pipeline request: " + "; ".join(self.issues))


class WorkerInvocationError(PipelineError):
    """Worker timed out, crashed, or returned a malformed response."""

    def __init__(self, worker, detail):
        self.worker = worker
        self.detail = detail
        super().__init__(f"{worker}: {detail}")


class PersistenceError(PipelineError):
    """A state record could not be written after retrying."""

    def __init__(self, key, detail):
        self.key = key
        self.detail = detail
        super().__init__(f"Failed to persist '{key}': {detail}")


class ContractViolation(PipelineError):
    """Programming-contract breach, e.g. a gate run without its predecessor."""
