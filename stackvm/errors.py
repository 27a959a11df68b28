"""Error taxonomy for provisioning flows."""

from dataclasses import dataclass, field


class StackVMError(Exception):
    """Base class for all stackvm errors."""


class ValidationError(StackVMError):
    """Bad input detected before any remote call is made."""


class ControlPlaneError(StackVMError):
    """A remote call failed or reached a non-success terminal state."""

    def __init__(self, operation: str, resource: str, detail: str = ""):
        self.operation = operation
        self.resource = resource
        self.detail = detail
        msg = f"failed to {operation} {resource}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class WaitTimeoutError(StackVMError, TimeoutError):
    """A bounded wait gave up before the resource reached a terminal state."""

    def __init__(self, operation: str, resource: str, timeout: float):
        self.operation = operation
        self.resource = resource
        self.timeout = timeout
        super().__init__(
            f"timed out after {timeout:g}s waiting to {operation} {resource}"
        )


class OperationCancelled(StackVMError):
    def __init__(self, operation: str, resource: str):
        self.operation = operation
        self.resource = resource
        super().__init__(f"cancelled while waiting to {operation} {resource}")


class ProvisioningError(StackVMError):
    """Create aborted; ``state`` holds everything recorded before the failure.

    :param cause: The underlying error
    :param state: Partially populated ProvisioningState
    :param phase: Last creation phase reached before the failure
    """

    def __init__(self, cause: Exception, state, phase):
        self.cause = cause
        self.state = state
        self.phase = phase
        super().__init__(str(cause))


@dataclass
class BestEffortFailure:
    """A cleanup step that failed without aborting the remaining steps."""

    step: str
    resource: str
    error: str

    def __str__(self) -> str:
        return f"{self.step} {self.resource}: {self.error}"

    @classmethod
    def from_error(cls, step: str, resource: str, e: Exception) -> "BestEffortFailure":
        """Record ``e`` without repeating the step and resource it already names."""
        if isinstance(e, ControlPlaneError) and e.detail:
            return cls(step, resource, e.detail)
        return cls(step, resource, str(e))


@dataclass
class DeleteReport:
    """Outcome of a delete whose stack removal succeeded."""

    failures: list[BestEffortFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures
