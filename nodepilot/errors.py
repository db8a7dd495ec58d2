"""Exception hierarchy for node lifecycle operations."""
from typing import Optional


class NodePilotError(Exception):
    """Base class for all nodepilot errors."""
    pass


class ConfigurationError(NodePilotError):
    """Missing client, credentials or binaries. Never retried."""
    pass


class TransientApiError(NodePilotError):
    """Network failure or 5xx from the scheduler API."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class AdmissionBlocked(NodePilotError):
    """Eviction refused because of a PodDisruptionBudget."""
    pass


class ResourceNotFound(NodePilotError):
    """The requested object does not exist."""
    pass


class PhaseTimeout(NodePilotError):
    """A blocking phase ran past its ceiling."""

    def __init__(self, message: str, elapsed: float):
        super().__init__(message)
        self.elapsed = elapsed


class OperationCancelled(NodePilotError):
    """The caller asked the operation to stop."""
    pass


class RolloutInProgressError(NodePilotError):
    """A rollout is already running on this orchestrator."""
    pass
