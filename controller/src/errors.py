"""
Error taxonomy for pipeline configuration and execution.

Every error carries a stable ``kind`` that ends up in action results and
run reports. None of these are retried by the controller.
"""

from typing import Optional

class PipelineError(Exception):
    """Base class for all pipeline failures."""

    kind = "PipelineError"

class ConfigurationError(PipelineError):
    """Raised when a pipeline definition is invalid. Never raised mid-run."""

    kind = "ConfigurationError"

class TrustDenied(PipelineError):
    """Cross-account role assumption was refused."""

    kind = "TrustDenied"

class EncryptionUnauthorized(PipelineError):
    """Caller has no encrypt grant on the artifact key."""

    kind = "EncryptionUnauthorized"

class AccessDenied(PipelineError):
    """Caller has no decrypt grant on the artifact key."""

    kind = "AccessDenied"

class NotFound(PipelineError):
    """Artifact is absent or not committed yet."""

    kind = "NotFound"

class StoreUnavailable(PipelineError):
    """Artifact backend could not accept a write."""

    kind = "StoreUnavailable"

class BuildFailed(PipelineError):
    """A build command group exited nonzero or produced no outputs."""

    kind = "BuildFailed"

    def __init__(self, message: str, phase: Optional[str] = None, exit_code: Optional[int] = None, logs: str = ""):
        super().__init__(message)
        self.phase = phase
        self.exit_code = exit_code
        self.logs = logs

class ChangeRejected(PipelineError):
    """The foreign account refused or failed to apply a change."""

    kind = "ChangeRejected"

class DeployTimeout(PipelineError):
    """
    The foreign change did not reach a terminal state in time.

    The change may still be in progress on the foreign side and has to be
    reconciled out of band.
    """

    kind = "Timeout"

    def __init__(self, message: str, change_id: Optional[str] = None):
        super().__init__(message)
        self.change_id = change_id

class SourceFailed(PipelineError):
    """The revision source could not report or deliver a revision."""

    kind = "SourceFailed"
