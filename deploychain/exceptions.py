"""Exception classes raised while orchestrating a deployment."""


class DeploymentError(Exception):
    """Base exception for deployment orchestration errors."""

    # partial manifest of an aborted run, attached by the orchestrator
    manifest = None


class ToolchainFailure(DeploymentError):
    """Raised when a toolchain operation failed on every allowed attempt."""

    def __init__(self, label: str, attempts: int, cause: Exception = None):
        self.label = label
        self.attempts = attempts
        self.cause = cause
        message = f"{label} failed after {attempts} attempt(s)"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class DeploymentFailure(ToolchainFailure):
    """Raised when a contract could not be deployed."""

    pass


class VerificationFailure(ToolchainFailure):
    """Raised when a deployed contract could not be verified on the block explorer."""

    pass


class PersistenceFailure(DeploymentError, OSError):
    """Raised when a deployment manifest cannot be written or read."""

    pass


class ConfigurationFailure(DeploymentError, ValueError):
    """Raised when a required configuration value is missing or invalid."""

    pass
