"""Daemon error taxonomy

Every failure the daemon distinguishes has its own exception type here.
Handlers translate these into response statuses; only ListenSetupFailure
is fatal.
"""


class DaemonError(Exception):
    """Base class for all daemon errors."""
    pass


class MalformedRequest(DaemonError):
    """Raised when a request payload cannot be decoded."""
    pass


class BackendUnavailable(DaemonError):
    """Raised when the model backend cannot be reached after all retries."""
    pass


class BackendTimeout(BackendUnavailable):
    """Raised when the model backend did not answer within its timeout."""
    pass


class UnsafeCommand(DaemonError):
    """Raised when a command is classified as unsafe (by backend or gate)."""

    def __init__(self, message: str = "Command marked as unsafe", pattern: str = ""):
        super().__init__(message)
        self.pattern = pattern


class UnclearCommand(DaemonError):
    """Raised when the backend could not interpret the request."""
    pass


class CapacityExceeded(DaemonError):
    """Raised when the session table has no free slot."""
    pass


class ConfigLoadFailure(DaemonError):
    """Raised when a configuration source exists but cannot be parsed."""
    pass


class ListenSetupFailure(DaemonError):
    """Raised when the listening socket cannot be created. Fatal."""
    pass
