class ProtocolError(RuntimeError):
    """Raised when NDJSON protocol contracts are violated."""


class ServiceCrashedError(RuntimeError):
    """Raised when the child worker exits or fails to start."""


class ConnectionClosedError(RuntimeError):
    """Raised for requests still pending when the channel goes away."""

    def __init__(self, message: str = "connection closed"):
        super().__init__(message)


class ChannelWriteError(RuntimeError):
    """Raised when a frame cannot be written to the worker's stdin."""


class RemoteCallError(RuntimeError):
    """Raised when a reply carries an ``error`` member instead of ``result``."""

    def __init__(self, message: str, code: int | None = None):
        super().__init__(message)
        self.code = code


class AuthenticationError(PermissionError):
    """Credential missing, unknown, expired or malformed. The message is user-facing."""


class ToolRegistrationError(RuntimeError):
    """Raised when two tools are registered under the same name."""


class WorkflowTransitionError(RuntimeError):
    """Raised when a workflow is asked to move to a status it cannot reach."""
