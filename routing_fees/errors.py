# Error classes
class RoutingFeesError(Exception):
    """Base class for errors raised while viewing or adjusting fees."""


class InvalidArgument(RoutingFeesError):
    """Raised before any node call when an invocation argument is missing or malformed."""

    def __init__(self, message, field=None):
        super().__init__(message)
        self.field = field


class NodeQueryFailed(RoutingFeesError):
    """Represents an error when reading state from LND."""

    def __init__(self, message, command=None, stderr=None):
        super().__init__(message)
        self.command = command
        self.stderr = stderr


class NotFound(NodeQueryFailed):
    """LND does not know the requested channel edge or node."""


class UpdateFailed(RoutingFeesError):
    """Represents a failed attempt to set the fee policy of one channel."""

    def __init__(self, message, channel=None, failures=None):
        super().__init__(message)
        self.channel = channel
        self.failures = failures or []


class AmbossAPIError(RoutingFeesError):
    """Represents an error when interacting with the Amboss API."""

    def __init__(self, message, status_code=None, response_data=None):
        super().__init__(message)
        self.status_code = status_code
        self.response_data = response_data
