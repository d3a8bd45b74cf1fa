"""Error taxonomy for action handling."""


class ActionError(Exception):
    """Base exception for a failed action. The message is shown to the client."""

    http_status = 500
    retryable = False


class InvalidRequestError(ActionError):
    """Malformed body, unknown action or invalid payload. Nothing was written."""

    http_status = 400


class NotFoundError(ActionError):
    """A required tenant, job or account does not exist."""

    http_status = 404


class AuthenticationError(ActionError):
    """Wrong password or crew PIN."""

    http_status = 401


class ServerBusyError(ActionError):
    """Could not acquire the advisory lock in time. Client should back off and retry."""

    http_status = 503
    retryable = True


class ConcurrentUpdateError(ActionError):
    """A compare-and-set write lost against another writer."""

    http_status = 503
    retryable = True
