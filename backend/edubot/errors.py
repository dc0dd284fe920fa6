"""Domain errors raised by services and rendered by the API layer."""

from fastapi import status


class EduBotError(Exception):
    """Base error carrying an HTTP status and a client-safe detail message."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail: str = "An internal error occurred."

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class ValidationError(EduBotError):
    """Malformed request, rejected before any side effect."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid request."


class NotFoundError(EduBotError):
    """Referenced resource does not exist (or is not visible to the caller)."""

    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Resource not found"


class TurnInProgressError(EduBotError):
    """Another turn is still streaming on the same thread."""

    status_code = status.HTTP_409_CONFLICT
    default_detail = "A response is already being generated for this thread."


class UpstreamUnavailable(EduBotError):
    """The LLM provider failed or returned no content.

    The detail is always the fixed generic string; the provider's own error
    is chained as ``__cause__`` for logging only.
    """

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Chat service unavailable"

    def __init__(self):
        super().__init__(self.default_detail)
