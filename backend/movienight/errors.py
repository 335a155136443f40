"""Engine error types.

Services raise these; the API layer renders them as JSON with the matching
HTTP status. Extra keyword arguments travel into the response body so that
callers can see, for example, which round is already open.
"""


class EngineError(Exception):
    """Base class for all round engine errors."""

    status_code = 500

    def __init__(self, message: str, **extra):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> dict:
        return {"error": self.message, **self.extra}


class ValidationError(EngineError):
    status_code = 400


class ForbiddenError(EngineError):
    status_code = 403


class NotFoundError(EngineError):
    status_code = 404


class ConflictError(EngineError):
    status_code = 409


class CatalogUnavailableError(EngineError):
    """The external movie catalog failed; the request can be retried."""

    status_code = 503

    def __init__(self, message: str = "Movie catalog is unavailable, try again", **extra):
        super().__init__(message, retryable=True, **extra)
