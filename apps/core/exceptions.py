from typing import Optional


class HivioError(Exception):
    """Base error for domain failures.

    ``message`` is safe to show to the user; anything else (provider
    payloads, SQL errors) stays in the logs.
    """

    status_code: int = 400
    message: str = "Something went wrong"

    def __init__(self, message: Optional[str] = None):
        if message:
            self.message = message
        super().__init__(self.message)


class NotFoundError(HivioError):
    status_code = 404
    message = "Not found"


class PermissionDeniedError(HivioError):
    status_code = 403
    message = "Unauthorized"


class ConflictError(HivioError):
    status_code = 409
    message = "Already exists"


class ValidationError(HivioError):
    status_code = 422
    message = "Invalid input"


class ProviderError(HivioError):
    """TMDB could not be reached or answered with an error."""

    status_code = 502
    message = "Movie database is unavailable, please try again later"


class BackfillError(HivioError):
    status_code = 502
    message = "Could not load episodes for this title"
