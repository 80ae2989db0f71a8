# grading_progress/core/errors.py
import logging

from grading_progress.core.config import settings

logger = logging.getLogger(__name__)


class GradingClientError(Exception):
    """Base class for failures talking to the grading backend."""

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class NetworkError(GradingClientError):
    """Backend unreachable or the request timed out."""


class RequestTimeoutError(NetworkError):
    pass


class NotFoundError(GradingClientError):
    pass


class PermissionDeniedError(GradingClientError):
    pass


class GradingApiError(GradingClientError):
    """Any other non-2xx answer from the backend."""


class MalformedResponseError(GradingClientError):
    """Backend answered 2xx but the payload is not what we expect."""


class UploadValidationError(Exception):
    pass


class BatchNotFoundError(KeyError):
    def __init__(self, batch_id: str):
        super().__init__(batch_id)
        self.batch_id = batch_id

    def __str__(self) -> str:
        return f"batch upload {self.batch_id} not found"


def to_error_message(exc: Exception, fallback: str) -> str:
    """
    Turn an exception into a message that can be stored in view state.

    Known client errors keep their own message. Anything else is a bug:
    it is re-raised when DEBUG is on and degrades to `fallback` otherwise.
    """
    if isinstance(exc, (GradingClientError, UploadValidationError, BatchNotFoundError)):
        return str(exc) or fallback
    if settings.DEBUG:
        raise exc
    logger.error(f"{fallback}: {exc}", exc_info=exc)
    return fallback
