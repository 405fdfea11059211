"""Translation of application exceptions into HTTP responses for routes."""

from contextlib import contextmanager
from typing import Iterator

from fastapi import HTTPException, status

from common.core.exceptions import (
    AppException,
    NotFoundError,
    StageMismatchError,
    StorageError,
    ValidationError,
)

_STATUS_CODES = {
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    StageMismatchError: status.HTTP_409_CONFLICT,
    StorageError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def to_http_exception(exc: AppException) -> HTTPException:
    for exc_type, status_code in _STATUS_CODES.items():
        if isinstance(exc, exc_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal error"
    )


@contextmanager
def http_errors() -> Iterator[None]:
    """Re-raise application exceptions raised in the block as HTTPException."""
    try:
        yield
    except AppException as e:
        raise to_http_exception(e) from e
