"""
Typed outcomes raised by the library core, and the DRF exception handler
that turns them into responses.

The core never logs and never retries. Read paths return None or empty
lists for missing entities; mutations raise one of the errors below.
Database connectivity errors are not wrapped.
"""
from rest_framework.views import exception_handler
from rest_framework.response import Response
from rest_framework import status
from django.db import IntegrityError
import logging

logger = logging.getLogger(__name__)


class LibraryError(Exception):
    """Base class for every outcome the core raises on purpose."""


class NotFound(LibraryError):
    """A mutation referenced an entity that does not exist."""

    def __init__(self, entity: str, identifier):
        self.entity = entity
        self.identifier = identifier
        super().__init__(f"{entity} {identifier} does not exist")


class InvalidState(LibraryError):
    """The record a mutation targets is missing or cannot take the change."""


class ConstraintViolation(LibraryError):
    """A uniqueness rule would be broken (duplicate bookmark, follow, ...)."""


def custom_exception_handler(exc, context):
    """
    Custom exception handler that:
    1. Maps library outcomes to HTTP status codes
    2. Converts Django exceptions to DRF responses
    3. Provides consistent error format
    """
    response = exception_handler(exc, context)

    if response is not None:
        if not isinstance(response.data, dict) or 'error' not in response.data:
            response.data = {
                'error': str(exc),
                'details': response.data
            }
        return response

    if isinstance(exc, NotFound):
        return Response(
            {'error': str(exc), 'entity': exc.entity},
            status=status.HTTP_404_NOT_FOUND
        )

    if isinstance(exc, InvalidState):
        return Response(
            {'error': str(exc)},
            status=status.HTTP_409_CONFLICT
        )

    if isinstance(exc, ConstraintViolation):
        return Response(
            {'error': str(exc)},
            status=status.HTTP_409_CONFLICT
        )

    if isinstance(exc, IntegrityError):
        logger.warning(f"IntegrityError: {exc}")
        return Response(
            {'error': 'Data integrity error. This may be a duplicate entry.'},
            status=status.HTTP_409_CONFLICT
        )

    if isinstance(exc, ValueError):
        return Response(
            {'error': str(exc)},
            status=status.HTTP_400_BAD_REQUEST
        )

    logger.exception(f"Unhandled exception: {exc}")

    return Response(
        {'error': 'An unexpected error occurred.'},
        status=status.HTTP_500_INTERNAL_SERVER_ERROR
    )
