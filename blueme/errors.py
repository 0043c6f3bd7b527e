"""
Domain errors raised by the service layer.

Each error carries the HTTP status it maps to; main.py registers a single
exception handler that renders them as {"detail": message}.
"""

from fastapi import status


class BlueMeError(Exception):
    """Base class for errors that terminate a request with a user-facing message."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(BlueMeError):
    """Malformed input: bad phone number, missing fields, empty content."""

    status_code = status.HTTP_400_BAD_REQUEST


class AuthenticationError(BlueMeError):
    """Credential check failed. The message never says which part was wrong."""

    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "Invalid phone number or password"):
        super().__init__(message)


class AuthorizationError(BlueMeError):
    """Missing, malformed or expired session token."""

    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class NotFoundError(BlueMeError):
    status_code = status.HTTP_404_NOT_FOUND
