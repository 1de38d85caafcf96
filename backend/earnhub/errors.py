"""Domain exceptions.

Services raise these; the app turns them into JSON error responses.
"""

from fastapi import status


class EarnHubError(Exception):
    """Base class for domain errors carrying an HTTP status."""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidRequestError(EarnHubError):
    status_code = status.HTTP_400_BAD_REQUEST


class InsufficientFundsError(EarnHubError):
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(EarnHubError):
    status_code = status.HTTP_404_NOT_FOUND


class PermissionDeniedError(EarnHubError):
    status_code = status.HTTP_403_FORBIDDEN


class FeatureDisabledError(EarnHubError):
    status_code = status.HTTP_403_FORBIDDEN


class MaintenanceModeError(EarnHubError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class ConflictError(EarnHubError):
    status_code = status.HTTP_409_CONFLICT


class VerificationError(EarnHubError):
    """Raised when the AI provider call or its response parsing fails."""

    status_code = status.HTTP_502_BAD_GATEWAY
