from fastapi import status


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ValidationError(ServiceError):
    """Malformed input; the caller's fault."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class NotFoundError(ServiceError):
    """Referenced entity is absent or soft-deleted."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class AuthorizationError(ServiceError):
    """Role or ownership mismatch."""

    def __init__(self, message: str = "You are not allowed to perform this action") -> None:
        super().__init__(message, status.HTTP_403_FORBIDDEN)


class ConflictError(ServiceError):
    """Uniqueness invariant violated (duplicate or lost race)."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_409_CONFLICT)


class InvalidTransitionError(ServiceError):
    """State machine does not allow the requested transition."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_409_CONFLICT)


class RestrictedDeleteError(ServiceError):
    """Delete blocked by dependent rows."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_409_CONFLICT)


class TemplateRenderError(ServiceError):
    """A contract template could not be rendered with the supplied values."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_422_UNPROCESSABLE_ENTITY)


class IncompleteDataError(ServiceError):
    """Required upstream data for contract generation is missing."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_422_UNPROCESSABLE_ENTITY)
