from fastapi import HTTPException, status


class AppException(HTTPException):
    """Base class for caller-facing failures.

    ``code`` is a stable machine-readable tag, reused as the ``code`` field
    of Socket.IO ``error`` events.
    """

    code = "error"

    def __init__(self, status_code: int, detail: str, headers: dict = None):
        super().__init__(status_code=status_code, detail=detail, headers=headers)


class CredentialsException(AppException):
    """Exception for invalid credentials."""

    code = "unauthenticated"

    def __init__(self, detail: str = "Could not validate credentials"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class NotFoundException(AppException):
    """Exception for resource not found."""

    code = "not_found"

    def __init__(self, detail: str = "Resource not found"):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
        )


class BadRequestException(AppException):
    """Exception for malformed input."""

    code = "validation_error"

    def __init__(self, detail: str = "Bad request"):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
        )


class ForbiddenException(AppException):
    """Exception for forbidden access."""

    code = "unauthorized"

    def __init__(self, detail: str = "Forbidden"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
        )


class InvalidStateException(AppException):
    """Exception for an operation that is not valid in the current state."""

    code = "invalid_state"

    def __init__(self, detail: str = "Operation not allowed in the current state"):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
        )


class DependencyFailureException(AppException):
    """Exception for an unavailable database or collaborator. Retryable."""

    code = "dependency_failure"

    def __init__(self, detail: str = "Service temporarily unavailable, please try again"):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=detail,
        )


class EmptyContentException(BadRequestException):
    code = "empty_content"

    def __init__(self, detail: str = "Message content is required"):
        super().__init__(detail)


class InvalidRoleException(BadRequestException):
    code = "invalid_role"

    def __init__(self, detail: str = "Invalid user role for this conversation"):
        super().__init__(detail)


class NotAParticipantException(ForbiddenException):
    code = "not_a_participant"

    def __init__(self, detail: str = "You are not a participant of this conversation"):
        super().__init__(detail)


class ConversationClosedException(InvalidStateException):
    code = "conversation_closed"

    def __init__(self, detail: str = "This conversation has been closed"):
        super().__init__(detail)


class AlreadyClosedException(InvalidStateException):
    code = "already_closed"

    def __init__(self, detail: str = "Conversation is already closed"):
        super().__init__(detail)
