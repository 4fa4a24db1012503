"""
Application error taxonomy.

Every error that can be framed for a client carries an HTTP-like status code.
"""
from typing import Optional


class AppError(Exception):
    """Base class for errors with a client-facing status code."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message

    def __str__(self) -> str:
        return self.message


class SourceFetchError(AppError):
    """One upstream source failed as a whole."""

    def __init__(self, source: str, message: str, cause: Optional[BaseException] = None):
        super().__init__(502, message)
        self.source = source
        self.cause = cause


class OperationCancelledError(AppError):
    """Raised when a cancellation request is observed at a checkpoint."""

    def __init__(self, message: str = "Operation cancelled"):
        super().__init__(499, message)


class OperationTimeoutError(AppError):
    """Raised when a pagination loop or a whole request exceeds its ceiling."""

    def __init__(self, message: str = "Operation timed out"):
        super().__init__(504, message)


class ConnectionAlreadyExistsError(AppError):
    def __init__(self, connection_id: str):
        super().__init__(500, f"Connection {connection_id} already exists")
        self.connection_id = connection_id


class ConnectionNotFoundError(AppError):
    def __init__(self, connection_id: str):
        super().__init__(500, f"Connection {connection_id} not found")
        self.connection_id = connection_id


class AuthenticationError(AppError):
    def __init__(self, message: str = "Invalid or missing credentials"):
        super().__init__(401, message)


class ValidationError(AppError):
    def __init__(self, message: str):
        super().__init__(400, message)


class NotFoundError(AppError):
    def __init__(self, message: str = "Resource not found"):
        super().__init__(404, message)
