"""Custom exceptions and error handling utilities."""
from fastapi import HTTPException, status
from typing import Optional, Sequence


class AppException(Exception):
    """Base exception for application errors."""
    pass


class NotFoundError(AppException):
    """Raised when a resource is not found."""
    pass


class ValidationError(AppException):
    """Raised when input is malformed (e.g. no object key can be derived)."""
    pass


class StorageError(AppException):
    """Raised when the object store cannot be read or written."""
    pass


class TranscriptionError(AppException):
    """Raised when the speech-to-text endpoint does not return a usable result."""
    pass


class JudgeError(AppException):
    """Raised when the LLM judge call fails or returns unparseable output."""
    pass


class ModerationError(AppException):
    """Raised when the image moderation backend fails."""
    pass


class TranscoderError(AppException):
    """Raised when an ffmpeg/ffprobe subprocess exits non-zero."""

    def __init__(self, argv: Sequence[str], returncode: Optional[int], stderr: str):
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(
            f"Command failed ({returncode}): {' '.join(self.argv)}\n{stderr}"
        )


def handle_database_error(error: Exception, operation: str) -> HTTPException:
    """
    Convert database errors to HTTP exceptions.

    Args:
        error: The database error
        operation: Description of the operation that failed

    Returns:
        HTTPException with appropriate status code
    """
    error_message = str(error)

    # Handle common database errors
    if "not found" in error_message.lower() or "does not exist" in error_message.lower():
        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Resource not found: {operation}",
        )

    if "duplicate" in error_message.lower() or "unique" in error_message.lower():
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Resource already exists: {operation}",
        )

    # Default to 500 for unknown database errors
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Database error during {operation}: {error_message}",
    )


def not_found_error(resource: str, identifier: Optional[str] = None) -> HTTPException:
    """
    Create a standardized 404 error.

    Args:
        resource: Name of the resource (e.g., "Session")
        identifier: Optional identifier that was not found

    Returns:
        HTTPException with 404 status
    """
    message = f"{resource} not found"
    if identifier:
        message += f": {identifier}"
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=message)


def validation_error(message: str) -> HTTPException:
    """
    Create a standardized 400 validation error.

    Args:
        message: Validation error message

    Returns:
        HTTPException with 400 status
    """
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=message)


def upstream_error(message: str) -> HTTPException:
    """Create a 502 error for a failed call to an external analyzer."""
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=message)
