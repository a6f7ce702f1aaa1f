"""
Exception classes for impact aggregation and global error handling
"""

from typing import Optional, Dict, Any, List
from fastapi import status


class ImpactAPIError(Exception):
    """Base exception for all domain errors"""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_400_BAD_REQUEST,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(ImpactAPIError):
    """
    Raised when input fails validation.

    Carries a field-level error list; nothing has been written when this
    is raised.
    """

    def __init__(self, message: str, errors: Optional[List[Dict[str, str]]] = None, field: str = None):
        errors = list(errors or [])
        if field and not errors:
            errors.append({"field": field, "message": message, "type": "value_error"})
        self.errors = errors

        details = {}
        if errors:
            details["validation_errors"] = errors

        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details
        )


class ConflictError(ImpactAPIError):
    """Raised when an operation conflicts with existing references or names"""

    def __init__(self, message: str, resource: str = None, references: Optional[Dict[str, int]] = None):
        details = {}
        if resource:
            details["resource"] = resource
        if references:
            details["references"] = references

        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            details=details
        )


class NotFoundError(ImpactAPIError):
    """Raised when a referenced resource does not exist"""

    def __init__(self, resource: str = None, resource_id: Any = None):
        if resource and resource_id is not None:
            message = f"{resource.title()} with ID {resource_id} not found"
        elif resource:
            message = f"{resource.title()} not found"
        else:
            message = "Resource not found"

        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND
        )


class LedgerIntegrityError(ImpactAPIError):
    """Raised when the impact ledger detects a broken reference during a write"""

    def __init__(self, message: str, impact_id: Any = None):
        details = {}
        if impact_id is not None:
            details["impact_id"] = impact_id

        super().__init__(
            message=message,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details=details
        )


class AuthError(ImpactAPIError):
    """Raised when credentials are missing or invalid"""

    def __init__(self, message: str = "Could not validate credentials"):
        super().__init__(
            message=message,
            status_code=status.HTTP_401_UNAUTHORIZED
        )


class PermissionDeniedError(ImpactAPIError):
    """Raised when the principal lacks a required permission"""

    def __init__(self, permission: str):
        super().__init__(
            message=f"Missing permission '{permission}'",
            status_code=status.HTTP_403_FORBIDDEN,
            details={"permission": permission}
        )


class FileUploadError(ImpactAPIError):
    """Exception raised when file upload fails"""

    def __init__(self, message: str, filename: str = None, file_type: str = None):
        details = {}
        if filename:
            details["filename"] = filename
        if file_type:
            details["file_type"] = file_type

        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details
        )


class FileSizeError(FileUploadError):
    """Exception raised when file size exceeds limit"""

    def __init__(self, filename: str, size: int, max_size: int):
        message = f"File '{filename}' size ({size} bytes) exceeds maximum allowed size ({max_size} bytes)"
        super().__init__(
            message=message,
            filename=filename,
            file_type="size_limit"
        )


class FileTypeError(FileUploadError):
    """Exception raised when file type is not allowed"""

    def __init__(self, filename: str, file_type: str, allowed_types: list = None):
        if allowed_types:
            allowed_str = ", ".join(sorted(allowed_types))
            message = f"File type '{file_type}' not allowed for '{filename}'. Allowed types: {allowed_str}"
        else:
            message = f"File type '{file_type}' not allowed for '{filename}'"

        super().__init__(
            message=message,
            filename=filename,
            file_type=file_type
        )


def create_error_response(error: ImpactAPIError) -> dict:
    """
    Create a standardized error response from ImpactAPIError

    Args:
        error: ImpactAPIError instance

    Returns:
        Dictionary with error details in standardized format
    """
    response = {
        "success": False,
        "message": error.message,
        "error_type": error.__class__.__name__
    }

    if error.details:
        response["details"] = error.details

    return response
