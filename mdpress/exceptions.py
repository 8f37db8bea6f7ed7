"""
Custom exceptions for better error handling and debugging
"""
from typing import Optional, Dict, Any, Union


class AppError(Exception):
    """Base exception for all mdpress errors"""

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class InvalidInputError(AppError):
    """Raised when a required field is missing, empty or malformed"""

    def __init__(self, field: str, reason: str):
        super().__init__(
            message=f"Invalid value for '{field}': {reason}",
            code="INVALID_INPUT",
            status_code=400,
            details={"field": field, "reason": reason}
        )


class NotFoundError(AppError):
    """Raised when a requested resource does not exist or is not visible to the caller"""

    def __init__(self, resource: str, identifier: Union[str, int]):
        super().__init__(
            message=f"{resource.capitalize()} '{identifier}' not found",
            code="NOT_FOUND",
            status_code=404,
            details={"resource": resource, "id": str(identifier)}
        )


class PostNotFoundError(NotFoundError):
    """Raised when a requested blog post is not found"""

    def __init__(self, identifier: Union[str, int]):
        super().__init__("post", identifier)


class DocumentNotFoundError(NotFoundError):
    """Raised when a markdown document is missing or owned by someone else"""

    def __init__(self, identifier: Union[str, int]):
        super().__init__("document", identifier)


class FolderNotFoundError(NotFoundError):
    """Raised when a folder is missing or owned by someone else"""

    def __init__(self, identifier: Union[str, int]):
        super().__init__("folder", identifier)


class UnauthorizedError(AppError):
    """Raised when a credential is missing, invalid or expired"""

    def __init__(self, reason: str = "Authentication required"):
        super().__init__(
            message=reason,
            code="UNAUTHORIZED",
            status_code=401,
            details={"reason": reason}
        )


class ConflictError(AppError):
    """Raised when a uniqueness constraint could not be satisfied; safe to retry"""

    def __init__(self, resource: str, reason: str):
        super().__init__(
            message=f"Conflict on {resource}: {reason}",
            code="CONFLICT",
            status_code=409,
            details={"resource": resource, "reason": reason, "retryable": True}
        )


class InternalError(AppError):
    """Raised for unexpected failures; detail is logged, not returned"""

    def __init__(self, reason: str = "Internal server error"):
        super().__init__(
            message=reason,
            code="INTERNAL_ERROR",
            status_code=500,
        )
