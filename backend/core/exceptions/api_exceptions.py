from fastapi import HTTPException
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import uuid


class APIException(HTTPException):
    """Custom API exception with enhanced error details"""

    def __init__(
        self,
        status_code: int,
        message: str = "An unexpected API error occurred",
        detail: Optional[str] = None,
        error_code: Optional[str] = None,
        correlation_id: Optional[str] = None,
        **kwargs
    ):
        self.message = message
        self.detail = detail or message
        self.error_code = error_code or f"ERR_{status_code}"
        self.correlation_id = correlation_id or str(uuid.uuid4())
        self.timestamp = datetime.now(timezone.utc).isoformat()

        super().__init__(status_code=status_code, detail=self.detail, **kwargs)

    def __str__(self) -> str:
        return self.message


class ValidationException(APIException):
    """Malformed or missing required input"""

    def __init__(self, message: str = "Validation failed", errors: Optional[Dict[str, Any]] = None):
        self.errors = errors or {}
        super().__init__(
            status_code=422,
            message=message,
            error_code="VALIDATION_ERROR"
        )


class NotFoundException(APIException):
    """Exception for resource not found errors"""

    def __init__(self, message: str = "Resource not found", resource: Optional[str] = None):
        self.resource = resource
        super().__init__(
            status_code=404,
            message=message,
            error_code="NOT_FOUND"
        )


class ConflictException(APIException):
    """Uniqueness violation on slug, code or name"""

    def __init__(self, message: str = "Resource conflict", error_code: str = "CONFLICT_ERROR"):
        super().__init__(
            status_code=409,
            message=message,
            error_code=error_code
        )


class CorruptHierarchyException(ConflictException):
    """Persisted parent references form a cycle or exceed the depth limit"""

    def __init__(self, message: str = "Category hierarchy is corrupt", category_id: Optional[str] = None):
        self.category_id = category_id
        super().__init__(message=message, error_code="CORRUPT_HIERARCHY")


class ExpiredException(APIException):
    """Promotion is outside its validity window or no longer usable"""

    def __init__(self, message: str = "Promotion has expired"):
        super().__init__(
            status_code=410,
            message=message,
            error_code="PROMOTION_EXPIRED"
        )


class ConditionNotMetException(APIException):
    """Cart fails a promotion's eligibility condition"""

    def __init__(self, message: str = "Promotion conditions not met", condition: Optional[str] = None):
        self.condition = condition
        super().__init__(
            status_code=422,
            message=message,
            error_code="CONDITION_NOT_MET"
        )


class StorageException(APIException):
    """Persistence failure, opaque to the caller"""

    def __init__(self, message: str = "Storage error occurred", metadata: Optional[Dict[str, Any]] = None):
        self.metadata = metadata or {}
        super().__init__(
            status_code=500,
            message=message,
            error_code="STORAGE_ERROR"
        )
