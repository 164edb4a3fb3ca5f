from typing import Any, Dict, List, Optional


class ProductError(Exception):
    """Base class for failures that map onto a client-visible response."""

    status_code: int = 500
    message: str = "Unexpected error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        self.message = message or self.message

    def to_content(self) -> Dict[str, Any]:
        return {"success": False, "message": self.message}


class FieldValidationError(ProductError):
    status_code = 400
    message = "Validation failed"

    def __init__(self, errors: List[Dict[str, str]]):
        super().__init__()
        self.errors = errors

    def to_content(self) -> Dict[str, Any]:
        return {"success": False, "errors": self.errors}


class ReferenceNotFoundError(ProductError):
    status_code = 400
    message = "One or more referenced entities do not exist"


class MissingAttachmentError(ProductError):
    status_code = 400
    message = "Image is required"


class MediaUploadError(ProductError):
    status_code = 500
    message = "Image upload failed"


class ProductNotFoundError(ProductError):
    status_code = 404
    message = "Product not found"


class MediaServiceError(Exception):
    """Raised when the remote media service rejects or fails a call."""


def unexpected_error_content(exc: Exception) -> Dict[str, Any]:
    # raw error detail is part of the 500 contract
    return {
        "success": False,
        "message": str(exc),
        "error": {"type": type(exc).__name__, "detail": str(exc)},
    }
