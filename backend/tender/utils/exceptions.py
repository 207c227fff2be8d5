"""
Custom exception classes

All of these are HTTPExceptions so FastAPI renders them directly; services
raise them and endpoints let them propagate. ``code`` is a stable
machine-readable tag included in the response body.
"""
from fastapi import HTTPException


class TenderError(HTTPException):
    """Base class carrying a machine-readable error code"""
    code = "error"

    def __init__(self, status_code: int, detail: str):
        super().__init__(status_code=status_code, detail=detail)


# ============================================================================
# 400-class: user-correctable
# ============================================================================

class ValidationFailure(TenderError):
    """Raised when a request body is malformed"""
    code = "validation_failure"

    def __init__(self, detail: str = "Invalid request"):
        super().__init__(status_code=400, detail=detail)


class EmptyBatchError(TenderError):
    """Raised when an upload carries no files"""
    code = "empty_batch"

    def __init__(self):
        super().__init__(status_code=400, detail="No files uploaded")


class ExtractionFailure(TenderError):
    """Raised when a file's content cannot be decoded"""
    code = "extraction_failure"

    def __init__(self, file_name: str, reason: str = "Unsupported or corrupt content"):
        self.file_name = file_name
        self.reason = reason
        super().__init__(
            status_code=400,
            detail=f"Failed to parse {file_name}: {reason}",
        )


class UnreadableDocumentError(TenderError):
    """Raised when a file yields too little text to analyze"""
    code = "unreadable_document"

    def __init__(self, file_name: str):
        self.file_name = file_name
        super().__init__(
            status_code=400,
            detail=(
                f"Could not extract text from {file_name}. "
                "Please ensure the document contains readable text."
            ),
        )


class InvalidStatusError(TenderError):
    """Raised when an action status is not approved/rejected"""
    code = "invalid_status"

    def __init__(self, status_value: str):
        self.status_value = status_value
        super().__init__(status_code=400, detail=f"Invalid status: {status_value!r}")


class FileTooLargeError(TenderError):
    """Raised when an uploaded file exceeds MAX_UPLOAD_SIZE"""
    code = "file_too_large"

    def __init__(self, file_name: str, limit: int):
        self.file_name = file_name
        super().__init__(
            status_code=413,
            detail=f"{file_name} exceeds the {limit // (1024 * 1024)}MB upload limit",
        )


# ============================================================================
# Auth / ownership
# ============================================================================

class UnauthorizedError(TenderError):
    """Raised when the session is missing or invalid"""
    code = "unauthorized"

    def __init__(self, detail: str = "Unauthorized"):
        super().__init__(status_code=401, detail=detail)


class ForbiddenError(TenderError):
    """Raised when user doesn't own resource"""
    code = "forbidden"

    def __init__(self):
        super().__init__(
            status_code=403,
            detail="You don't have permission to access this resource",
        )


# ============================================================================
# 404
# ============================================================================

class CaseNotFoundError(TenderError):
    """Raised when case doesn't exist"""
    code = "not_found"

    def __init__(self, case_id: str):
        super().__init__(status_code=404, detail=f"Case {case_id} not found")


class ActionNotFoundError(TenderError):
    """Raised when suggested action doesn't exist"""
    code = "not_found"

    def __init__(self, action_id: str):
        super().__init__(status_code=404, detail="Action not found")
        self.action_id = action_id


# ============================================================================
# 500-class: server side
# ============================================================================

class AnalysisParseFailure(TenderError):
    """Raised when the AI response carries no usable JSON object"""
    code = "analysis_parse_failure"

    def __init__(self, reason: str = "Failed to extract JSON from AI response"):
        self.reason = reason
        super().__init__(status_code=500, detail=reason)


class AIServiceError(TenderError):
    """Raised when AI service fails"""
    code = "ai_service_error"

    def __init__(self, reason: str = "AI service unavailable", transient: bool = False):
        self.reason = reason
        self.transient = transient
        super().__init__(status_code=503, detail=f"AI service error: {reason}")


class StorageError(TenderError):
    """Raised when the blob store rejects a read/write"""
    code = "storage_error"

    def __init__(self, reason: str = "Unknown error"):
        super().__init__(status_code=502, detail=f"Storage failed: {reason}")
