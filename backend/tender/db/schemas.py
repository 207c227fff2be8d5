"""
Pydantic validation schemas

JSON bodies use camelCase keys; Python attributes stay snake_case.
"""
from datetime import datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


PriorityLiteral = Literal["high", "medium", "low"]

# ============================================================================
# User Schemas
# ============================================================================

class UserRegister(CamelModel):
    """Registration schema"""
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    full_name: Optional[str] = Field(None, max_length=255)


class UserLogin(CamelModel):
    """Login schema"""
    email: EmailStr
    password: str


class UserOut(CamelModel):
    id: UUID
    email: EmailStr
    full_name: Optional[str] = None
    is_active: bool
    created_at: datetime
    last_login_at: Optional[datetime] = None


# ============================================================================
# Case Schemas
# ============================================================================

class CaseCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=500)
    case_number: str = Field(..., min_length=1, max_length=100)
    status: str = Field("active", min_length=1, max_length=50)

    @field_validator("name", "case_number", "status")
    @classmethod
    def strip_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class CaseResponse(CamelModel):
    id: UUID
    name: str
    case_number: str
    status: str
    created_at: datetime


class CaseListItem(CamelModel):
    """Case list entry with derived counts"""
    id: UUID
    name: str
    case_number: str
    status: str
    created_at: datetime
    document_count: int = 0
    pending_approvals: int = 0


# ============================================================================
# Document Schemas
# ============================================================================

class DocumentResponse(CamelModel):
    id: UUID
    case_id: UUID
    file_name: str
    file_type: str
    file_size: int
    storage_url: str
    uploaded_at: datetime


# ============================================================================
# Chat Schemas
# ============================================================================

class ChatMessageCreate(CamelModel):
    role: Literal["user", "assistant"] = "user"
    content: str = Field(..., min_length=1)
    is_analysis: bool = False


class ChatMessageResponse(CamelModel):
    id: UUID
    case_id: UUID
    role: str
    content: str
    is_analysis: bool
    timestamp: datetime


class PostMessageResponse(CamelModel):
    user_message: ChatMessageResponse
    ai_message: Optional[ChatMessageResponse] = None


# ============================================================================
# Extracted Data / Action Schemas
# ============================================================================

class Deadline(CamelModel):
    date: str
    description: str
    priority: PriorityLiteral = "medium"


class ExtractedDataResponse(CamelModel):
    id: UUID
    document_id: UUID
    document_ids: List[UUID] = []
    case_number: Optional[str] = None
    parties: List[str] = []
    deadlines: List[Deadline] = []
    key_facts: List[str] = []
    confidence: float
    extracted_at: datetime


class ExtractedDataWithDocument(CamelModel):
    extracted: ExtractedDataResponse
    document: DocumentResponse


class SuggestedActionResponse(CamelModel):
    id: UUID
    extracted_data_id: UUID
    title: str
    description: str
    rationale: str
    priority: PriorityLiteral
    status: Literal["pending", "approved", "rejected"]
    created_at: datetime
    updated_at: datetime


class ActionStatusUpdate(CamelModel):
    # Checked by the action service so an unknown value maps to InvalidStatusError
    status: str


class DeleteActionResponse(CamelModel):
    success: bool = True
    action: SuggestedActionResponse


class SuccessResponse(CamelModel):
    success: bool = True


class ApprovalItem(CamelModel):
    """Approved action with the case and document it came from"""
    action: SuggestedActionResponse
    extracted: ExtractedDataResponse
    document: DocumentResponse
    case: CaseResponse


class DeadlineItem(CamelModel):
    date: str
    description: str
    priority: PriorityLiteral = "medium"
    case_id: UUID
    case_name: str
    case_number: str
    document_name: str


# ============================================================================
# Intake
# ============================================================================

class IntakeResponse(CamelModel):
    documents: List[DocumentResponse]
    extracted: ExtractedDataResponse
    actions: List[SuggestedActionResponse]
    message: ChatMessageResponse


class HealthResponse(CamelModel):
    status: str
    database: str
