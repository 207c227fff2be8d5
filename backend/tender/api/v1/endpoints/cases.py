"""
Case endpoints: CRUD, chat, document intake and per-case reads.
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from sqlalchemy.orm import Session

from tender.api.deps import (
    get_chat_service,
    get_current_user,
    get_intake_orchestrator,
    get_storage,
)
from tender.core.config import settings
from tender.db import schemas
from tender.db.database import get_db
from tender.db.models import User
from tender.services import case_service, query_service
from tender.services.chat_service import ChatService
from tender.services.intake_service import IntakeOrchestrator, UploadedFile
from tender.services.storage_service import StorageService
from tender.utils.exceptions import FileTooLargeError

router = APIRouter()


@router.get("", response_model=List[schemas.CaseListItem])
def list_cases(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """All cases of the current user, newest first, with document and pending-approval counts."""
    return query_service.list_cases_with_counts(db, current_user)


@router.post("", response_model=schemas.CaseResponse, status_code=status.HTTP_201_CREATED)
def create_case(
    payload: schemas.CaseCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return case_service.create_case(db, current_user, payload)


@router.delete("/{case_id}", response_model=schemas.SuccessResponse)
def delete_case(
    case_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage: StorageService = Depends(get_storage),
):
    case = case_service.get_owned_case(db, case_id, current_user)
    case_service.delete_case(db, case, storage)
    return {"success": True}


# ============================================================================
# Chat
# ============================================================================

@router.get("/{case_id}/messages", response_model=List[schemas.ChatMessageResponse])
def list_messages(
    case_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    case = case_service.get_owned_case(db, case_id, current_user)
    return query_service.list_messages(db, case)


@router.post("/{case_id}/messages", response_model=schemas.PostMessageResponse)
async def post_message(
    case_id: UUID,
    payload: schemas.ChatMessageCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    chat: ChatService = Depends(get_chat_service),
):
    """Store a message; a plain user message gets one assistant reply."""
    case = case_service.get_owned_case(db, case_id, current_user)
    user_message, ai_message = await chat.post_message(db, case, payload)
    return {"user_message": user_message, "ai_message": ai_message}


# ============================================================================
# Document intake
# ============================================================================

@router.post("/{case_id}/documents", response_model=schemas.IntakeResponse)
async def upload_documents(
    case_id: UUID,
    files: Optional[List[UploadFile]] = File(None),
    user_instructions: Optional[str] = Form(None, alias="userInstructions"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    orchestrator: IntakeOrchestrator = Depends(get_intake_orchestrator),
):
    """
    Upload one or more files and analyze them as one batch.

    Returns the created documents, the extracted data, the suggested
    actions and the assistant's analysis message. A failed batch
    leaves nothing behind.
    """
    case = case_service.get_owned_case(db, case_id, current_user)

    uploaded = []
    for f in files or []:
        file_name = f.filename or "document"
        if f.size is not None and f.size > settings.MAX_UPLOAD_SIZE:
            raise FileTooLargeError(file_name, settings.MAX_UPLOAD_SIZE)
        uploaded.append(
            UploadedFile(
                file_name=file_name,
                media_type=f.content_type or "",
                data=await f.read(),
            )
        )

    result = await orchestrator.ingest(db, case, uploaded, user_instructions)
    return schemas.IntakeResponse.model_validate(result)


# ============================================================================
# Reads
# ============================================================================

@router.get("/{case_id}/extracted-data", response_model=List[schemas.ExtractedDataWithDocument])
def list_extracted_data(
    case_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    case = case_service.get_owned_case(db, case_id, current_user)
    return query_service.list_extracted_data(db, case)


@router.get("/{case_id}/actions", response_model=List[schemas.SuggestedActionResponse])
def list_actions(
    case_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    case = case_service.get_owned_case(db, case_id, current_user)
    return query_service.list_actions(db, case)
