# tender/api/deps.py
"""
Shared FastAPI dependencies: session validation and service providers.

Tests override get_ai_client / get_storage to swap in fakes.
"""
import uuid
from typing import Optional

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from tender.core.config import settings
from tender.core.security import decode_access_token
from tender.db.database import get_db
from tender.db.models import User
from tender.services import ai_client as ai_client_module
from tender.services import storage_service
from tender.services.ai_client import GenerativeClient
from tender.services.analysis_service import AnalysisRequester
from tender.services.chat_service import ChatService
from tender.services.intake_service import IntakeOrchestrator
from tender.services.storage_service import StorageService
from tender.utils.exceptions import ForbiddenError, UnauthorizedError

# auto_error=False: the session cookie is the primary credential
security = HTTPBearer(auto_error=False)


# ============================================================================
# Session Dependency
# ============================================================================

def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """
    Validate the session (cookie first, then Bearer token) and return the user.
    """
    token = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if not token and credentials is not None:
        token = credentials.credentials
    if not token:
        raise UnauthorizedError("Not authenticated")

    try:
        payload = decode_access_token(token)
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Session expired")
    except jwt.PyJWTError:
        raise UnauthorizedError("Invalid session")

    user_id = payload.get("sub")
    if user_id is None:
        raise UnauthorizedError("Invalid session")

    try:
        user = db.get(User, uuid.UUID(str(user_id)))
    except ValueError:
        raise UnauthorizedError("Invalid session")
    if not user:
        raise UnauthorizedError("User not found")

    if not user.is_active:
        raise ForbiddenError()

    return user


# ============================================================================
# Service Providers
# ============================================================================

def get_ai_client() -> GenerativeClient:
    return ai_client_module.get_ai_client()


def get_storage() -> StorageService:
    return storage_service.get_storage_service()


def get_analysis_requester(client: GenerativeClient = Depends(get_ai_client)) -> AnalysisRequester:
    return AnalysisRequester(client)


def get_intake_orchestrator(
    requester: AnalysisRequester = Depends(get_analysis_requester),
    storage: StorageService = Depends(get_storage),
) -> IntakeOrchestrator:
    return IntakeOrchestrator(requester=requester, storage=storage)


def get_chat_service(client: GenerativeClient = Depends(get_ai_client)) -> ChatService:
    return ChatService(client)
