"""
Cross-case views: approved actions and deadlines.
"""
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from tender.api.deps import get_current_user
from tender.db import schemas
from tender.db.database import get_db
from tender.db.models import User
from tender.services import query_service

router = APIRouter()


@router.get("/approvals", response_model=List[schemas.ApprovalItem])
def list_approvals(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return query_service.list_approvals(db, current_user)


@router.get("/deadlines", response_model=List[schemas.DeadlineItem])
def list_deadlines(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return query_service.list_deadlines(db, current_user)
