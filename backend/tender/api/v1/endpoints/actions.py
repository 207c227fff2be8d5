from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from tender.api.deps import get_current_user
from tender.db import schemas
from tender.db.database import get_db
from tender.db.models import User
from tender.services import action_service

router = APIRouter()


@router.patch("/{action_id}", response_model=schemas.SuggestedActionResponse)
def update_action_status(
    action_id: UUID,
    payload: schemas.ActionStatusUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Approve or reject a suggested action. Repeating the call is harmless."""
    return action_service.set_status(db, action_id, payload.status, current_user)


@router.delete("/{action_id}", response_model=schemas.DeleteActionResponse)
def delete_action(
    action_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    action = action_service.delete_action(db, action_id, current_user)
    return {"success": True, "action": action}
