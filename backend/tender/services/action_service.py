"""
Action Lifecycle Manager

pending -> approved | rejected. Setting the same (or the other) terminal
status again is an idempotent overwrite; updated_at moves every time.
"""
from uuid import UUID

from sqlalchemy.orm import Session

from tender.core.logger import logger
from tender.db.models import ActionStatus, SuggestedAction, User, utcnow
from tender.db.schemas import SuggestedActionResponse
from tender.utils.exceptions import ActionNotFoundError, ForbiddenError, InvalidStatusError

SETTABLE_STATUSES = {ActionStatus.approved.value, ActionStatus.rejected.value}


def get_owned_action(db: Session, action_id: UUID, user: User) -> SuggestedAction:
    """Ownership runs Action -> ExtractedData -> Document -> Case."""
    action = db.get(SuggestedAction, action_id)
    if not action:
        raise ActionNotFoundError(str(action_id))
    if action.extracted_data.document.case.owner_id != user.id:
        raise ForbiddenError()
    return action


def set_status(db: Session, action_id: UUID, status: str, user: User) -> SuggestedAction:
    if status not in SETTABLE_STATUSES:
        raise InvalidStatusError(status)

    action = get_owned_action(db, action_id, user)
    previous = action.status
    action.status = status
    action.updated_at = utcnow()
    db.commit()
    db.refresh(action)

    logger.info("Action %s: %s -> %s", action.id, previous, status)
    return action


def delete_action(db: Session, action_id: UUID, user: User) -> SuggestedActionResponse:
    """Delete and return a snapshot of the action as it was."""
    action = get_owned_action(db, action_id, user)
    snapshot = SuggestedActionResponse.model_validate(action)
    db.delete(action)
    db.commit()
    logger.info("Action deleted: %s", snapshot.id)
    return snapshot
