"""
Case ownership checks, creation and deletion.
"""
from uuid import UUID

from sqlalchemy.orm import Session

from tender.core.logger import logger
from tender.db.models import Case, User
from tender.db.schemas import CaseCreate
from tender.services.storage_service import StorageService
from tender.utils.exceptions import CaseNotFoundError, ForbiddenError, StorageError


def get_owned_case(db: Session, case_id: UUID, user: User) -> Case:
    """404 when the case doesn't exist, 403 when another account owns it."""
    case = db.get(Case, case_id)
    if not case:
        raise CaseNotFoundError(str(case_id))
    if case.owner_id != user.id:
        raise ForbiddenError()
    return case


def create_case(db: Session, user: User, payload: CaseCreate) -> Case:
    case = Case(
        owner_id=user.id,
        name=payload.name,
        case_number=payload.case_number,
        status=payload.status,
    )
    db.add(case)
    db.commit()
    db.refresh(case)
    logger.info("Case created: %s (%s) by %s", case.id, case.case_number, user.email)
    return case


def delete_case(db: Session, case: Case, storage: StorageService) -> None:
    """
    Delete a case and everything under it.

    Rows go first; blob deletion failures are logged and skipped since
    the rows referencing them are already gone.
    """
    locators = [doc.storage_url for doc in case.documents]
    case_id = case.id

    db.delete(case)
    db.commit()

    for locator in locators:
        try:
            storage.delete_object(locator)
        except StorageError as e:
            logger.warning("Blob cleanup failed for %s: %s", locator, e)

    logger.info("Case deleted: %s (%d document blob(s))", case_id, len(locators))
