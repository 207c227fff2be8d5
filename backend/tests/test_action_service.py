import uuid
from datetime import timedelta

import pytest

from tender.db import models
from tender.services import action_service
from tender.utils.exceptions import ActionNotFoundError, ForbiddenError, InvalidStatusError


def seed_action(db, case, title="File motion to compel", priority="high"):
    document = models.Document(
        case_id=case.id,
        file_name="motion.txt",
        file_type="text/plain",
        file_size=120,
        storage_url="local://cases/x/documents/motion.txt",
    )
    db.add(document)
    db.flush()
    extracted = models.ExtractedData(document_id=document.id, case_number=case.case_number, confidence=0.9)
    db.add(extracted)
    db.flush()
    action = models.SuggestedAction(
        extracted_data_id=extracted.id,
        title=title,
        description="Draft and file",
        rationale="Deadline approaching",
        priority=priority,
    )
    db.add(action)
    db.commit()
    db.refresh(action)
    return action


@pytest.fixture
def other_user(db):
    account = models.User(email="opposing@example.com", password_hash="x", full_name="Opposing Counsel")
    db.add(account)
    db.commit()
    db.refresh(account)
    return account


def test_new_action_is_pending(db, case):
    action = seed_action(db, case)
    assert action.status == "pending"
    assert action.priority == "high"


@pytest.mark.parametrize("status", ["approved", "rejected"])
def test_set_terminal_status(db, case, user, status):
    action = seed_action(db, case)
    created_updated_at = action.updated_at

    updated = action_service.set_status(db, action.id, status, user)

    assert updated.status == status
    assert updated.updated_at >= created_updated_at
    assert updated.title == "File motion to compel"


def test_repeat_approval_is_idempotent(db, case, user):
    action = seed_action(db, case)

    first = action_service.set_status(db, action.id, "approved", user)
    first_updated_at = first.updated_at
    second = action_service.set_status(db, action.id, "approved", user)

    assert second.status == "approved"
    assert second.updated_at >= first_updated_at
    assert db.query(models.SuggestedAction).count() == 1


def test_rejected_action_can_be_approved_later(db, case, user):
    action = seed_action(db, case)

    action_service.set_status(db, action.id, "rejected", user)
    updated = action_service.set_status(db, action.id, "approved", user)

    assert updated.status == "approved"


@pytest.mark.parametrize("status", ["pending", "done", "", "APPROVED"])
def test_invalid_status_rejected_without_change(db, case, user, status):
    action = seed_action(db, case)

    with pytest.raises(InvalidStatusError) as exc:
        action_service.set_status(db, action.id, status, user)

    assert exc.value.status_code == 400
    db.refresh(action)
    assert action.status == "pending"


def test_unknown_action_not_found(db, user):
    with pytest.raises(ActionNotFoundError) as exc:
        action_service.set_status(db, uuid.uuid4(), "approved", user)
    assert exc.value.status_code == 404


def test_other_users_action_is_forbidden(db, case, other_user):
    action = seed_action(db, case)

    with pytest.raises(ForbiddenError):
        action_service.set_status(db, action.id, "approved", other_user)
    with pytest.raises(ForbiddenError):
        action_service.delete_action(db, action.id, other_user)


def test_delete_returns_snapshot(db, case, user):
    action = seed_action(db, case)
    action_id = action.id

    snapshot = action_service.delete_action(db, action_id, user)

    assert snapshot.id == action_id
    assert snapshot.title == "File motion to compel"
    assert snapshot.status == "pending"
    assert db.get(models.SuggestedAction, action_id) is None
    assert db.query(models.ExtractedData).count() == 1


def test_updated_at_moves_on_each_write(db, case, user):
    action = seed_action(db, case)
    action.updated_at = action.updated_at - timedelta(days=1)
    db.commit()
    stale = action.updated_at

    updated = action_service.set_status(db, action.id, "approved", user)

    assert updated.updated_at > stale
