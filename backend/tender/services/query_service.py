"""
Case/Chat Query Layer: read-only views assembled for the API.

Actions and extracted data belong to a case through
ExtractedData.document_id -> Document.case_id.
"""
from typing import Any, Dict, List

from sqlalchemy import func
from sqlalchemy.orm import Session

from tender.db.models import (
    ActionStatus,
    Case,
    ChatMessage,
    Document,
    ExtractedData,
    SuggestedAction,
    User,
)


def list_cases_with_counts(db: Session, user: User) -> List[Dict[str, Any]]:
    """Newest first, each with documentCount and pendingApprovals."""
    cases = (
        db.query(Case)
        .filter(Case.owner_id == user.id)
        .order_by(Case.created_at.desc())
        .all()
    )

    document_counts = dict(
        db.query(Document.case_id, func.count(Document.id))
        .join(Case, Document.case_id == Case.id)
        .filter(Case.owner_id == user.id)
        .group_by(Document.case_id)
        .all()
    )
    pending_counts = dict(
        db.query(Document.case_id, func.count(SuggestedAction.id))
        .select_from(SuggestedAction)
        .join(ExtractedData, SuggestedAction.extracted_data_id == ExtractedData.id)
        .join(Document, ExtractedData.document_id == Document.id)
        .join(Case, Document.case_id == Case.id)
        .filter(
            Case.owner_id == user.id,
            SuggestedAction.status == ActionStatus.pending.value,
        )
        .group_by(Document.case_id)
        .all()
    )

    return [
        {
            "id": c.id,
            "name": c.name,
            "case_number": c.case_number,
            "status": c.status,
            "created_at": c.created_at,
            "document_count": document_counts.get(c.id, 0),
            "pending_approvals": pending_counts.get(c.id, 0),
        }
        for c in cases
    ]


def list_messages(db: Session, case: Case) -> List[ChatMessage]:
    return (
        db.query(ChatMessage)
        .filter(ChatMessage.case_id == case.id)
        .order_by(ChatMessage.timestamp.asc(), ChatMessage.id.asc())
        .all()
    )


def list_extracted_data(db: Session, case: Case) -> List[Dict[str, Any]]:
    """Newest first, each paired with its primary (first) document."""
    rows = (
        db.query(ExtractedData, Document)
        .join(Document, ExtractedData.document_id == Document.id)
        .filter(Document.case_id == case.id)
        .order_by(ExtractedData.extracted_at.desc())
        .all()
    )
    return [{"extracted": extracted, "document": document} for extracted, document in rows]


def list_actions(db: Session, case: Case) -> List[SuggestedAction]:
    return (
        db.query(SuggestedAction)
        .join(ExtractedData, SuggestedAction.extracted_data_id == ExtractedData.id)
        .join(Document, ExtractedData.document_id == Document.id)
        .filter(Document.case_id == case.id)
        .order_by(SuggestedAction.created_at.desc())
        .all()
    )


def list_approvals(db: Session, user: User) -> List[Dict[str, Any]]:
    """Approved actions across the user's cases, most recently updated first."""
    rows = (
        db.query(SuggestedAction, ExtractedData, Document, Case)
        .join(ExtractedData, SuggestedAction.extracted_data_id == ExtractedData.id)
        .join(Document, ExtractedData.document_id == Document.id)
        .join(Case, Document.case_id == Case.id)
        .filter(
            Case.owner_id == user.id,
            SuggestedAction.status == ActionStatus.approved.value,
        )
        .order_by(SuggestedAction.updated_at.desc())
        .all()
    )
    return [
        {"action": action, "extracted": extracted, "document": document, "case": case}
        for action, extracted, document, case in rows
    ]


def list_deadlines(db: Session, user: User) -> List[Dict[str, Any]]:
    """Every embedded deadline across the user's cases, annotated with case and document."""
    rows = (
        db.query(ExtractedData, Document, Case)
        .join(Document, ExtractedData.document_id == Document.id)
        .join(Case, Document.case_id == Case.id)
        .filter(Case.owner_id == user.id)
        .order_by(ExtractedData.extracted_at.desc())
        .all()
    )

    deadlines = []
    for extracted, document, case in rows:
        for deadline in extracted.deadlines or []:
            if not isinstance(deadline, dict):
                continue
            deadlines.append(
                {
                    "date": str(deadline.get("date") or ""),
                    "description": str(deadline.get("description") or ""),
                    "priority": deadline.get("priority") or "medium",
                    "case_id": case.id,
                    "case_name": case.name,
                    "case_number": case.case_number,
                    "document_name": document.file_name,
                }
            )
    return deadlines
