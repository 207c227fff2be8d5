"""
Chat replies from the assistant ("Tender").

Posting a user message that is not an upload notice triggers exactly one
AI reply, grounded on the case's most recent extracted data when present.
"""
from __future__ import annotations

import asyncio
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from tender.core.logger import logger
from tender.db.models import Case, ChatMessage, Document, ExtractedData, MessageRole
from tender.db.schemas import ChatMessageCreate
from tender.services.ai_client import GenerativeClient
from tender.utils.exceptions import AIServiceError

UPLOAD_MARKER = "uploaded:"


def build_context(extracted: Optional[ExtractedData]) -> Optional[str]:
    if extracted is None:
        return None
    deadlines = "; ".join(
        f"{d.get('description', '')} ({d.get('date', '')}, {d.get('priority', 'medium')})"
        for d in (extracted.deadlines or [])
        if isinstance(d, dict)
    )
    return "\n".join(
        [
            f"Case Number: {extracted.case_number or 'Not found'}",
            f"Parties: {', '.join(extracted.parties or []) or 'Not found'}",
            f"Deadlines: {deadlines or 'Not found'}",
            f"Key Facts: {'; '.join(extracted.key_facts or []) or 'Not found'}",
        ]
    )


def build_chat_prompt(message: str, context: Optional[str] = None) -> str:
    context_section = f"Context from recent analysis:\n{context}\n\n" if context else ""
    return (
        "You are Tender, a helpful AI legal assistant for plaintiff legal teams. You help analyze case "
        "documents, extract key information, and suggest actionable next steps.\n\n"
        f"{context_section}User message: {message}\n\n"
        "Respond helpfully and professionally. If the user asks about document analysis, encourage them "
        "to upload documents. Keep responses concise and actionable."
    )


class ChatService:
    def __init__(self, client: GenerativeClient):
        self.client = client

    @staticmethod
    def latest_extracted(db: Session, case: Case) -> Optional[ExtractedData]:
        return (
            db.query(ExtractedData)
            .join(Document, ExtractedData.document_id == Document.id)
            .filter(Document.case_id == case.id)
            .order_by(ExtractedData.extracted_at.desc())
            .first()
        )

    @staticmethod
    def wants_reply(message: ChatMessage) -> bool:
        return message.role == MessageRole.user.value and UPLOAD_MARKER not in message.content.lower()

    async def post_message(
        self, db: Session, case: Case, payload: ChatMessageCreate
    ) -> Tuple[ChatMessage, Optional[ChatMessage]]:
        """
        Store the message, then append the assistant reply when one is due.

        The user's message is committed before the AI call, so it stays
        stored if the reply fails with AIServiceError.
        """
        message = ChatMessage(
            case_id=case.id,
            role=payload.role,
            content=payload.content,
            is_analysis=payload.is_analysis,
        )
        db.add(message)
        db.commit()
        db.refresh(message)

        if not self.wants_reply(message):
            return message, None

        prompt = build_chat_prompt(message.content, build_context(self.latest_extracted(db, case)))
        reply = await asyncio.to_thread(self.client.generate, prompt)
        reply = (reply or "").strip()
        if not reply:
            raise AIServiceError("Empty reply from AI service")

        ai_message = ChatMessage(
            case_id=case.id,
            role=MessageRole.assistant.value,
            content=reply,
            is_analysis=False,
        )
        db.add(ai_message)
        db.commit()
        db.refresh(ai_message)
        logger.info("Chat reply stored for case %s (%d chars)", case.id, len(reply))
        return message, ai_message
