"""
Intake Orchestrator
===================
Takes N uploaded files for one case and turns them into Documents,
one ExtractedData, its SuggestedActions and two chat messages.

Order of work:
  1. guard: non-empty batch, per-file size limit
  2. extract every file (concurrently), reject unreadable ones
  3. one analysis call for the whole batch
  4. store blobs, then write every row in a single transaction

Nothing is written before step 4. If step 4 fails the transaction is
rolled back and blobs already stored are deleted again, so a failed batch
leaves neither rows nor blobs behind.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from tender.core.config import settings
from tender.core.logger import logger
from tender.db.models import (
    ActionStatus,
    Case,
    ChatMessage,
    Document,
    ExtractedData,
    MessageRole,
    SuggestedAction,
    extracted_data_documents,
    utcnow,
)
from tender.services.analysis_service import AnalysisRequester, DocumentAnalysis
from tender.services.content_extractor import ContentExtractor, ExtractedContent
from tender.services.storage_service import StorageService, build_document_key
from tender.utils.exceptions import (
    EmptyBatchError,
    FileTooLargeError,
    StorageError,
    UnreadableDocumentError,
)


@dataclass
class UploadedFile:
    file_name: str
    media_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class IntakeResult:
    documents: List[Document]
    extracted: ExtractedData
    actions: List[SuggestedAction]
    message: ChatMessage


def _documents_phrase(count: int) -> str:
    return f"{count} document" if count == 1 else f"{count} documents"


def upload_message(files: Sequence[UploadedFile], instructions: Optional[str]) -> str:
    names = ", ".join(f.file_name for f in files)
    content = f"Uploaded {_documents_phrase(len(files))}: {names}"
    if instructions:
        content += f"\nInstructions: {instructions}"
    return content


def analysis_complete_message(count: int) -> str:
    return (
        f"Analysis complete! I've extracted key information from {_documents_phrase(count)}. "
        "Please review the extracted data in the documents and approve or reject the suggested actions."
    )


class IntakeOrchestrator:
    def __init__(
        self,
        requester: AnalysisRequester,
        storage: StorageService,
        extractor: Optional[ContentExtractor] = None,
        min_extracted_chars: Optional[int] = None,
        max_upload_size: Optional[int] = None,
    ):
        self.requester = requester
        self.storage = storage
        self.extractor = extractor or ContentExtractor()
        self.min_extracted_chars = (
            settings.MIN_EXTRACTED_CHARS if min_extracted_chars is None else min_extracted_chars
        )
        self.max_upload_size = settings.MAX_UPLOAD_SIZE if max_upload_size is None else max_upload_size

    async def ingest(
        self,
        db: Session,
        case: Case,
        files: Sequence[UploadedFile],
        instructions: Optional[str] = None,
    ) -> IntakeResult:
        received_at = utcnow()
        instructions = (instructions or "").strip() or None

        if not files:
            raise EmptyBatchError()
        for f in files:
            if f.size > self.max_upload_size:
                raise FileTooLargeError(f.file_name, self.max_upload_size)

        logger.info(
            "Intake started: case=%s files=%d instructions=%s",
            case.id, len(files), bool(instructions),
        )

        contents = await self.extractor.extract_many([(f.file_name, f.data, f.media_type) for f in files])
        for content in contents:
            if not content.is_readable(self.min_extracted_chars):
                logger.warning("Intake aborted: %s yielded too little text", content.file_name)
                raise UnreadableDocumentError(content.file_name)

        analysis = await self.requester.analyze(contents, instructions)

        stored: List[str] = []
        try:
            for f, content in zip(files, contents):
                key = build_document_key(case.id, f.file_name)
                locator = await asyncio.to_thread(self.storage.put_object, key, f.data, content.media_type)
                stored.append(locator)

            result = self._persist(db, case, files, contents, stored, analysis, instructions, received_at)
            db.commit()
        except Exception:
            db.rollback()
            self._discard_blobs(stored)
            logger.error("Intake failed for case %s; rolled back %d stored blob(s)", case.id, len(stored))
            raise

        logger.info(
            "Intake complete: case=%s documents=%d actions=%d",
            case.id, len(result.documents), len(result.actions),
        )
        return result

    def _persist(
        self,
        db: Session,
        case: Case,
        files: Sequence[UploadedFile],
        contents: Sequence[ExtractedContent],
        locators: Sequence[str],
        analysis: DocumentAnalysis,
        instructions: Optional[str],
        received_at: datetime,
    ) -> IntakeResult:
        """Add every row of the batch to the session. The caller commits."""
        documents = [
            Document(
                case_id=case.id,
                file_name=f.file_name,
                file_type=content.media_type,
                file_size=f.size,
                storage_url=locator,
            )
            for f, content, locator in zip(files, contents, locators)
        ]
        db.add_all(documents)

        db.add(
            ChatMessage(
                case_id=case.id,
                role=MessageRole.user.value,
                content=upload_message(files, instructions),
                is_analysis=False,
                timestamp=received_at,
            )
        )
        db.flush()

        extracted = ExtractedData(
            document_id=documents[0].id,
            case_number=analysis.case_number,
            parties=analysis.parties,
            deadlines=analysis.deadlines,
            key_facts=analysis.key_facts,
            confidence=float(analysis.confidence),
        )
        db.add(extracted)
        db.flush()

        db.execute(
            extracted_data_documents.insert(),
            [
                {"extracted_data_id": extracted.id, "document_id": doc.id, "position": position}
                for position, doc in enumerate(documents)
            ],
        )

        actions = [
            SuggestedAction(
                extracted_data_id=extracted.id,
                title=a["title"],
                description=a["description"],
                rationale=a["rationale"],
                priority=a["priority"],
                status=ActionStatus.pending.value,
            )
            for a in analysis.suggested_actions
        ]
        db.add_all(actions)

        message = ChatMessage(
            case_id=case.id,
            role=MessageRole.assistant.value,
            content=analysis.conversational_response or analysis_complete_message(len(files)),
            is_analysis=True,
        )
        db.add(message)
        db.flush()

        return IntakeResult(documents=documents, extracted=extracted, actions=actions, message=message)

    def _discard_blobs(self, locators: Sequence[str]) -> None:
        for locator in locators:
            try:
                self.storage.delete_object(locator)
            except StorageError as e:
                logger.error("Could not remove orphaned blob %s: %s", locator, e)
