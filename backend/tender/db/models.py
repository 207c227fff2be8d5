"""
SQLAlchemy ORM Models
"""
from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    TIMESTAMP,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from tender.db.database import Base

# JSONB on Postgres, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    """Naive UTC timestamp, matching TIMESTAMP WITHOUT TIME ZONE columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ============================================================================
# Enums
# ============================================================================

class CaseStatus(str, enum.Enum):
    """Case status enum"""
    active = "active"
    pending = "pending"
    closed = "closed"


class MessageRole(str, enum.Enum):
    user = "user"
    assistant = "assistant"


class Priority(str, enum.Enum):
    """Priority shared by deadlines and suggested actions"""
    high = "high"
    medium = "medium"
    low = "low"


class ActionStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


# ============================================================================
# Models
# ============================================================================

class User(Base):
    """Account model"""
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    # Authentication
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)

    # Profile
    full_name = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default="1")

    # Timestamps
    created_at = Column(TIMESTAMP, nullable=False, default=utcnow)
    last_login_at = Column(TIMESTAMP, nullable=True)

    # Relationships
    cases = relationship("Case", back_populates="owner", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<User {self.email}>"


class Case(Base):
    """Legal case model"""
    __tablename__ = "cases"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    # Foreign Keys
    owner_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    # Case Identification (case_number is display-only, not unique)
    name = Column(Text, nullable=False)
    case_number = Column(String(100), nullable=False)
    status = Column(String(50), nullable=False, default=CaseStatus.active.value)

    # Timestamps
    created_at = Column(TIMESTAMP, nullable=False, default=utcnow)

    # Relationships
    owner = relationship("User", back_populates="cases")
    documents = relationship(
        "Document",
        back_populates="case",
        cascade="all, delete-orphan",
        order_by="Document.uploaded_at",
    )
    chat_messages = relationship(
        "ChatMessage",
        back_populates="case",
        cascade="all, delete-orphan",
        order_by="ChatMessage.timestamp",
    )

    __table_args__ = (
        Index("idx_cases_owner_created", "owner_id", "created_at"),
    )

    def __repr__(self):
        return f"<Case {self.case_number}>"


# Every document analyzed together in one batch; position keeps upload order
extracted_data_documents = Table(
    "extracted_data_documents",
    Base.metadata,
    Column("extracted_data_id", Uuid, ForeignKey("extracted_data.id", ondelete="CASCADE"), primary_key=True),
    Column("document_id", Uuid, ForeignKey("documents.id", ondelete="CASCADE"), primary_key=True),
    Column("position", Integer, nullable=False, default=0),
)


class Document(Base):
    """Uploaded document. Content lives in the blob store at storage_url."""
    __tablename__ = "documents"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    # Foreign Keys
    case_id = Column(Uuid, ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True)

    # File Metadata
    file_name = Column(String(500), nullable=False)
    file_type = Column(String(255), nullable=False)
    file_size = Column(BigInteger, nullable=False)
    storage_url = Column(Text, nullable=False)

    uploaded_at = Column(TIMESTAMP, nullable=False, default=utcnow)

    # Relationships
    case = relationship("Case", back_populates="documents")
    extracted_data = relationship(
        "ExtractedData",
        back_populates="document",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<Document {self.file_name}>"


class ChatMessage(Base):
    """Append-only chat history for a case"""
    __tablename__ = "chat_messages"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    case_id = Column(Uuid, ForeignKey("cases.id", ondelete="CASCADE"), nullable=False)

    role = Column(String(20), nullable=False)  # MessageRole value
    content = Column(Text, nullable=False)
    is_analysis = Column(Boolean, nullable=False, default=False)
    timestamp = Column(TIMESTAMP, nullable=False, default=utcnow)

    case = relationship("Case", back_populates="chat_messages")

    __table_args__ = (
        Index("idx_chat_messages_case_timestamp", "case_id", "timestamp"),
    )


class ExtractedData(Base):
    """
    Structured analysis of one intake batch.

    document_id points at the first document of the batch; every document
    analyzed together is linked through extracted_data_documents.
    Created once per successful batch and never mutated.
    """
    __tablename__ = "extracted_data"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    document_id = Column(Uuid, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True)

    case_number = Column(String(255), nullable=True)
    parties = Column(JSONType, nullable=False, default=list)
    # [{"date": str, "description": str, "priority": "high|medium|low"}]
    deadlines = Column(JSONType, nullable=False, default=list)
    key_facts = Column(JSONType, nullable=False, default=list)
    confidence = Column(Float, nullable=False)

    extracted_at = Column(TIMESTAMP, nullable=False, default=utcnow)

    # Relationships
    document = relationship("Document", back_populates="extracted_data")
    documents = relationship(
        "Document",
        secondary=extracted_data_documents,
        order_by=extracted_data_documents.c.position,
        viewonly=True,
    )
    suggested_actions = relationship(
        "SuggestedAction",
        back_populates="extracted_data",
        cascade="all, delete-orphan",
    )

    @property
    def document_ids(self) -> list:
        return [doc.id for doc in self.documents]


class SuggestedAction(Base):
    """Suggested next step. status is the only field that changes after creation."""
    __tablename__ = "suggested_actions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    extracted_data_id = Column(
        Uuid, ForeignKey("extracted_data.id", ondelete="CASCADE"), nullable=False, index=True
    )

    title = Column(Text, nullable=False)
    description = Column(Text, nullable=False, default="")
    rationale = Column(Text, nullable=False, default="")
    priority = Column(String(10), nullable=False, default=Priority.medium.value)
    status = Column(
        String(20), nullable=False, default=ActionStatus.pending.value, index=True
    )

    created_at = Column(TIMESTAMP, nullable=False, default=utcnow)
    updated_at = Column(TIMESTAMP, nullable=False, default=utcnow, onupdate=utcnow)

    extracted_data = relationship("ExtractedData", back_populates="suggested_actions")
