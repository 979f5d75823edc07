import uuid

from sqlalchemy import Boolean, Column, DateTime, String, Text, Uuid, false
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .base import Base, JSONType, utcnow

DEFAULT_FOLDER = "Unclassified"


class Document(Base):
    __tablename__ = "documents"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title = Column(String, nullable=False)
    content = Column(Text, nullable=False)                # raw extracted text
    markdown = Column(Text, nullable=False)               # derived rendering
    # "metadata" is reserved on declarative classes
    metadata_ = Column("metadata", JSONType, nullable=True)
    folder = Column(String, nullable=True, default=DEFAULT_FOLDER)
    is_embedded = Column(Boolean, nullable=False, default=False, server_default=false())
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False)

    chats = relationship("Chat", back_populates="document", passive_deletes="all")
    chunks = relationship(
        "Chunk",
        back_populates="document",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Chunk.chunk_index",
    )

    @property
    def file_type(self) -> str:
        metadata = self.metadata_ or {}
        return str(metadata.get("fileType") or "").lower()

    @property
    def is_csv(self) -> bool:
        return self.file_type == "csv" or (self.title or "").lower().endswith(".csv")
