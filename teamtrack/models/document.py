#teamtrack/models/document.py
from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, DateTime, JSON, Index, PrimaryKeyConstraint, func
)
from teamtrack.models.base import Base

class Document(Base):
    """
    Document — документ коллекции (members, tasks, comments, teams) в виде JSON.
    Ключ: пара (collection, doc_id); revision растёт на каждой записи.
    """
    __tablename__ = "documents"

    collection: str = Column(String(64), nullable=False, doc="Имя коллекции")
    doc_id: str = Column(String(64), nullable=False, doc="Непрозрачный строковый ID документа")
    data: dict = Column(JSON, nullable=False, default=lambda: {}, doc="Поля документа")
    revision: int = Column(Integer, nullable=False, default=1, doc="Номер ревизии")
    created_at: datetime = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, doc="Дата создания")
    updated_at: datetime = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False, doc="Дата изменения")

    __table_args__ = (
        PrimaryKeyConstraint("collection", "doc_id", name="pk_documents"),
        Index("ix_documents_collection", "collection"),
    )

    def __repr__(self):
        return f"<Document(collection='{self.collection}', doc_id='{self.doc_id}', revision={self.revision})>"
