import datetime as dt
from sqlalchemy import JSON, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class Document(Base):
    """One stored document addressed by a slash path.

    ``users/u1/daySchedules/2026-10-18`` lives in collection
    ``users/u1/daySchedules`` under ``doc_id`` ``2026-10-18``.
    """

    __tablename__ = "documents"
    __table_args__ = (
        Index("ix_documents_collection", "collection"),
    )

    path: Mapped[str] = mapped_column(String(400), primary_key=True)
    collection: Mapped[str] = mapped_column(String(300))
    doc_id: Mapped[str] = mapped_column(String(120))
    data: Mapped[dict] = mapped_column(JSON, default=dict)

    updated_at: Mapped[dt.datetime] = mapped_column(DateTime, default=lambda: dt.datetime.utcnow(), onupdate=lambda: dt.datetime.utcnow())
