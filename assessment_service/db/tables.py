"""SQLAlchemy table definitions.

The service reads a document-shaped schema: every record is a JSONB blob
addressed by (collection, id).  Repos decode the blobs into the frozen
dataclass domain models in assessment_service/models/.
"""

from __future__ import annotations

import datetime

from sqlalchemy import DateTime, Index, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from assessment_service.db.engine import Base


class DocumentRow(Base):
    __tablename__ = "documents"

    collection: Mapped[str] = mapped_column(String(128), primary_key=True)
    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    data: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        # jsonb_path_ops keeps the index small and serves @> (containment),
        # the only operator fetch_many issues.
        Index(
            "ix_documents_data",
            "data",
            postgresql_using="gin",
            postgresql_ops={"data": "jsonb_path_ops"},
        ),
    )
