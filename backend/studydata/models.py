"""SQLModel data models.

The SQL backend keeps the whole study document as one JSON text row, so
there is a single table keyed by the fixed document key.
"""

from datetime import datetime, timezone

from sqlmodel import SQLModel, Field


class StudyDocument(SQLModel, table=True):
    """A persisted JSON document.

    Fields:
    - `key`: fixed document identifier (one row per deployment)
    - `payload`: serialized JSON text of the document
    """
    key: str = Field(primary_key=True)
    payload: str
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
