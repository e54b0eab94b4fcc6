"""Pydantic request/response schemas used by the API.

The study-data document itself is accepted as arbitrary JSON and shaped
by `services.normalize_study_data`, so only the small fixed-shape bodies
of the acknowledgment and legacy routes are modelled here.
"""

from typing import Any, Optional

from pydantic import BaseModel


class MessageOut(BaseModel):
    """Acknowledgment returned by write and delete endpoints."""
    success: bool = True
    message: str


class FlashcardsIn(BaseModel):
    """Legacy flashcard save payload; anything but a list is stored as []."""
    flashcards: Any = None


class SessionIn(BaseModel):
    """Legacy study session payload appended to the session log."""
    session: Any


class PasswordIn(BaseModel):
    """Legacy password-gate payload."""
    password: Optional[str] = None
