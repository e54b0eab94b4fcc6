"""Business logic services used by HTTP controllers.

This module holds the normalization pass applied to every study-data
write and small service classes that coordinate it with a repository.
Services are intentionally thin: they validate and repair payload shape
and then hand the whole document to the repository.
"""

import logging
from typing import Any, Optional

from passlib.context import CryptContext

from . import repositories
from .documents import (
    DEFAULT_EXAM,
    GUIDE_LIST_FIELDS,
    default_guide_name,
    new_guide_id,
    new_study_guide,
    now_iso,
)
from .errors import InvalidInputError

logger = logging.getLogger("studydata.services")

PWD_CTX = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def _non_empty_str(value: Any) -> bool:
    return isinstance(value, str) and value.strip() != ""


def _is_timestamp(value: Any) -> bool:
    # bool is an int subclass but never a valid timestamp
    if isinstance(value, bool):
        return False
    return _non_empty_str(value) or isinstance(value, (int, float))


def normalize_study_guide(guide: Any) -> dict:
    """Return `guide` with each missing or malformed field defaulted.

    Valid fields and unknown extra keys are kept as they are. A value that
    is not an object is replaced by a freshly created guide.
    """
    if not isinstance(guide, dict):
        return new_study_guide()
    out = dict(guide)
    if not _non_empty_str(out.get("id")):
        out["id"] = new_guide_id()
    if not _non_empty_str(out.get("name")):
        out["name"] = default_guide_name()
    if not _is_timestamp(out.get("createdAt")):
        out["createdAt"] = now_iso()
    for field in GUIDE_LIST_FIELDS:
        if not isinstance(out.get(field), list):
            out[field] = []
    return out


def normalize_study_data(body: Any) -> dict:
    """Repair the shape of a study-data payload before it is persisted.

    Raises `InvalidInputError` when `body` is not a JSON object. The input
    is never mutated and applying the pass twice gives the same result as
    applying it once.
    """
    if not isinstance(body, dict):
        raise InvalidInputError("request body must be a JSON object")
    out = dict(body)
    out["activeGuide"] = normalize_study_guide(body.get("activeGuide"))

    archived = body.get("archivedGuides")
    if isinstance(archived, list):
        kept = [normalize_study_guide(g) for g in archived if isinstance(g, dict)]
        dropped = len(archived) - len(kept)
        if dropped:
            logger.warning("dropped %d archived guide(s) that were not objects", dropped)
        out["archivedGuides"] = kept
    else:
        out["archivedGuides"] = []

    if not isinstance(body.get("activeExam"), str):
        out["activeExam"] = DEFAULT_EXAM
    return out


class StudyDataService:
    """Load, save and reset the single study document."""
    def __init__(self, repo: repositories.StudyDataRepository):
        self.repo = repo

    def load(self) -> dict:
        return self.repo.read()

    def save(self, body: Any) -> dict:
        """Normalize `body` and persist it, returning what was stored."""
        doc = normalize_study_data(body)
        self.repo.write(doc)
        logger.info(
            "saved study data: %d processed video(s), %d quiz result(s), %d archived guide(s)",
            len(doc["activeGuide"]["processedVideos"]),
            len(doc["activeGuide"]["quizHistory"]),
            len(doc["archivedGuides"]),
        )
        return doc

    def reset(self) -> None:
        self.repo.clear()
        logger.info("cleared study data")


class LegacyService:
    """Flashcards, study sessions and the advisory password gate.

    The password gate accepts whatever password is submitted first as the
    password of record. It guards nothing: the data routes never consult
    it. The stored value is a passlib hash, never the plaintext.
    """
    def __init__(self, repo: repositories.InMemoryLegacyRepository):
        self.repo = repo

    def save_flashcards(self, flashcards: Any) -> None:
        self.repo.replace_flashcards(flashcards if isinstance(flashcards, list) else [])

    def record_session(self, session: Any) -> None:
        self.repo.append_session(session)

    def check_password(self, password: Optional[str]) -> dict:
        """Return `{"valid": ...}`, adding `firstTime` when the password is set."""
        if not _non_empty_str(password):
            raise InvalidInputError("password must be a non-empty string")
        if self.repo.password_hash is None:
            self.repo.set_password_hash(PWD_CTX.hash(password))
            logger.warning("legacy admin password set by first caller")
            return {"valid": True, "firstTime": True}
        return {"valid": PWD_CTX.verify(password, self.repo.password_hash)}
