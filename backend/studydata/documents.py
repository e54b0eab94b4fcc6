"""Canonical document shapes and default values.

Shared by the repositories (which return the empty state when nothing has
been persisted) and by the normalization service (which fills in missing
fields with the same defaults).
"""

import uuid
from datetime import datetime, timezone

DOCUMENT_KEY = "study-data"
DEFAULT_EXAM = "A+"
GUIDE_LIST_FIELDS = ("processedVideos", "quizHistory")


def new_guide_id() -> str:
    return uuid.uuid4().hex


def now_iso() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def default_guide_name() -> str:
    return f"Study Guide {datetime.now(timezone.utc).date().isoformat()}"


def new_study_guide() -> dict:
    """Return a freshly created, empty study guide."""
    return {
        "id": new_guide_id(),
        "name": default_guide_name(),
        "createdAt": now_iso(),
        "processedVideos": [],
        "quizHistory": [],
    }


def empty_study_data() -> dict:
    """Return the document served when nothing has been saved yet."""
    return {
        "activeGuide": new_study_guide(),
        "archivedGuides": [],
        "activeExam": DEFAULT_EXAM,
    }
