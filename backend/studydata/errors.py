"""Error types raised by repositories and services.

Each error carries the HTTP status the API layer maps it to, so handlers
can convert any of them into a JSON error body in one place.
"""

from typing import Optional


class StudyDataError(Exception):
    """Base class for expected, caller-visible failures."""
    status_code = 500
    code = "InternalError"

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail

    def to_dict(self) -> dict:
        return {"error": self.code, "detail": self.detail}


class InvalidInputError(StudyDataError):
    """The request body failed the minimal shape checks."""
    status_code = 400
    code = "InvalidInput"


class CorruptStateError(StudyDataError):
    """Persisted data could not be parsed.

    The original content has already been moved aside when this is raised;
    `backup` names where it went (file name or row key, never a full path).
    """
    status_code = 409
    code = "CorruptState"

    def __init__(self, detail: str, backup: Optional[str] = None):
        super().__init__(detail)
        self.backup = backup

    def to_dict(self) -> dict:
        out = super().to_dict()
        if self.backup:
            out["backup"] = self.backup
        return out


class StorageUnavailableError(StudyDataError):
    """The backing store is not connected or did not answer."""
    status_code = 503
    code = "StorageUnavailable"
