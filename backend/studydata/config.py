"""Application settings and validation."""

import os

BACKENDS = ("memory", "file", "mongo", "sqlite")


class Settings:
    ENV: str
    HOST: str
    PORT: int
    STORAGE_BACKEND: str
    DATA_FILE: str
    MONGODB_URI: str
    MONGODB_DB: str
    MONGODB_COLLECTION: str
    MONGODB_TIMEOUT_MS: int
    SQLITE_URL: str
    MAX_BODY_BYTES: int
    LEGACY_MAX_BODY_BYTES: int
    ALLOW_DEV_CORS: bool
    LOG_LEVEL: str

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.HOST = os.getenv("HOST", "0.0.0.0")
        self.PORT = int(os.getenv("PORT", "3000"))
        self.STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "memory").strip().lower()
        self.DATA_FILE = os.getenv("DATA_FILE", os.path.join("data", "study-data.json"))
        self.MONGODB_URI = os.getenv("MONGODB_URI", "").strip()
        self.MONGODB_DB = os.getenv("MONGODB_DB", "study_app")
        self.MONGODB_COLLECTION = os.getenv("MONGODB_COLLECTION", "studyData")
        self.MONGODB_TIMEOUT_MS = int(os.getenv("MONGODB_TIMEOUT_MS", "5000"))
        self.SQLITE_URL = os.getenv("SQLITE_URL", "sqlite:///data/study-data.db")
        self.MAX_BODY_BYTES = int(os.getenv("MAX_BODY_BYTES", str(50 * 1024 * 1024)))  # 50 MB default
        self.LEGACY_MAX_BODY_BYTES = int(os.getenv("LEGACY_MAX_BODY_BYTES", str(10 * 1024 * 1024)))
        self.ALLOW_DEV_CORS = os.getenv("ALLOW_DEV_CORS", "true").lower() == "true"
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self._validate()

    def _validate(self):
        if self.STORAGE_BACKEND not in BACKENDS:
            raise RuntimeError(
                f"STORAGE_BACKEND must be one of {', '.join(BACKENDS)}; got {self.STORAGE_BACKEND!r}"
            )
        if self.STORAGE_BACKEND == "mongo" and not self.MONGODB_URI:
            raise RuntimeError("MONGODB_URI must be set when STORAGE_BACKEND is 'mongo'")
        if self.PORT <= 0:
            raise RuntimeError("PORT must be a positive integer")


settings = Settings()
