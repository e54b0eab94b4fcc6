"""FastAPI application entrypoint and HTTP controllers.

This module defines the HTTP endpoints of the study-data backend.
Controllers are intentionally thin: they accept requests, delegate to
services, and return JSON responses. The storage repository is an
explicit handle created by `create_app` and kept on `app.state`.

Endpoints implemented:
- GET /
- GET /api/study-data
- POST /api/study-data
- DELETE /api/study-data
- GET /health
- GET/POST /api/flashcards (legacy)
- GET/POST /api/sessions (legacy)
- POST /api/check-password (legacy)
"""

from contextlib import asynccontextmanager
from typing import Any, Optional
import json
import logging
import time
import uuid

from fastapi import APIRouter, Body, Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import repositories, services
from .config import Settings, settings as env_settings
from .errors import StudyDataError
from .schemas import FlashcardsIn, MessageOut, PasswordIn, SessionIn

logger = logging.getLogger("studydata.api")
if not logger.handlers:
    logging.basicConfig(level=env_settings.LOG_LEVEL)

LEGACY_PATHS = ("/api/flashcards", "/api/sessions", "/api/check-password")

router = APIRouter()


def get_repository(request: Request) -> repositories.StudyDataRepository:
    """FastAPI dependency returning the app's study-data repository."""
    return request.app.state.repository


def get_legacy_repository(request: Request) -> repositories.InMemoryLegacyRepository:
    return request.app.state.legacy


def _body_limit(settings: Settings, path: str) -> int:
    if path.startswith(LEGACY_PATHS):
        return settings.LEGACY_MAX_BODY_BYTES
    return settings.MAX_BODY_BYTES


class BodySizeLimitMiddleware:
    """Reject request bodies over the route's byte limit with 413.

    A declared Content-Length is checked up front. Bodies without one
    (chunked uploads) are counted as they are received, and reading stops
    once the limit is passed.
    """

    def __init__(self, app, settings: Settings):
        self.app = app
        self.settings = settings

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return
        limit = _body_limit(self.settings, scope["path"])
        declared = dict(scope["headers"]).get(b"content-length", b"")
        if declared.isdigit() and int(declared) > limit:
            response = JSONResponse(status_code=413, content=_too_large(limit))
            await response(scope, receive, send)
            return

        received = 0

        async def limited_receive():
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > limit:
                    raise HTTPException(status_code=413, detail=_too_large(limit)["detail"])
            return message

        await self.app(scope, limited_receive, send)


def _too_large(limit: int) -> dict:
    return {"error": "PayloadTooLarge", "detail": f"request body exceeds {limit} bytes"}


def _log_request(event: str, request: Request, req_id: str, started: float, status_code: Optional[int] = None):
    payload = {
        "request_id": req_id,
        "path": request.url.path,
        "method": request.method,
        "duration_ms": round((time.perf_counter() - started) * 1000.0, 2),
        "client": request.client.host if request.client else "unknown",
    }
    if status_code is not None:
        payload["status_code"] = status_code
        logger.info("%s %s", event, json.dumps(payload, ensure_ascii=True))
    else:
        logger.exception("%s %s", event, json.dumps(payload, ensure_ascii=True))


async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    response: Response
    try:
        response = await call_next(request)
    except Exception:
        # details stay in the server log; callers only get a generic body
        _log_request("request_failed", request, req_id, started)
        response = JSONResponse(
            status_code=500,
            content={"error": "InternalError", "detail": "internal server error"},
        )
    response.headers["X-Request-ID"] = req_id
    _log_request("request_done", request, req_id, started, response.status_code)
    return response


async def study_data_error_handler(request: Request, exc: StudyDataError):
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


HTTP_ERROR_CODES = {404: "NotFound", 405: "MethodNotAllowed", 413: "PayloadTooLarge"}


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    code = HTTP_ERROR_CODES.get(exc.status_code, "HTTPError")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": code, "detail": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    detail = first.get("msg", "invalid request body")
    return JSONResponse(status_code=400, content={"error": "InvalidInput", "detail": detail})


@router.get("/")
def read_root():
    """Service banner."""
    return {"message": "Study Data Backend API"}


@router.get("/api/study-data")
def get_study_data(repo: repositories.StudyDataRepository = Depends(get_repository)):
    """Return the stored study document, or the empty state if none exists."""
    return services.StudyDataService(repo).load()


@router.post("/api/study-data", response_model=MessageOut)
def save_study_data(body: Any = Body(default=None), repo: repositories.StudyDataRepository = Depends(get_repository)):
    """Normalize and persist the posted study document.

    The body must be a JSON object; missing or malformed fields are
    defaulted before the whole document replaces the stored one. The saved
    document is not echoed back.
    """
    services.StudyDataService(repo).save(body)
    return {"success": True, "message": "Study data saved successfully"}


@router.delete("/api/study-data", response_model=MessageOut)
def delete_study_data(repo: repositories.StudyDataRepository = Depends(get_repository)):
    """Remove the stored document. Deleting twice is not an error."""
    services.StudyDataService(repo).reset()
    return {"success": True, "message": "Study data cleared"}


@router.get("/health")
def health(
    repo: repositories.StudyDataRepository = Depends(get_repository),
    legacy: repositories.InMemoryLegacyRepository = Depends(get_legacy_repository),
):
    """Lightweight health check for uptime monitoring."""
    status = repo.status()
    return {
        "status": "ok" if status["database"] == "Connected" else "degraded",
        **status,
        "flashcards": len(legacy.flashcards),
        "sessions": len(legacy.sessions),
    }


@router.get("/api/flashcards")
def get_flashcards(legacy: repositories.InMemoryLegacyRepository = Depends(get_legacy_repository)):
    return {"flashcards": legacy.flashcards}


@router.post("/api/flashcards")
def save_flashcards(payload: FlashcardsIn, legacy: repositories.InMemoryLegacyRepository = Depends(get_legacy_repository)):
    """Replace the whole flashcard list."""
    services.LegacyService(legacy).save_flashcards(payload.flashcards)
    return {"success": True}


@router.get("/api/sessions")
def get_sessions(legacy: repositories.InMemoryLegacyRepository = Depends(get_legacy_repository)):
    return {"sessions": legacy.sessions}


@router.post("/api/sessions")
def save_session(payload: SessionIn, legacy: repositories.InMemoryLegacyRepository = Depends(get_legacy_repository)):
    services.LegacyService(legacy).record_session(payload.session)
    return {"success": True}


@router.post("/api/check-password")
def check_password(payload: PasswordIn, legacy: repositories.InMemoryLegacyRepository = Depends(get_legacy_repository)):
    """Advisory password gate: the first password submitted is kept.

    Not enforced on any other route.
    """
    return services.LegacyService(legacy).check_password(payload.password)


def create_app(
    settings: Optional[Settings] = None,
    repository: Optional[repositories.StudyDataRepository] = None,
) -> FastAPI:
    """Build the application around one storage repository.

    When `repository` is omitted it is chosen from `settings`. The
    repository connects during startup; a connection failure aborts
    startup so the process never serves without its store.
    """
    settings = settings or env_settings
    repo = repository if repository is not None else repositories.build_repository(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.repository.connect()
        logger.info("storage backend ready: %s", app.state.repository.name)
        try:
            yield
        finally:
            app.state.repository.close()

    app = FastAPI(title="Study Data API", lifespan=lifespan)
    app.state.settings = settings
    app.state.repository = repo
    app.state.legacy = repositories.InMemoryLegacyRepository()

    app.add_middleware(BodySizeLimitMiddleware, settings=settings)
    app.middleware("http")(request_context_middleware)
    if settings.ALLOW_DEV_CORS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=False,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    app.add_exception_handler(StudyDataError, study_data_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=env_settings.HOST, port=env_settings.PORT)
