import logging
import time
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import uvicorn
from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from sqlalchemy.exc import SQLAlchemyError

from autosave.tracker import ChangeTracker
from config import Settings, get_settings
from errors import ExternalServiceError, NotFoundError, ResumeError, ValidationError
from llm.client import LLMClient, UnconfiguredClient, build_client
from llm.pipeline import enhance_field
from render.pdf import PdfRenderer
from render.templates import DEFAULT_TEMPLATE, render_resume_html
from schemas.resume import CamelModel, ResumeDocument
from store.documents import ResumeStore, parse_document

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("smart_resume_editor")

APP_TITLE = "Smart Resume Editor"
USER_HEADER = "X-User-Id"

router = APIRouter()


class ResumeRequest(CamelModel):
    resume_data: Optional[Dict[str, Any]] = None
    template: Optional[str] = None


class EnhanceFieldRequest(CamelModel):
    resume_id: Optional[str] = None
    field: Optional[str] = None
    index: Optional[int] = None


def _require_resume_data(payload: ResumeRequest) -> ResumeDocument:
    if not payload.resume_data:
        raise ValidationError(["Resume data is required"], "Resume data is required")
    return parse_document(payload.resume_data)


def _user_key(request: Request, resume: ResumeDocument) -> Optional[str]:
    header = (request.headers.get(USER_HEADER) or "").strip()
    return header or resume.email or None


def _saved_body(message: str, resume: ResumeDocument, **extra: Any) -> Dict[str, Any]:
    body = {
        "success": True,
        "message": message,
        "data": resume.to_wire(),
        "resumeId": resume.id,
        "lastSavedAt": resume.last_saved_at.isoformat() if resume.last_saved_at else None,
    }
    body.update(extra)
    return body


@router.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok", "message": "Server is running"}


@router.post("/resume", status_code=201)
@router.post("/resume/create", status_code=201)
def create_resume(payload: ResumeRequest, request: Request) -> Dict[str, Any]:
    state = request.app.state
    resume = _require_resume_data(payload)
    created = state.store.create(resume)
    key = _user_key(request, created)
    if key:
        state.tracker.track(key, created)
    return _saved_body("Resume created successfully", created, autoSaveEnabled=True)


@router.post("/resume/save")
def save_resume(payload: ResumeRequest, request: Request) -> Dict[str, Any]:
    state = request.app.state
    resume = _require_resume_data(payload)
    saved = state.store.save(resume)
    key = _user_key(request, saved)
    if key:
        state.tracker.track(key, saved)
    return _saved_body("Resume saved successfully", saved, autoSaveEnabled=True)


@router.post("/resume/autosave", status_code=202)
def autosave_resume(payload: ResumeRequest, request: Request) -> Dict[str, Any]:
    state = request.app.state
    resume = _require_resume_data(payload)
    key = _user_key(request, resume)
    if not key:
        raise ValidationError([f"An email or {USER_HEADER} header is required for autosave"])
    scheduled = state.tracker.record_edit(key, resume)
    status = state.tracker.status(key)
    return {
        "success": True,
        "message": "Auto-save scheduled" if scheduled else "No changes to save",
        "pending": status["pending"],
        "state": status["state"],
        "lastSavedAt": status["lastSavedAt"],
    }


@router.get("/resume")
def load_resume(request: Request, email: Optional[str] = None) -> Dict[str, Any]:
    state = request.app.state
    if not email or not email.strip():
        raise ValidationError(["Email is required"], "Email is required")
    resume = state.store.find_by_email(email)
    if resume is None:
        raise NotFoundError("Resume not found")
    key = _user_key(request, resume)
    if key:
        state.tracker.track(key, resume)
    return _saved_body("Resume loaded successfully", resume, autoSaveEnabled=True)


@router.post("/resume/generate-pdf")
def generate_pdf(payload: ResumeRequest, request: Request) -> Response:
    state = request.app.state
    resume = _require_resume_data(payload)
    try:
        html = render_resume_html(resume, payload.template or DEFAULT_TEMPLATE)
    except ValueError as exc:
        raise ValidationError([str(exc)], "Unknown template") from exc
    pdf = state.renderer.render(html)
    filename = f"resume_{int(time.time() * 1000)}.pdf"
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/resume/enhanceField")
def enhance_resume_field(payload: EnhanceFieldRequest, request: Request) -> Dict[str, Any]:
    state = request.app.state
    if not payload.resume_id:
        raise ValidationError(["Resume ID is required"], "Resume ID is required")
    if not payload.field:
        raise ValidationError(["Field to enhance is required"], "Field to enhance is required")

    result = enhance_field(
        state.store, state.llm_client, payload.resume_id, payload.field, payload.index
    )
    label = result.field.value if result.index is None else f"{result.field.value} entry"
    message = (
        f"Enhanced {label} successfully"
        if result.changed
        else f"No changes applied to {label}"
    )
    return {
        "success": True,
        "message": message,
        "data": result.to_wire(),
        "field": result.field.value,
        "index": result.index,
        "changed": result.changed,
    }


def _default_client(settings: Settings) -> LLMClient:
    try:
        return build_client(settings.llm_provider, settings.llm_api_key, settings.llm_model)
    except (ValueError, RuntimeError) as exc:
        logger.warning("Generation model unavailable, enhancement disabled: %s", exc)
        return UnconfiguredClient(str(exc))


def _install_error_handlers(app: FastAPI, settings: Settings) -> None:
    @app.exception_handler(ResumeError)
    async def handle_resume_error(request: Request, exc: ResumeError) -> JSONResponse:
        body: Dict[str, Any] = {"success": False, "message": exc.message}
        if isinstance(exc, ValidationError):
            body["errors"] = exc.errors
        if isinstance(exc, ExternalServiceError):
            logger.error("External service failure on %s: %s", request.url.path, exc)
            body["message"] = "External service failed"
            if settings.is_development:
                body["error"] = exc.message
        return JSONResponse(status_code=exc.status_code, content=body)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = [
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content={"success": False, "message": "Validation failed", "errors": errors},
        )

    @app.exception_handler(SQLAlchemyError)
    async def handle_store_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        logger.exception("Store failure on %s", request.url.path)
        body: Dict[str, Any] = {"success": False, "message": "Resume store failed"}
        if settings.is_development:
            body["error"] = str(exc)
        return JSONResponse(status_code=500, content=body)

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s", request.url.path)
        body: Dict[str, Any] = {"success": False, "message": "Server error"}
        if settings.is_development:
            body["error"] = str(exc)
        return JSONResponse(status_code=500, content=body)


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[ResumeStore] = None,
    llm_client: Optional[LLMClient] = None,
    renderer: Optional[PdfRenderer] = None,
    tracker: Optional[ChangeTracker] = None,
) -> FastAPI:
    settings = settings or get_settings()
    store = store or ResumeStore.from_url(settings.database_url)
    tracker = tracker or ChangeTracker(
        store,
        debounce_seconds=settings.autosave_debounce_seconds,
        capacity=settings.tracker_capacity,
        idle_ttl=settings.tracker_idle_seconds,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        tracker.shutdown()

    app = FastAPI(title=APP_TITLE, lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.llm_client = llm_client or _default_client(settings)
    app.state.renderer = renderer or PdfRenderer(
        binary=settings.chrome_binary, timeout=settings.pdf_timeout_seconds
    )
    app.state.tracker = tracker

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    _install_error_handlers(app, settings)
    app.include_router(router)
    return app


if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port)
