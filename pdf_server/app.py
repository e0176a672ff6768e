"""
PDF Server - FastAPI application.

Routes:
- GET  /             render a URL to PDF
- POST /             render literal HTML to PDF (JSON or form body)
- GET  /pdf_options  list the preset PDF options
- GET  /health       page pool status
"""

import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from starlette.datastructures import Headers
from starlette.types import ASGIApp, Message, Receive, Scope, Send
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from . import __version__
from .auth import verify_token
from .config import PdfServerSettings, get_settings, log_settings
from .errors import PayloadTooLarge, PdfServerError, ValidationError
from .inliner import TemplateImageInliner
from .logging_config import generate_request_id, request_id_var, setup_logging
from .pool import PagePool
from .presets import PresetRegistry
from .renderer import RenderOrchestrator

logger = logging.getLogger(__name__)

PDF_RESPONSE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}

FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")
BODY_TOO_LARGE = "request body is too large"


# ============================================================================
# Request/Response Models
# ============================================================================

class RenderHtmlRequest(BaseModel):
    """Body of POST /."""
    html: Optional[str] = None
    pdf_option: Optional[str] = None
    header: Optional[str] = None
    footer: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = "healthy"
    timestamp: datetime
    pages: int
    idle_pages: int
    busy_pages: int
    browser_ready: bool = True
    browser_error: Optional[str] = None


# ============================================================================
# Helpers
# ============================================================================

def pdf_response(pdf_bytes: bytes) -> Response:
    """PDF response that must not be cached by clients or proxies."""
    return Response(content=pdf_bytes, media_type="application/pdf", headers=PDF_RESPONSE_HEADERS)


async def read_body(request: Request) -> Optional[Dict[str, Any]]:
    """
    Read a JSON or form body into a dict.

    Returns None for an empty body.
    """
    content_type = request.headers.get("content-type", "").lower()
    if content_type.startswith(FORM_CONTENT_TYPES):
        form = await request.form()
        return {key: value for key, value in form.items() if isinstance(value, str)} or None

    raw = await request.body()
    if not raw.strip():
        return None

    try:
        body = json.loads(raw)
    except ValueError:
        raise ValidationError("request body is not valid JSON")

    if body is None:
        return None
    if not isinstance(body, dict):
        raise ValidationError("request body must be a JSON object")
    return body


class BodyLimitMiddleware:
    """
    Reject request bodies larger than `limit` bytes.

    A declared Content-Length over the limit is answered with 413 before the
    body is read. Bodies without one (chunked uploads) are counted as they
    are received and PayloadTooLarge is raised once the limit is passed.
    """

    def __init__(self, app: ASGIApp, limit: int):
        self.app = app
        self.limit = limit

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        content_length = Headers(scope=scope).get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > self.limit:
            logger.warning(f"Rejected body of {content_length} bytes (limit {self.limit})")
            error = PayloadTooLarge(BODY_TOO_LARGE)
            response = JSONResponse(status_code=error.status_code, content=error.to_dict())
            await response(scope, receive, send)
            return

        received = 0

        async def limited_receive() -> Message:
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.limit:
                    logger.warning(f"Rejected streamed body over {self.limit} bytes")
                    raise PayloadTooLarge(BODY_TOO_LARGE)
            return message

        await self.app(scope, limited_receive, send)


def get_orchestrator(request: Request) -> RenderOrchestrator:
    return request.app.state.orchestrator


# ============================================================================
# Application factory
# ============================================================================

def create_app(
    settings: Optional[PdfServerSettings] = None,
    registry: Optional[PresetRegistry] = None,
    pool: Optional[PagePool] = None,
    inliner: Optional[TemplateImageInliner] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Settings override (defaults to environment settings)
        registry: Preset registry (defaults to one built from settings)
        pool: Page pool (defaults to a Playwright pool built from settings)
        inliner: Template image inliner

    Returns:
        Configured FastAPI application
    """
    settings = settings or get_settings()
    setup_logging(settings.log_level)
    log_settings(settings)

    registry = registry or PresetRegistry.from_settings(settings)
    pool = pool or PagePool.from_settings(settings)
    inliner = inliner or TemplateImageInliner(timeout=settings.image_fetch_timeout_seconds)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("PDF server starting - launching page pool...")
        try:
            await pool.start()
            app.state.pool_error = None
        except Exception as e:
            app.state.pool_error = str(e)
            logger.error(f"Page pool failed to start: {e}")
            logger.error("PDF rendering will not work until this is resolved.")

        yield

        logger.info("PDF server shutting down")
        await pool.close()

    app = FastAPI(
        title="PDF Server",
        version=__version__,
        description="Render web pages and HTML to PDF using Playwright/Chromium",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.registry = registry
    app.state.pool = pool
    app.state.pool_error = None
    app.state.orchestrator = RenderOrchestrator(registry, pool, inliner)

    # Added first so the request ID middleware wraps it.
    app.add_middleware(BodyLimitMiddleware, limit=settings.body_limit)

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next: Any) -> Response:
        """Attach a request ID for logging."""
        request_id = request.headers.get("X-Request-ID") or generate_request_id()
        token = request_id_var.set(request_id)
        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            request_id_var.reset(token)

    @app.exception_handler(PdfServerError)
    async def pdf_server_error_handler(request: Request, exc: PdfServerError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=exc.headers)

    # ------------------------------------------------------------------------
    # Routes
    # ------------------------------------------------------------------------

    @app.get("/", dependencies=[Depends(verify_token)])
    async def render_url(
        url: Optional[str] = None,
        pdf_option: Optional[str] = None,
        header: Optional[str] = None,
        footer: Optional[str] = None,
        orchestrator: RenderOrchestrator = Depends(get_orchestrator),
    ) -> Response:
        """Render the page at `url` to PDF."""
        pdf_bytes = await orchestrator.render_url(url, pdf_option=pdf_option, header=header, footer=footer)
        return pdf_response(pdf_bytes)

    @app.post("/", dependencies=[Depends(verify_token)])
    async def render_html(
        request: Request,
        orchestrator: RenderOrchestrator = Depends(get_orchestrator),
    ) -> Response:
        """Render the `html` field of a JSON or form body to PDF."""
        body = await read_body(request)
        if body is None:
            raise ValidationError("request body is empty")

        try:
            payload = RenderHtmlRequest.model_validate(body)
        except PydanticValidationError as e:
            fields = ", ".join(str(err["loc"][0]) for err in e.errors() if err.get("loc"))
            raise ValidationError(f"invalid request body fields: {fields}")

        pdf_bytes = await orchestrator.render_html(
            payload.html,
            pdf_option=payload.pdf_option,
            header=payload.header,
            footer=payload.footer,
        )
        return pdf_response(pdf_bytes)

    @app.get("/pdf_options", dependencies=[Depends(verify_token)])
    async def list_pdf_options() -> Dict[str, Dict[str, Any]]:
        """Every preset name with its PDF options."""
        return {name: options.to_public_dict() for name, options in registry.list_all().items()}

    @app.get("/health", response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        """
        Health check endpoint for container orchestration.

        Returns HTTP 503 if the page pool is not running.
        """
        if not pool.ready:
            raise HTTPException(
                status_code=503,
                detail={
                    "status": "unhealthy",
                    "timestamp": datetime.utcnow().isoformat(),
                    "pages": pool.size,
                    "browser_ready": False,
                    "browser_error": app.state.pool_error,
                    "message": "PDF server is unhealthy - page pool not running",
                },
            )

        return HealthResponse(
            timestamp=datetime.utcnow(),
            pages=pool.size,
            idle_pages=pool.idle_count,
            busy_pages=pool.busy_count,
        )

    return app
