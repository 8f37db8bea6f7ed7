"""
FastAPI application: middleware, exception handlers and lifespan
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
import uuid
import time

from .config import get_settings
from .logging import UNMATCHED_ROUTE, logger, metrics, request_tracker, request_id_var
from .dependencies import get_container
from .api_v1 import v1_router
from .api_models import error_response, success_response
from .exceptions import AppError, InternalError

# Get configuration
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the schema on startup, release the engine on shutdown"""
    container = get_container()
    logger.info("Starting mdpress API", version=settings.app_version)
    await container.database.create_all()
    logger.info("Application started", api_prefix=settings.api_prefix)
    yield
    logger.info("Shutting down mdpress API")
    await container.close()
    logger.info("Application shutdown complete")


app = FastAPI(
    title=settings.app_name,
    description="""
    # mdpress API

    Markdown documents in a per-user folder tree, publishable as public blog
    posts with tags, ranked search, likes/shares/views and daily analytics.

    * **Auth**: `/api/v1/auth` (JWT access tokens, rotating refresh tokens)
    * **Documents**: `/api/v1/files`
    * **Blogs**: `/api/v1/blogs`
    * **Health Check**: [`/api/v1/health`](/api/v1/health)
    """,
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)


# Security middleware
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses"""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"

        # Responses are per-user or carry live counters
        response.headers["Cache-Control"] = "no-store"

        return response


app.add_middleware(SecurityHeadersMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    max_age=3600
)


def _route_label(request: Request) -> str:
    """Path template of the matched route, e.g. `/api/v1/blogs/public/{slug}`"""
    route = request.scope.get("route")
    return getattr(route, "path", None) or UNMATCHED_ROUTE


@app.middleware("http")
async def track_requests(request: Request, call_next):
    """Track request performance and add request ID"""
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request_id_var.set(request_id)

    start_time = time.time()
    path = request.url.path
    method = request.method

    await request_tracker.start_request(request_id, path, method)

    try:
        response = await call_next(request)
        duration = time.time() - start_time

        await request_tracker.end_request(
            request_id, path, method, response.status_code, duration, _route_label(request)
        )

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{duration:.3f}"

        return response

    except Exception as e:
        duration = time.time() - start_time
        await request_tracker.end_request(request_id, path, method, 500, duration, _route_label(request))
        await metrics.increment("http_requests_errors_total")
        logger.error("Request failed",
                     request_id=request_id,
                     error=str(e),
                     path=path,
                     method=method)
        raise


def _error_json(status_code: int, code: str, message: str, details=None, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=error_response(
            code,
            message,
            details=details,
            request_id=request_id_var.get()
        ).model_dump(mode="json"),
        headers=headers,
    )


# Exception handlers
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """Render domain errors into the error envelope"""
    await metrics.increment("app_errors_total", labels={"code": exc.code})
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    if exc.status_code >= 500:
        logger.error("Request error", code=exc.code, message=exc.message, path=request.url.path)
    return _error_json(exc.status_code, exc.code, exc.message, exc.details, headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies and query parameters are client input errors"""
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path"))
    return _error_json(
        400,
        "INVALID_INPUT",
        f"Invalid value for '{field}': {first.get('msg', 'invalid')}" if field else "Invalid request",
        details={"field": field, "reason": first.get("msg", "invalid")},
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    """Unknown routes and methods"""
    code = "NOT_FOUND" if exc.status_code == 404 else "HTTP_ERROR"
    return _error_json(
        exc.status_code,
        code,
        str(exc.detail),
        details={"path": str(request.url.path)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    """Anything unexpected: log the detail, return a generic error"""
    logger.error("Unhandled exception",
                 exc_info=True,
                 error=str(exc),
                 error_type=type(exc).__name__,
                 path=request.url.path)
    error = InternalError()
    return _error_json(error.status_code, error.code, error.message)


app.include_router(v1_router, prefix=settings.api_prefix)


# Root endpoint redirects to docs
@app.get("/", include_in_schema=False)
async def root():
    """Redirect to API documentation"""
    return RedirectResponse(url="/docs")


@app.get("/api",
    summary="API Version Information",
    description="Get available API versions"
)
async def api_versions():
    """Get API version information"""
    return success_response({
        "current_version": "v1",
        "available_versions": ["v1"],
        "links": {
            "docs": "/docs",
            "openapi": "/openapi.json",
            "health": f"{settings.api_prefix}/health"
        }
    })
