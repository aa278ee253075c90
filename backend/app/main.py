"""
Course Portal - FastAPI Application Entry Point.

Middleware order, outermost first: request ID, rate limit, CORS. Every
error response body is {"error": "<message>"}.
"""

import time
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app import config
from app.errors import AppError, RateLimitError
from app.logging_config import (
    setup_logging, get_logger, log_with_context,
    request_id_var, generate_request_id
)
from app.routes import auth, courses, payments, quizzes, announcements, pastpapers, admin, uploads
from app.database import DATABASE_URL, create_tables
from app.services.rate_limit import TokenBucketLimiter

# Import all models so they are registered with Base.metadata
from app import models  # noqa: F401

setup_logging()
logger = get_logger("http")

# Tests and local development run on SQLite without migrations
if DATABASE_URL.startswith("sqlite"):
    logger.info("Using SQLite, creating tables directly")
    create_tables()

app = FastAPI(
    title=config.APP_NAME,
    description=(
        "Course enrollment portal: students pay by bank transfer and upload a receipt, "
        "admins verify the bank reference number, and approved students get the "
        "course materials, recordings and single-attempt quizzes."
    ),
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.state.rate_limiter = TokenBucketLimiter(
    capacity=config.RATE_LIMIT_CAPACITY,
    refill_per_sec=config.RATE_LIMIT_REFILL_PER_SEC,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "Retry-After"]
)


def _client_key(request: Request) -> str:
    """
    Rate limit key for a request: the socket peer, or when that peer is a
    trusted proxy, the nearest untrusted address in X-Forwarded-For.
    """
    peer = request.client.host if request.client else "unknown"
    forwarded = request.headers.get("x-forwarded-for")
    if not forwarded or peer not in config.TRUSTED_PROXIES:
        return peer
    hops = [h.strip() for h in forwarded.split(",") if h.strip()]
    for hop in reversed(hops):
        if hop not in config.TRUSTED_PROXIES:
            return hop
    return hops[0] if hops else peer


# ──────────────────────────────────────────────────────────────
# Rate Limit Middleware
#
# One token per /api/* request from the client IP. Registered before
# the request ID middleware so it runs inside it and rejected requests
# still carry an X-Request-ID.
# ──────────────────────────────────────────────────────────────
@app.middleware("http")
async def rate_limit_middleware(request: Request, call_next):
    limiter = request.app.state.rate_limiter
    if limiter.enabled and request.url.path.startswith("/api/"):
        key = _client_key(request)
        allowed, retry_after = limiter.consume(key)
        if not allowed:
            log_with_context(logger, "WARNING", "Rate limit exceeded",
                             extra_data={"ip": key, "path": request.url.path, "retry_after": retry_after})
            return JSONResponse(
                status_code=429,
                content={"error": "Too many requests, please try again later."},
                headers={"Retry-After": str(retry_after)}
            )
    return await call_next(request)


# ──────────────────────────────────────────────────────────────
# Request ID Middleware
# ──────────────────────────────────────────────────────────────
@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    req_id = generate_request_id()
    request_id_var.set(req_id)

    start_time = time.time()

    log_with_context(logger, "INFO",
        f"Request started: {request.method} {request.url.path}",
        context={"request_id": req_id},
        extra_data={
            "ip": request.client.host if request.client else "unknown",
            "user_agent": request.headers.get("user-agent", ""),
            "query_params": dict(request.query_params)
        })

    response = await call_next(request)

    duration_ms = (time.time() - start_time) * 1000
    response.headers["X-Request-ID"] = req_id

    log_with_context(logger, "INFO",
        f"Request completed: {request.method} {request.url.path} → {response.status_code}",
        context={"request_id": req_id},
        extra_data={
            "duration_ms": round(duration_ms, 2),
            "status_code": response.status_code
        })

    return response


# ──────────────────────────────────────────────────────────────
# Error handlers
# ──────────────────────────────────────────────────────────────
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    headers = None
    if isinstance(exc, RateLimitError):
        headers = {"Retry-After": str(exc.retry_after)}
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message}, headers=headers)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "Invalid request body"
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path"))
        message = "{}: {}".format(field, first.get("msg")) if field else first.get("msg", message)
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)},
                        headers=getattr(exc, "headers", None))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    log_with_context(logger, "ERROR",
        f"Unhandled error: {request.method} {request.url.path}",
        extra_data={"error": str(exc), "type": type(exc).__name__}, exc_info=True)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


app.include_router(auth.router, tags=["Auth"])
app.include_router(courses.router, tags=["Courses"])
app.include_router(payments.router, tags=["Payments"])
app.include_router(quizzes.router, tags=["Quizzes"])
app.include_router(announcements.router, tags=["Announcements"])
app.include_router(pastpapers.router, tags=["Past Papers"])
app.include_router(admin.router, tags=["Admin"])
app.include_router(uploads.router, tags=["Uploads"])


@app.get("/health", tags=["Health"])
def health_check():
    return {"status": "healthy", "service": "course-portal-backend", "version": "1.0.0"}


@app.get("/", tags=["Root"])
def root():
    """Root endpoint with API information."""
    return {
        "service": config.APP_NAME,
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "courses": "GET /api/courses",
            "course_detail": "GET /api/courses/{id}",
            "upload_receipt": "POST /api/payments/upload",
            "verify_reference": "GET /api/payments/verify/{referenceNumber}",
            "approve": "PATCH /api/payments/{id}/approve",
            "reject": "PATCH /api/payments/{id}/reject",
            "unenroll": "DELETE /api/courses/{id}/unenroll",
            "submit_quiz": "POST /api/quizzes/{id}/submit"
        }
    }
