import os
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime, timezone
from uuid import uuid4

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session

from app.api.activity_logs import router as activity_logs_router
from app.api.auth import router as auth_router
from app.api.public import router as public_router
from app.api.roles import router as roles_router
from app.api.users import router as users_router
from app.core.admin_sync import env_flag, sync_super_admin
from app.core.api_response import error_json_response, get_request_id, success_response_payload
from app.core.metrics import increment_counter, prometheus_text, snapshot_metrics
from app.core.observability import format_fields
from app.core.permission_gate import create_permission_gate
from app.core.security import require_permission
from app.db.models.user import User
from app.db.session import SessionLocal

logger = logging.getLogger(__name__)
if not logging.getLogger().handlers:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

CORS_ORIGINS = [x.strip() for x in os.getenv("CORS_ORIGINS", "*").split(",") if x.strip()]


@asynccontextmanager
async def lifespan(_: FastAPI):
    admin_username = os.getenv("ADMIN_USERNAME", "").strip()
    admin_password = os.getenv("ADMIN_PASSWORD")
    if admin_username and admin_password:
        db: Session = SessionLocal()
        try:
            result = sync_super_admin(
                db,
                admin_username,
                admin_password,
                seed_roles=env_flag("SEED_DEFAULT_ROLES"),
            )
            logger.info("admin_sync %s", format_fields(username=admin_username, **asdict(result)))
        finally:
            db.close()

    yield


app = FastAPI(title="Clinic POS API", lifespan=lifespan)
app.include_router(auth_router)
app.include_router(public_router)
app.include_router(roles_router)
app.include_router(users_router)
app.include_router(activity_logs_router)

# Registered first so it sits innermost: CORS preflights never reach it and
# request_context_middleware has already assigned the request id.
app.middleware("http")(create_permission_gate())

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or uuid4().hex
    request.state.request_id = request_id
    started_at = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - started_at) * 1000
    response.headers["X-Request-ID"] = request_id
    if not request.url.path.startswith("/api/metrics"):
        increment_counter(
            "http_requests_total",
            method=request.method.upper(),
            status=str(response.status_code),
        )
    logger.info(
        "http_request %s",
        format_fields(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=f"{duration_ms:.2f}",
        ),
    )
    return response


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    detail = exc.detail
    message = detail if isinstance(detail, str) else "Request failed"
    increment_counter(
        "http_errors_total",
        code=str(exc.status_code),
        method=request.method.upper(),
    )
    return error_json_response(
        request,
        status_code=exc.status_code,
        code=f"http_{exc.status_code}",
        message=message,
        details=detail,
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    increment_counter(
        "http_errors_total",
        code="422",
        method=request.method.upper(),
    )
    return error_json_response(
        request,
        status_code=422,
        code="validation_error",
        message="Validation error",
        details=jsonable_encoder(exc.errors()),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    increment_counter(
        "http_errors_total",
        code="500",
        method=request.method.upper(),
    )
    logger.exception("Unhandled error request_id=%s", get_request_id(request), exc_info=exc)
    return error_json_response(
        request,
        status_code=500,
        code="internal_error",
        message="Internal server error",
    )


@app.get("/api/health")
def health(request: Request):
    return {
        "ok": True,
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "request_id": get_request_id(request),
    }


@app.get("/api/metrics")
def metrics(request: Request, _: User = Depends(require_permission("settings", "view"))):
    return success_response_payload(request, data={"counters": snapshot_metrics()})


@app.get("/api/metrics/prometheus")
def metrics_prometheus(_: User = Depends(require_permission("settings", "view"))):
    return PlainTextResponse(content=prometheus_text(), media_type="text/plain; version=0.0.4; charset=utf-8")
