from __future__ import annotations

import time
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.exception_handlers import (
    http_exception_handler,
    request_validation_exception_handler,
)
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from starlette.middleware.trustedhost import TrustedHostMiddleware
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from steadfast_api.core.config import Settings
from steadfast_api.db import SessionLocal
from steadfast_api.errors import (
    BackdatedCheckInError,
    FeatureLockedError,
    InvalidMonthError,
    ProgressConflictError,
    ProgressError,
)
from steadfast_api.eventlog import log_json


def _parse_csv(value: str) -> list[str]:
    raw = str(value or "").strip()
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


def _progress_error_response(exc: ProgressError) -> JSONResponse:
    if isinstance(exc, InvalidMonthError):
        return JSONResponse(status_code=400, content={"detail": str(exc)})
    if isinstance(exc, FeatureLockedError):
        return JSONResponse(
            status_code=403,
            content={
                "detail": str(exc),
                "code": "FEATURE_LOCKED",
                "feature": exc.feature,
                "threshold_days": exc.threshold_days,
            },
        )
    if isinstance(exc, BackdatedCheckInError):
        return JSONResponse(
            status_code=409,
            content={
                "detail": str(exc),
                "code": "BACKDATED_CHECKIN",
                "last_checkin_date": exc.last_day.isoformat(),
            },
        )
    if isinstance(exc, ProgressConflictError):
        return JSONResponse(
            status_code=409,
            content={"detail": str(exc), "code": "PROGRESS_CONFLICT", "retryable": True},
        )
    return JSONResponse(status_code=400, content={"detail": str(exc)})


def _with_request_id(request: Request, resp: Response) -> Response:
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        resp.headers["X-Request-Id"] = str(request_id)
    return resp


def create_app(*, settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings()

    app = FastAPI(
        title="Steadfast API",
        version="0.1.0",
        openapi_url="/api/openapi.json",
        docs_url="/docs",
    )

    if settings.trust_proxy_headers:
        # Trust X-Forwarded-* headers when behind a reverse proxy.
        app.add_middleware(ProxyHeadersMiddleware, trusted_hosts="*")

    allowed_hosts = _parse_csv(settings.allowed_hosts) or ["*"]
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=allowed_hosts)

    cors_origins = _parse_csv(settings.cors_allowed_origins)
    if cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.middleware("http")
    async def _request_context(request: Request, call_next):
        start = time.perf_counter()
        request_id = request.headers.get("x-request-id") or f"req_{uuid4().hex}"
        request.state.request_id = request_id

        def _access_log(status: int) -> None:
            if not settings.log_json:
                return
            log_json(
                {
                    "level": "error" if status >= 500 else "info",
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "status": status,
                    "duration_ms": round((time.perf_counter() - start) * 1000.0, 2),
                }
            )

        try:
            response = await call_next(request)
        except Exception:  # noqa: BLE001
            _access_log(500)
            raise

        response.headers["X-Request-Id"] = request_id
        _access_log(response.status_code)
        return response

    @app.exception_handler(HTTPException)
    async def _with_request_id_http_exception(request: Request, exc: HTTPException):
        return _with_request_id(request, await http_exception_handler(request, exc))

    @app.exception_handler(RequestValidationError)
    async def _with_request_id_validation_error(
        request: Request, exc: RequestValidationError
    ):
        return _with_request_id(
            request, await request_validation_exception_handler(request, exc)
        )

    @app.exception_handler(ProgressError)
    async def _progress_error(request: Request, exc: ProgressError):
        return _with_request_id(request, _progress_error_response(exc))

    @app.exception_handler(Exception)
    async def _with_request_id_unhandled(request: Request, exc: Exception):
        request_id = getattr(request.state, "request_id", None)
        if settings.log_json:
            log_json(
                {
                    "level": "error",
                    "request_id": request_id,
                    "path": request.url.path,
                    "error": f"{type(exc).__name__}: {str(exc)[:400]}",
                }
            )
        return _with_request_id(
            request,
            JSONResponse(
                status_code=500,
                content={"detail": "Internal Server Error", "request_id": request_id},
            ),
        )

    @app.get("/api/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/api/ready")
    def ready() -> dict[str, object]:
        db_ok = False
        db_err: str | None = None
        try:
            with SessionLocal() as session:
                session.execute(text("SELECT 1"))
            db_ok = True
        except Exception as exc:  # noqa: BLE001
            db_err = str(exc)[:400]
        return {"status": "ok" if db_ok else "fail", "db": {"ok": db_ok, "error": db_err}}

    if settings.seed_on_boot:

        @app.on_event("startup")
        def _seed_catalog() -> None:
            from steadfast_api.achievement_catalog import seed_default_achievements

            with SessionLocal() as session:
                added = seed_default_achievements(session)
                session.commit()
            if settings.log_json and added:
                log_json({"level": "info", "msg": "achievements_seeded", "codes": added})

    from steadfast_api.routers import accountability, auth, notifications, progress

    app.include_router(auth.router)
    app.include_router(progress.router)
    app.include_router(accountability.router)
    app.include_router(notifications.router)

    return app


app = create_app()
