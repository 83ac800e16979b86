from __future__ import annotations

import time
from uuid import uuid4

import orjson
from fastapi import APIRouter, FastAPI, HTTPException, Request, Response
from fastapi.exception_handlers import (
    http_exception_handler,
    request_validation_exception_handler,
)
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.responses import PlainTextResponse
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from starlette.middleware.trustedhost import TrustedHostMiddleware
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from questline_api.core.config import Settings
from questline_api.db import SessionLocal
from questline_api.errors import QuestlineError
from questline_api.metrics import observe_http_request, render_prometheus_metrics


REQUEST_ID_HEADER = "X-Request-Id"


def _parse_csv(value: str) -> list[str]:
    raw = str(value or "").strip()
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


def _stamp(response: Response, request: Request) -> Response:
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        response.headers[REQUEST_ID_HEADER] = str(request_id)
    return response


def _detail(request: Request, status_code: int, detail: str) -> Response:
    return _stamp(JSONResponse(status_code=status_code, content={"detail": detail}), request)


def _finish_request(
    settings: Settings, request: Request, *, status_code: int, started: float
) -> None:
    duration_ms = (time.perf_counter() - started) * 1000.0
    route = request.scope.get("route")
    observe_http_request(
        path=str(getattr(route, "path", None) or request.url.path),
        method=request.method,
        status=str(status_code),
        duration_ms=duration_ms,
    )
    if settings.log_json:
        line = {
            "level": "error" if status_code >= 500 else "info",
            "request_id": getattr(request.state, "request_id", None),
            "method": request.method,
            "path": request.url.path,
            "status": status_code,
            "duration_ms": round(duration_ms, 2),
        }
        print(orjson.dumps(line).decode("utf-8"))


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(QuestlineError)
    async def _questline_error(request: Request, exc: QuestlineError):
        return _detail(request, int(exc.status_code), exc.code)

    # Lock waits that outlast the busy timeout; the client may retry.
    @app.exception_handler(OperationalError)
    async def _store_busy(request: Request, exc: OperationalError):
        return _detail(request, 503, "store_busy")

    @app.exception_handler(HTTPException)
    async def _http_error(request: Request, exc: HTTPException):
        return _stamp(await http_exception_handler(request, exc), request)

    @app.exception_handler(RequestValidationError)
    async def _invalid_request(request: Request, exc: RequestValidationError):
        return _stamp(await request_validation_exception_handler(request, exc), request)

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception):
        return _detail(request, 500, "Internal Server Error")


def _store_error() -> str | None:
    try:
        with SessionLocal() as session:
            session.execute(text("SELECT 1"))
    except Exception as exc:  # noqa: BLE001
        return str(exc)[:400]
    return None


service_router = APIRouter(prefix="/api", tags=["service"])


@service_router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@service_router.get("/ready")
def ready() -> dict[str, object]:
    err = _store_error()
    return {"status": "fail" if err else "ok", "db": {"ok": err is None, "error": err}}


@service_router.get("/metrics", response_class=PlainTextResponse)
def metrics() -> Response:
    with SessionLocal() as session:
        body = render_prometheus_metrics(db=session)
    return PlainTextResponse(content=body, media_type="text/plain; version=0.0.4")


def _install_middleware(app: FastAPI, settings: Settings) -> None:
    if settings.trust_proxy_headers:
        app.add_middleware(ProxyHeadersMiddleware, trusted_hosts="*")
    app.add_middleware(
        TrustedHostMiddleware, allowed_hosts=_parse_csv(settings.allowed_hosts) or ["*"]
    )
    origins = _parse_csv(settings.cors_allowed_origins)
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.middleware("http")
    async def _request_context(request: Request, call_next):
        started = time.perf_counter()
        request.state.request_id = (
            request.headers.get(REQUEST_ID_HEADER) or f"req_{uuid4().hex}"
        )
        try:
            response = await call_next(request)
        except Exception:  # noqa: BLE001
            _finish_request(settings, request, status_code=500, started=started)
            raise
        _finish_request(settings, request, status_code=response.status_code, started=started)
        return _stamp(response, request)


def create_app(*, settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings()
    app = FastAPI(
        title="Questline API",
        version="0.1.0",
        openapi_url="/api/openapi.json",
        docs_url="/docs",
    )
    _install_middleware(app, settings)
    _install_error_handlers(app)

    from questline_api.routers import catalog, friends, profiles, quests

    for router in (
        service_router,
        profiles.router,
        friends.router,
        quests.router,
        quests.ops_router,
        catalog.router,
    ):
        app.include_router(router)
    return app


app = create_app()
