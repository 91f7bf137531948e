# src/stream_stash_bff/main.py

import uuid
from contextlib import asynccontextmanager
from typing import Callable, Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response as StarletteResponse

from . import routes_v1
from .config import Settings, get_settings
from .cookie_codec import CookieCodec, CookiePolicy
from .deps import Services
from .drive_appdata import MediaDocumentStore
from .errors import ApiError, Forbidden
from .google import GoogleOAuthClient, GoogleUserInfoClient
from .log import configure_logging, get_logger, set_request_id
from .session_data import unix_now
from .session_manager import SessionManager
from .tmdb import TmdbClient

logger = get_logger(__name__)

REQUEST_ID_HEADER = "x-request-id"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tags every log line of a request with its X-Request-ID (generated if absent)."""

    async def dispatch(self, request, call_next):
        rid = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        set_request_id(rid)
        request.state.request_id = rid
        try:
            response: StarletteResponse = await call_next(request)
            response.headers.setdefault(REQUEST_ID_HEADER, rid)
            return response
        finally:
            set_request_id(None)


def build_services(
    settings: Settings,
    http_client: httpx.AsyncClient,
    clock: Callable[[], int] = unix_now,
) -> Services:
    codec = CookieCodec(
        settings.SESSION_SECRET_KEY,
        CookiePolicy(domain=settings.COOKIE_DOMAIN or None, secure=settings.COOKIE_SECURE),
        clock=clock,
    )
    oauth_client = GoogleOAuthClient(
        http_client,
        client_id=settings.GOOGLE_CLIENT_ID,
        client_secret=settings.GOOGLE_CLIENT_SECRET,
        redirect_uri=settings.REDIRECT_URL,
        scope=settings.GOOGLE_AUTH_SCOPE,
    )
    return Services(
        settings=settings,
        codec=codec,
        session_manager=SessionManager(
            codec,
            oauth_client,
            clock=clock,
            clear_cookie_on_revoke_failure=settings.LOGOUT_CLEARS_COOKIE_ON_REVOKE_FAILURE,
        ),
        user_info=GoogleUserInfoClient(http_client),
        media_store=MediaDocumentStore(http_client),
        tmdb=TmdbClient(http_client, settings.TMDB_READ_ACCESS_TOKEN),
    )


def create_app(
    settings: Optional[Settings] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    clock: Callable[[], int] = unix_now,
) -> FastAPI:
    """
    Build the application. Without arguments, settings come from the
    environment and a pooled httpx client is owned (and closed) by the app.
    """
    if settings is None:
        settings = get_settings()
    configure_logging(settings.LOG_LEVEL, json=settings.LOG_JSON)

    owns_http_client = http_client is None
    if http_client is None:
        http_client = httpx.AsyncClient(timeout=httpx.Timeout(settings.HTTP_TIMEOUT_SECONDS))

    services = build_services(settings, http_client, clock)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "stream-stash BFF starting up",
            redirect_url=settings.REDIRECT_URL,
            cookie_domain=settings.COOKIE_DOMAIN,
            cookie_secure=settings.COOKIE_SECURE,
            cors_allow_origins=settings.CORS_ALLOW_ORIGINS,
            scope=settings.GOOGLE_AUTH_SCOPE,
        )
        try:
            yield
        finally:
            if owns_http_client:
                await http_client.aclose()
            logger.info("stream-stash BFF shut down")

    app = FastAPI(
        title="stream-stash BFF API",
        description="Backend-For-Frontend for stream-stash, handling Google login and proxying to Drive and TMDB.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ALLOW_ORIGINS,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "X-Request-ID"],
        allow_credentials=True,
    )
    app.add_middleware(RequestContextMiddleware)

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError):
        log = logger.warning if isinstance(exc, Forbidden) else logger.error
        log(
            "Request failed",
            operation=exc.operation,
            error_kind=type(exc).__name__,
            error=exc.message,
            path=request.url.path,
            status_code=exc.status_code,
        )
        response = JSONResponse(status_code=exc.status_code, content={"detail": exc.public_detail})
        if exc.clear_session_cookie:
            services.codec.delete_cookie(response)
        else:
            replacement = exc.replacement_cookie or getattr(request.state, "replacement_session_cookie", None)
            if replacement:
                services.codec.set_cookie(response, replacement)
        return response

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    app.include_router(routes_v1.router)
    return app


def run() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "stream_stash_bff.main:create_app",
        factory=True,
        host=settings.HOST,
        port=settings.PORT,
        log_config=None,
    )


if __name__ == "__main__":
    run()
