from __future__ import annotations

import json
from typing import Any
from urllib.parse import parse_qs

import httpx
import pytest
from fastapi.testclient import TestClient

from stream_stash_bff.config import Settings, get_settings
from stream_stash_bff.cookie_codec import CookieCodec, CookiePolicy
from stream_stash_bff.main import create_app

SCOPE = "https://www.googleapis.com/auth/drive.appdata https://www.googleapis.com/auth/userinfo.email openid"
SECRET = "x" * 48
START_TIME = 1_700_000_000


class FakeClock:
    def __init__(self, now: int = START_TIME) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


class FakeUpstream:
    """
    Stands in for Google OAuth, Google Drive and TMDB behind an httpx.MockTransport.
    Responses can be overridden per endpoint; every request is recorded.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.granted_scope = SCOPE
        self.exchange_status = 200
        self.refresh_status = 200
        self.revoke_status = 200
        self.userinfo_status = 200
        self.fail_transport: set[str] = set()
        self.refresh_count = 0
        self.exchange_count = 0
        self.revoke_count = 0
        self.drive_files: dict[str, str] = {}
        self.tmdb_body: dict[str, Any] = {"page": 1, "results": [], "total_pages": 0, "total_results": 0}

    # --- helpers ---

    def calls(self, host: str, path: str | None = None) -> list[httpx.Request]:
        return [
            r for r in self.requests
            if r.url.host == host and (path is None or r.url.path == path)
        ]

    @staticmethod
    def form(request: httpx.Request) -> dict[str, str]:
        return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}

    # --- transport ---

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host, path = request.url.host, request.url.path
        if host in self.fail_transport:
            raise httpx.ConnectError("connection refused", request=request)

        if host == "oauth2.googleapis.com" and path == "/token":
            return self._token(request)
        if host == "oauth2.googleapis.com" and path == "/revoke":
            self.revoke_count += 1
            return httpx.Response(self.revoke_status, json={})
        if host == "www.googleapis.com" and path == "/oauth2/v2/userinfo":
            if self.userinfo_status != 200:
                return httpx.Response(
                    self.userinfo_status,
                    json={"error": {"code": self.userinfo_status, "message": "nope", "status": "UNAUTHENTICATED"}},
                )
            return httpx.Response(
                200,
                json={"id": "1", "email": "user@example.com", "verified_email": True, "picture": "p"},
            )
        if host == "www.googleapis.com" and path.startswith(("/drive/v3/files", "/upload/drive/v3/files")):
            return self._drive(request)
        if host == "api.themoviedb.org":
            return httpx.Response(200, json=self.tmdb_body)
        return httpx.Response(404, json={"error": "not_found"})

    def _token(self, request: httpx.Request) -> httpx.Response:
        form = self.form(request)
        if form["grant_type"] == "authorization_code":
            self.exchange_count += 1
            if self.exchange_status != 200:
                return httpx.Response(
                    self.exchange_status,
                    json={"error": "invalid_grant", "error_description": "Bad Request"},
                )
            return httpx.Response(
                200,
                json={
                    "access_token": "t1",
                    "refresh_token": "r1",
                    "scope": self.granted_scope,
                    "token_type": "Bearer",
                    "expires_in": 3600,
                },
            )
        self.refresh_count += 1
        if self.refresh_status != 200:
            return httpx.Response(
                self.refresh_status,
                json={"error": "invalid_grant", "error_description": "Token has been expired or revoked."},
            )
        return httpx.Response(
            200,
            json={
                "access_token": f"t{self.refresh_count + 1}",
                "scope": self.granted_scope,
                "token_type": "Bearer",
                "expires_in": 3600,
                "id_token": "id",
            },
        )

    def _drive(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if not request.headers.get("authorization", "").startswith("Bearer t"):
            return httpx.Response(401, json={"error": {"code": 401}})
        if request.method == "GET" and path == "/drive/v3/files":
            files = [{"id": fid, "name": "media_db.json"} for fid in self.drive_files]
            return httpx.Response(200, json={"files": files[:1]})
        if request.method == "GET":
            file_id = path.rsplit("/", 1)[-1]
            return httpx.Response(200, text=self.drive_files[file_id])
        if request.method == "POST" and path == "/drive/v3/files":
            file_id = f"file{len(self.drive_files) + 1}"
            self.drive_files[file_id] = ""
            return httpx.Response(200, json={"id": file_id})
        if request.method == "PATCH":
            file_id = path.rsplit("/", 1)[-1]
            self.drive_files[file_id] = request.content.decode()
            return httpx.Response(200, json={"id": file_id})
        return httpx.Response(400, json={})


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        GOOGLE_CLIENT_ID="client-id",
        GOOGLE_CLIENT_SECRET="client-secret",
        GOOGLE_AUTH_SCOPE=SCOPE,
        FRONTEND_BASE_URL="http://localhost:9000",
        SESSION_SECRET_KEY=SECRET,
        TMDB_READ_ACCESS_TOKEN="tmdb-token",
        COOKIE_DOMAIN="",
        COOKIE_SECURE=False,
        LOG_JSON=False,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def http_client(upstream: FakeUpstream) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(upstream.handler))


@pytest.fixture
def codec(clock: FakeClock) -> CookieCodec:
    return CookieCodec(SECRET, CookiePolicy(domain=None, secure=False), clock=clock)


@pytest.fixture
def client(settings: Settings, http_client: httpx.AsyncClient, clock: FakeClock):
    app = create_app(settings, http_client=http_client, clock=clock)
    with TestClient(app) as c:
        yield c


def session_of(codec: CookieCodec, response: httpx.Response):
    value = response.cookies.get("session")
    assert value, f"no session cookie in {response.headers.get_list('set-cookie')}"
    return codec.decode(value)


def cleared_cookie(response: httpx.Response) -> bool:
    return any(
        h.startswith("session=") and "max-age=0" in h.lower()
        for h in response.headers.get_list("set-cookie")
    )


def dumps(obj: Any) -> str:
    return json.dumps(obj, separators=(",", ":"))
