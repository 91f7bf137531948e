# src/stream_stash_bff/deps.py

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request, Response

from .config import Settings
from .cookie_codec import CookieCodec
from .drive_appdata import MediaDocumentStore
from .google import GoogleUserInfoClient
from .session_data import LoggedInSession
from .session_manager import ResolvedSession, SessionManager
from .tmdb import TmdbClient


@dataclass(frozen=True)
class Services:
    """Process-wide collaborators, built once by create_app and read-only afterwards."""
    settings: Settings
    codec: CookieCodec
    session_manager: SessionManager
    user_info: GoogleUserInfoClient
    media_store: MediaDocumentStore
    tmdb: TmdbClient


def get_services(request: Request) -> Services:
    return request.app.state.services


def session_cookie(request: Request, services: Services = Depends(get_services)) -> Optional[str]:
    return request.cookies.get(services.codec.policy.name)


def _apply_refresh(
    resolved: ResolvedSession, request: Request, response: Response, services: Services
) -> None:
    if resolved.replacement_cookie is not None:
        services.codec.set_cookie(response, resolved.replacement_cookie)
        # kept for the error handler, so a failure later in the route does not drop it
        request.state.replacement_session_cookie = resolved.replacement_cookie


# --- Dependencies for checking authentication ---

async def require_session(
    request: Request,
    response: Response,
    cookie: Optional[str] = Depends(session_cookie),
    services: Services = Depends(get_services),
) -> LoggedInSession:
    """
    A fresh LoggedInSession or Forbidden. A refresh done on the way sets the
    replacement cookie on this request's response.
    """
    resolved = await services.session_manager.resolve(cookie)
    _apply_refresh(resolved, request, response, services)
    return resolved.session


async def optional_session(
    request: Request,
    response: Response,
    cookie: Optional[str] = Depends(session_cookie),
    services: Services = Depends(get_services),
) -> Optional[LoggedInSession]:
    resolved = await services.session_manager.resolve_optional(cookie)
    if resolved is None:
        return None
    _apply_refresh(resolved, request, response, services)
    return resolved.session
