# src/stream_stash_bff/routes_v1.py

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel

from .deps import Services, get_services, optional_session, require_session, session_cookie
from .log import get_logger
from .session_data import LoggedInSession
from .tmdb import SearchResult

logger = get_logger(__name__)

router = APIRouter(prefix="/v1")


# --- Request / response bodies ---

class GoogleLoginResBody(BaseModel):
    google_auth_url: str


class FinishLoginReqBody(BaseModel):
    code: str


class UserInfoResBody(BaseModel):
    logged_in: bool
    email: Optional[str] = None


class UpdateMediaReqBody(BaseModel):
    media: str


class GetMediaResBody(BaseModel):
    media: str


# --- Authentication Routes ---

@router.get("/googleLogin", response_model=GoogleLoginResBody)
async def google_login(response: Response, services: Services = Depends(get_services)):
    start = services.session_manager.begin_login()
    services.codec.set_cookie(response, start.cookie)
    return GoogleLoginResBody(google_auth_url=start.authorization_url)


@router.post("/finishLogin", status_code=status.HTTP_204_NO_CONTENT)
async def finish_login(
    req_body: FinishLoginReqBody,
    response: Response,
    cookie: Optional[str] = Depends(session_cookie),
    services: Services = Depends(get_services),
) -> None:
    logged_in_cookie = await services.session_manager.finish_login(cookie, req_body.code)
    services.codec.set_cookie(response, logged_in_cookie)


@router.delete("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    response: Response,
    cookie: Optional[str] = Depends(session_cookie),
    services: Services = Depends(get_services),
) -> None:
    await services.session_manager.logout(cookie)
    services.codec.delete_cookie(response)


@router.get("/userInfo", response_model=UserInfoResBody)
async def user_info(
    session: Optional[LoggedInSession] = Depends(optional_session),
    services: Services = Depends(get_services),
):
    if session is None:
        return UserInfoResBody(logged_in=False, email=None)
    email = await services.user_info.get_user_email(session.access_token)
    return UserInfoResBody(logged_in=True, email=email)


# --- Media document ---

@router.post("/updateMedia", status_code=status.HTTP_204_NO_CONTENT)
async def update_media(
    req_body: UpdateMediaReqBody,
    session: LoggedInSession = Depends(require_session),
    services: Services = Depends(get_services),
) -> None:
    try:
        await services.media_store.write(session.access_token, req_body.media)
    except ValueError:
        logger.info("Rejected media that is not JSON", operation="v1.update_media")
        raise HTTPException(
            status_code=422,
            detail="media must be a JSON document",
        ) from None


@router.get("/getMedia", response_model=GetMediaResBody)
async def get_media(
    session: LoggedInSession = Depends(require_session),
    services: Services = Depends(get_services),
):
    media = await services.media_store.read(session.access_token)
    return GetMediaResBody(media=media)


# --- Catalog search ---

@router.get("/movieSearch", response_model=SearchResult)
async def movie_search(
    query: str = Query(..., min_length=1),
    page: int = Query(1, ge=1),
    session: LoggedInSession = Depends(require_session),
    services: Services = Depends(get_services),
):
    return await services.tmdb.movie_search(query, page)


@router.get("/tvSearch", response_model=SearchResult)
async def tv_search(
    query: str = Query(..., min_length=1),
    page: int = Query(1, ge=1),
    session: LoggedInSession = Depends(require_session),
    services: Services = Depends(get_services),
):
    return await services.tmdb.tv_search(query, page)
