"""
Session lifecycle for the Google login.

States, as seen through the ``session`` cookie:

    Anonymous         no cookie, or one that does not decode
    AwaitingCallback  TempCodeVerifierSession
    Authenticated     LoggedInSession, Fresh while now < expires_at, else Expired

Every method takes the raw cookie value and returns what the caller should do
with the response cookie. Nothing is stored server side, so the manager holds
only immutable collaborators and can be shared by concurrent requests.
"""
from dataclasses import dataclass
from typing import Callable, Optional

from . import pkce
from .cookie_codec import CookieCodec
from .errors import ApiError, CookieDecodeError, Forbidden, InternalFault
from .google import GoogleOAuthClient
from .log import get_logger
from .session_data import (
    LoggedInSession,
    TempCodeVerifierSession,
    expires_at,
    unix_now,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class LoginStart:
    authorization_url: str
    cookie: str


@dataclass(frozen=True)
class ResolvedSession:
    """
    A usable LoggedInSession. ``replacement_cookie`` is set when a refresh
    happened and the response must overwrite the client's cookie.
    """
    session: LoggedInSession
    replacement_cookie: Optional[str] = None

    @property
    def refreshed(self) -> bool:
        return self.replacement_cookie is not None


class SessionManager:
    def __init__(
        self,
        codec: CookieCodec,
        oauth_client: GoogleOAuthClient,
        clock: Callable[[], int] = unix_now,
        clear_cookie_on_revoke_failure: bool = True,
    ) -> None:
        self.codec = codec
        self.oauth_client = oauth_client
        self.clock = clock
        self.clear_cookie_on_revoke_failure = clear_cookie_on_revoke_failure

    def _decode_logged_in(self, cookie: Optional[str], operation: str) -> LoggedInSession:
        try:
            session = self.codec.decode(cookie)
        except CookieDecodeError as e:
            logger.info("No usable session cookie", operation=operation, reason=e.message)
            raise Forbidden(e.message, operation) from e
        if not isinstance(session, LoggedInSession):
            logger.info("Session cookie is not a logged-in session", operation=operation, kind=session.kind)
            raise Forbidden("Session cookie holds the wrong session kind", operation)
        return session

    def begin_login(self) -> LoginStart:
        pair = pkce.generate()
        authorization_url = self.oauth_client.build_authorization_url(pair.challenge)
        cookie = self.codec.encode(TempCodeVerifierSession(code_verifier=pair.verifier))
        logger.info("Login started", operation="session.begin_login")
        return LoginStart(authorization_url=authorization_url, cookie=cookie)

    async def finish_login(self, cookie: Optional[str], code: str) -> str:
        """Exchange ``code`` for tokens. Returns the LoggedIn cookie value."""
        operation = "session.finish_login"
        try:
            session = self.codec.decode(cookie)
        except CookieDecodeError as e:
            logger.warning("Finish login without a readable cookie", operation=operation, reason=e.message)
            raise Forbidden(e.message, operation) from e
        if not isinstance(session, TempCodeVerifierSession):
            logger.warning("Finish login with wrong session kind", operation=operation, kind=session.kind)
            raise Forbidden("Session cookie does not hold a code verifier", operation)

        try:
            token_set = await self.oauth_client.exchange_code(code, session.code_verifier)
        except ApiError as e:
            # the verifier is single use, a failed exchange consumes it too
            logger.warning("Could not authenticate with Google", operation=operation, error=e.message)
            e.clear_session_cookie = True
            raise

        # exchange_code guarantees the refresh token is present
        logged_in = LoggedInSession(
            access_token=token_set.access_token,
            refresh_token=token_set.refresh_token,
            expires_at=expires_at(token_set.expires_in, self.clock()),
        )
        logger.info("Login finished", operation=operation, expires_at=logged_in.expires_at)
        return self.codec.encode(logged_in)

    async def refresh(self, session: LoggedInSession) -> ResolvedSession:
        operation = "session.refresh"
        try:
            token_set = await self.oauth_client.refresh(session.refresh_token)
        except ApiError as e:
            logger.warning("Could not refresh Google login", operation=operation, error=e.message)
            if isinstance(e, InternalFault):
                raise Forbidden(f"Refresh failed: {e.message}", operation) from e
            raise

        refreshed = LoggedInSession(
            access_token=token_set.access_token,
            refresh_token=session.refresh_token,
            expires_at=expires_at(token_set.expires_in, self.clock()),
        )
        try:
            cookie = self.codec.encode(refreshed)
        except ApiError as e:
            logger.error("Could not encode refreshed session", operation=operation, error=e.message)
            raise Forbidden(e.message, operation) from e
        return ResolvedSession(session=refreshed, replacement_cookie=cookie)

    async def resolve(self, cookie: Optional[str]) -> ResolvedSession:
        """
        The precondition for every protected operation: a LoggedIn session
        whose access token is not expired, refreshing it first if needed.
        Any failure is Forbidden; the stale cookie is left for the client.
        """
        session = self._decode_logged_in(cookie, "session.resolve")
        if session.is_expired(self.clock()):
            return await self.refresh(session)
        return ResolvedSession(session=session)

    async def resolve_optional(self, cookie: Optional[str]) -> Optional[ResolvedSession]:
        try:
            return await self.resolve(cookie)
        except Forbidden:
            return None

    async def logout(self, cookie: Optional[str]) -> None:
        """
        Revoke the access token of the resolved session, refreshing it first
        when it has expired. The caller clears the cookie on success.

        When the revoke fails the error propagates; ``clear_session_cookie`` on
        it tells the caller whether the cookie is still cleared, and
        ``replacement_cookie`` carries a refresh made on the way.
        """
        operation = "session.logout"
        resolved = await self.resolve(cookie)
        try:
            await self.oauth_client.revoke(resolved.session.access_token)
        except ApiError as e:
            logger.warning(
                "Could not revoke Google token",
                operation=operation,
                error=e.message,
                clearing_cookie=self.clear_cookie_on_revoke_failure,
            )
            e.clear_session_cookie = self.clear_cookie_on_revoke_failure
            if not e.clear_session_cookie:
                e.replacement_cookie = resolved.replacement_cookie
            raise
        logger.info("Logged out", operation=operation, refreshed=resolved.refreshed)
