# src/stream_stash_bff/google.py

from typing import Any, Dict, FrozenSet, Optional
from urllib.parse import urlencode, urlsplit

import httpx
from pydantic import BaseModel, ValidationError

from .errors import InternalFault, ProviderRejected, ProviderTransportError, ScopeMismatch
from .log import get_logger

logger = get_logger(__name__)

AUTHORIZATION_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
REVOKE_URL = "https://oauth2.googleapis.com/revoke"
USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"


class TokenSet(BaseModel):
    access_token: str
    scope: str
    expires_in: int
    token_type: Optional[str] = None
    # Google only returns this on the authorization-code grant
    refresh_token: Optional[str] = None
    id_token: Optional[str] = None


class GoogleUserInfo(BaseModel):
    email: str
    id: Optional[str] = None
    picture: Optional[str] = None
    verified_email: Optional[bool] = None


def scope_set(scope: str) -> FrozenSet[str]:
    return frozenset(scope.split())


def compare_scope(requested: str, received: str, operation: str) -> None:
    """
    Raises ScopeMismatch unless both space-delimited scope strings name the same set.
    Order and duplicates are irrelevant.
    """
    requested_set = scope_set(requested)
    received_set = scope_set(received)
    if requested_set != received_set:
        logger.error(
            "Scope returned by Google not the same as requested",
            operation=operation,
            requested=sorted(requested_set),
            received=sorted(received_set),
        )
        raise ScopeMismatch(requested_set, received_set, operation)


def _provider_error(body: Any) -> str:
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            # userinfo style: {"error": {"code": 401, "message": ..., "status": ...}}
            return f"{error.get('status')}: {error.get('message')}"
        return f"{error}: {body.get('error_description')}"
    return str(body)


async def send_json(
    http_client: httpx.AsyncClient,
    request: httpx.Request,
    operation: str,
) -> Dict[str, Any]:
    """
    Sends ``request`` and returns its JSON body.

    Transport failures, timeouts, 5xx answers and unparseable bodies raise
    ProviderTransportError. A 4xx answer is the provider refusing, which raises
    ProviderRejected.
    """
    try:
        response = await http_client.send(request)
    except httpx.HTTPError as e:
        raise ProviderTransportError(f"HTTP error talking to {request.url.host}: {e!r}", operation) from e

    if response.status_code >= 500:
        raise ProviderTransportError(
            f"{request.url.host} answered {response.status_code}", operation
        )

    try:
        body = response.json()
    except ValueError as e:
        if response.is_success:
            raise ProviderTransportError(
                f"JSON deserialize error from {request.url.host}: {e}", operation
            ) from e
        body = response.text

    if not response.is_success:
        raise ProviderRejected(
            f"{request.url.host} rejected the request ({response.status_code}): {_provider_error(body)}",
            operation,
        )
    if not isinstance(body, dict):
        raise ProviderTransportError(f"Unexpected JSON body from {request.url.host}", operation)
    return body


class GoogleOAuthClient:
    """
    The identity-provider half of the login flow: authorization URL, code
    exchange, token refresh and revocation. Shares the process-wide
    ``httpx.AsyncClient`` and holds no per-user state.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        scope: str,
        authorization_url: str = AUTHORIZATION_URL,
        token_url: str = TOKEN_URL,
        revoke_url: str = REVOKE_URL,
    ) -> None:
        self.http_client = http_client
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.scope = scope
        self.authorization_url = authorization_url
        self.token_url = token_url
        self.revoke_url = revoke_url

    def build_authorization_url(self, code_challenge: str) -> str:
        parts = urlsplit(self.authorization_url)
        if parts.scheme != "https" or not parts.netloc:
            raise InternalFault(
                f"URL Parse Error: {self.authorization_url!r} is not an absolute https URL",
                "google.build_authorization_url",
            )
        query = urlencode(
            {
                "client_id": self.client_id,
                "redirect_uri": self.redirect_uri,
                "response_type": "code",
                "prompt": "consent",
                "access_type": "offline",
                "scope": self.scope,
                "code_challenge": code_challenge,
                "code_challenge_method": "S256",
            }
        )
        separator = "&" if parts.query else "?"
        return f"{self.authorization_url}{separator}{query}"

    async def _token_request(self, form: Dict[str, str], operation: str) -> TokenSet:
        request = self.http_client.build_request("POST", self.token_url, data=form)
        body = await send_json(self.http_client, request, operation)
        try:
            token_set = TokenSet.model_validate(body)
        except ValidationError as e:
            raise ProviderTransportError(f"Token response did not match schema: {e}", operation) from e
        compare_scope(self.scope, token_set.scope, operation)
        return token_set

    async def exchange_code(self, code: str, code_verifier: str) -> TokenSet:
        operation = "google.exchange_code"
        token_set = await self._token_request(
            {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "code": code,
                "code_verifier": code_verifier,
                "grant_type": "authorization_code",
                "redirect_uri": self.redirect_uri,
            },
            operation,
        )
        if not token_set.refresh_token:
            raise ProviderTransportError("Token response is missing refresh_token", operation)
        logger.info("Exchanged authorization code for tokens", operation=operation)
        return token_set

    async def refresh(self, refresh_token: str) -> TokenSet:
        operation = "google.refresh"
        token_set = await self._token_request(
            {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
            },
            operation,
        )
        logger.info("Refreshed access token", operation=operation)
        return token_set

    async def revoke(self, access_token: str) -> None:
        operation = "google.revoke"
        request = self.http_client.build_request(
            "POST", self.revoke_url, data={"token": access_token}
        )
        # The body Google sends back is irrelevant, only the status matters
        try:
            response = await self.http_client.send(request)
        except httpx.HTTPError as e:
            raise ProviderTransportError(f"HTTP error revoking token: {e!r}", operation) from e
        if response.status_code >= 500:
            raise ProviderTransportError(f"Revoke answered {response.status_code}", operation)
        if not response.is_success:
            raise ProviderRejected(f"Revoke rejected with {response.status_code}", operation)
        logger.info("Revoked access token", operation=operation)


class GoogleUserInfoClient:
    def __init__(self, http_client: httpx.AsyncClient, userinfo_url: str = USERINFO_URL) -> None:
        self.http_client = http_client
        self.userinfo_url = userinfo_url

    async def get_user_info(self, access_token: str) -> GoogleUserInfo:
        operation = "google.userinfo"
        request = self.http_client.build_request(
            "GET",
            self.userinfo_url,
            headers={"Authorization": f"Bearer {access_token}"},
        )
        body = await send_json(self.http_client, request, operation)
        try:
            return GoogleUserInfo.model_validate(body)
        except ValidationError as e:
            raise ProviderTransportError(f"Userinfo response did not match schema: {e}", operation) from e

    async def get_user_email(self, access_token: str) -> str:
        return (await self.get_user_info(access_token)).email
