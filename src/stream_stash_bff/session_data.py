# src/stream_stash_bff/session_data.py

import time
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

# Seconds shaved off the provider's token lifetime so a session counts as
# expired before Google actually invalidates the access token.
EXPIRY_TOLERANCE_SECONDS = 100


class TempCodeVerifierSession(BaseModel):
    """
    Held between "login started" and "login finished".
    Only the PKCE verifier is kept; it is presented back to Google on code exchange.
    """
    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["temp_code_verifier"] = "temp_code_verifier"
    code_verifier: str


class LoggedInSession(BaseModel):
    """
    An authenticated session. Replaced wholesale on refresh, never edited in place.
    """
    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["logged_in"] = "logged_in"
    access_token: str
    refresh_token: str
    expires_at: int  # unix timestamp, already reduced by EXPIRY_TOLERANCE_SECONDS

    def is_expired(self, now: int) -> bool:
        return now >= self.expires_at


Session = Annotated[
    Union[TempCodeVerifierSession, LoggedInSession],
    Field(discriminator="kind"),
]

session_adapter: TypeAdapter = TypeAdapter(Session)


def expires_at(expires_in: int, now: int) -> int:
    return now + expires_in - EXPIRY_TOLERANCE_SECONDS


def unix_now() -> int:
    return int(time.time())
