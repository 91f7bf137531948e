"""
Session cookie encoding.

The whole session state machine travels in one cookie. Its value is a compact
JWE (``dir`` key management, ``A256GCM`` content encryption) whose plaintext is
the JSON-serialized, explicitly tagged ``Session`` plus an issued-at stamp.
AES-GCM authenticates the ciphertext, so a forged or bit-flipped cookie fails
to decrypt instead of being partially parsed.
"""
import hashlib
import json
from dataclasses import dataclass
from typing import Callable, Optional

from cryptography.exceptions import InvalidTag
from fastapi import Response
from jose import jwe
from jose.constants import ALGORITHMS
from jose.exceptions import JOSEError
from jose.utils import base64url_decode, base64url_encode
from pydantic import ValidationError

from .errors import CookieDecodeError, CookieEncodeError
from .session_data import Session, session_adapter, unix_now


COOKIE_NAME = "session"
COOKIE_PATH = "/"
COOKIE_SAME_SITE = "strict"
COOKIE_HTTP_ONLY = True
# 2678400 seconds = 31 days
COOKIE_MAX_AGE = 2678400


@dataclass(frozen=True)
class CookiePolicy:
    domain: Optional[str]
    secure: bool
    name: str = COOKIE_NAME
    path: str = COOKIE_PATH
    same_site: str = COOKIE_SAME_SITE
    http_only: bool = COOKIE_HTTP_ONLY
    max_age: int = COOKIE_MAX_AGE


def derive_key(secret: str) -> bytes:
    """Stretch the configured secret into the 256-bit key A256GCM needs."""
    return hashlib.sha256(secret.encode("utf-8")).digest()


def is_canonical_compact_jwe(value: str) -> bool:
    """
    True when ``value`` has five segments, each in the exact unpadded base64url
    form ``encode`` produces. The last character of a segment can carry unused
    low bits that a lenient decoder ignores, so a cookie differing only there
    would otherwise decrypt like the original.
    """
    segments = value.split(".")
    if len(segments) != 5:
        return False
    for segment in segments:
        raw = segment.encode("ascii")
        if base64url_encode(base64url_decode(raw)) != raw:
            return False
    return True


class CookieCodec:
    def __init__(
        self,
        secret: str,
        policy: CookiePolicy,
        clock: Callable[[], int] = unix_now,
    ) -> None:
        self._key = derive_key(secret)
        self.policy = policy
        self._clock = clock

    def encode(self, session: Session) -> str:
        try:
            payload = json.dumps(
                {"iat": self._clock(), "session": session.model_dump(mode="json")},
                separators=(",", ":"),
            )
            token = jwe.encrypt(
                payload,
                self._key,
                encryption=ALGORITHMS.A256GCM,
                algorithm=ALGORITHMS.DIR,
            )
        except (JOSEError, TypeError, ValueError) as e:
            raise CookieEncodeError(f"Could not encode session cookie: {e}", "cookie.encode") from e
        return token.decode("ascii") if isinstance(token, bytes) else token

    def decode(self, value: Optional[str]) -> Session:
        """
        Returns the session sealed in ``value``.
        Raises CookieDecodeError for anything that is not a live cookie we issued.
        """
        if not value:
            raise CookieDecodeError("No session cookie present", "cookie.decode")
        try:
            if not is_canonical_compact_jwe(value):
                raise CookieDecodeError("Session cookie is not a canonical compact JWE", "cookie.decode")
            header = jwe.get_unverified_header(value)
            if header.get("alg") != ALGORITHMS.DIR or header.get("enc") != ALGORITHMS.A256GCM:
                raise CookieDecodeError("Session cookie uses an unexpected algorithm", "cookie.decode")
            plaintext = jwe.decrypt(value, self._key)
            if plaintext is None:
                raise CookieDecodeError("Session cookie did not decrypt", "cookie.decode")
            payload = json.loads(plaintext)
            issued_at = int(payload["iat"])
            session = session_adapter.validate_python(payload["session"])
        except CookieDecodeError:
            raise
        except (JOSEError, InvalidTag, ValidationError, AttributeError, KeyError, TypeError, ValueError) as e:
            raise CookieDecodeError(
                f"Could not read session cookie: {type(e).__name__}", "cookie.decode"
            ) from e

        if self._clock() - issued_at >= self.policy.max_age:
            raise CookieDecodeError("Session cookie is past its max age", "cookie.decode")
        return session

    def set_cookie(self, response: Response, value: str) -> None:
        response.set_cookie(
            key=self.policy.name,
            value=value,
            max_age=self.policy.max_age,
            path=self.policy.path,
            domain=self.policy.domain,
            secure=self.policy.secure,
            httponly=self.policy.http_only,
            samesite=self.policy.same_site,
        )

    def delete_cookie(self, response: Response) -> None:
        response.delete_cookie(
            key=self.policy.name,
            path=self.policy.path,
            domain=self.policy.domain,
            secure=self.policy.secure,
            httponly=self.policy.http_only,
            samesite=self.policy.same_site,
        )
