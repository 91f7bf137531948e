"""PKCE (Proof Key for Code Exchange) verifier and S256 challenge generation."""

import base64
import hashlib
import secrets
import string
from dataclasses import dataclass

# RFC 7636 section 4.1 unreserved characters
VERIFIER_ALPHABET = string.ascii_letters + string.digits + "-._~"
VERIFIER_LENGTH = 128
CHALLENGE_METHOD = "S256"


@dataclass(frozen=True)
class PKCEPair:
    verifier: str
    challenge: str
    method: str = CHALLENGE_METHOD


def generate_code_verifier(length: int = VERIFIER_LENGTH) -> str:
    if not 43 <= length <= 128:
        raise ValueError("PKCE code verifier length must be between 43 and 128")
    return "".join(secrets.choice(VERIFIER_ALPHABET) for _ in range(length))


def generate_code_challenge(verifier: str) -> str:
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def generate() -> PKCEPair:
    verifier = generate_code_verifier()
    return PKCEPair(verifier=verifier, challenge=generate_code_challenge(verifier))
