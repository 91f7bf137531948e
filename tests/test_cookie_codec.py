"""Tests for the encrypted session cookie."""
import json

import pytest
from jose import jwe
from starlette.responses import Response

from stream_stash_bff.cookie_codec import COOKIE_MAX_AGE, CookieCodec, CookiePolicy, derive_key
from stream_stash_bff.errors import CookieDecodeError, Forbidden
from stream_stash_bff.session_data import LoggedInSession, TempCodeVerifierSession

from conftest import SECRET


LOGGED_IN = LoggedInSession(access_token="t1", refresh_token="r1", expires_at=1_700_003_500)
TEMP = TempCodeVerifierSession(code_verifier="v1")
BASE64URL_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_"


class TestRoundTrip:
    @pytest.mark.parametrize("session", [LOGGED_IN, TEMP])
    def test_decode_returns_encoded_session(self, codec, session):
        decoded = codec.decode(codec.encode(session))
        assert decoded == session
        assert type(decoded) is type(session)

    def test_variant_is_tagged_in_payload(self, codec):
        plaintext = jwe.decrypt(codec.encode(TEMP), derive_key(SECRET))
        payload = json.loads(plaintext)
        assert payload["session"] == {"kind": "temp_code_verifier", "code_verifier": "v1"}

    def test_cookie_does_not_leak_tokens(self, codec):
        value = codec.encode(LOGGED_IN)
        assert "refresh_token" not in value


class TestRejection:
    @pytest.mark.parametrize("value", [None, "", "abc", "a.b.c.d.e", "session"])
    def test_garbage_is_rejected(self, codec, value):
        with pytest.raises(CookieDecodeError):
            codec.decode(value)

    def test_decode_error_is_forbidden(self):
        assert issubclass(CookieDecodeError, Forbidden)

    def test_flipped_ciphertext_is_rejected(self, codec):
        value = codec.encode(LOGGED_IN)
        header, key, iv, ciphertext, tag = value.split(".")
        middle = len(ciphertext) // 2
        flipped = "A" if ciphertext[middle] != "A" else "B"
        tampered = ".".join([header, key, iv, ciphertext[:middle] + flipped + ciphertext[middle + 1:], tag])
        with pytest.raises(CookieDecodeError):
            codec.decode(tampered)

    def test_flipped_tag_is_rejected(self, codec):
        value = codec.encode(TEMP)
        header, key, iv, ciphertext, tag = value.split(".")
        flipped = "A" if tag[0] != "A" else "B"
        with pytest.raises(CookieDecodeError):
            codec.decode(".".join([header, key, iv, ciphertext, flipped + tag[1:]]))

    @pytest.mark.parametrize("session", [LOGGED_IN, TEMP])
    def test_every_single_bit_mutation_is_rejected(self, codec, session):
        value = codec.encode(session)
        accepted = []
        for position, char in enumerate(value):
            for bit in range(8):
                mutated = value[:position] + chr(ord(char) ^ (1 << bit)) + value[position + 1:]
                try:
                    codec.decode(mutated)
                except CookieDecodeError:
                    continue
                accepted.append((position, char, mutated[position]))
        assert accepted == []

    def test_unused_tag_bits_are_rejected(self, codec):
        value = codec.encode(LOGGED_IN)
        header, key, iv, ciphertext, tag = value.split(".")
        # 16 tag bytes leave the low 4 bits of the last character unused
        last = BASE64URL_ALPHABET.index(tag[-1])
        assert last & 0b1111 == 0
        padded = BASE64URL_ALPHABET[last | 0b0001]
        with pytest.raises(CookieDecodeError):
            codec.decode(".".join([header, key, iv, ciphertext, tag[:-1] + padded]))

    def test_other_key_is_rejected(self, codec, clock):
        other = CookieCodec("y" * 48, codec.policy, clock=clock)
        with pytest.raises(CookieDecodeError):
            other.decode(codec.encode(LOGGED_IN))

    def test_expired_cookie_is_rejected(self, codec, clock):
        value = codec.encode(LOGGED_IN)
        clock.advance(COOKIE_MAX_AGE - 1)
        assert codec.decode(value) == LOGGED_IN
        clock.advance(1)
        with pytest.raises(CookieDecodeError):
            codec.decode(value)

    @pytest.mark.parametrize(
        "session",
        [
            {"kind": "admin", "access_token": "t1"},
            {"access_token": "t1", "refresh_token": "r1", "expires_at": 1},
            {"kind": "logged_in", "access_token": "t1"},
            {"kind": "temp_code_verifier", "code_verifier": "v1", "access_token": "t1"},
        ],
    )
    def test_schema_mismatch_is_rejected(self, codec, clock, session):
        value = jwe.encrypt(
            json.dumps({"iat": clock(), "session": session}),
            derive_key(SECRET),
            encryption="A256GCM",
            algorithm="dir",
        ).decode()
        with pytest.raises(CookieDecodeError):
            codec.decode(value)


def test_set_cookie_applies_policy():
    response = Response()
    policy_codec = CookieCodec(SECRET, CookiePolicy(domain="stream-stash.com", secure=True))
    policy_codec.set_cookie(response, "value")
    header = response.headers["set-cookie"].lower()
    assert header.startswith("session=value")
    for part in ("domain=stream-stash.com", "path=/", "httponly", "secure", "samesite=strict", "max-age=2678400"):
        assert part in header
