"""Compact HS256 tokens (JWT-compatible ``header.payload.signature``).

Session and bearer tokens are issued and verified here. Verification
reports three separate failures: a token that is malformed or carries a bad
signature, a well-formed token past its ``exp``, and a valid token without a
``sub`` claim.
"""

from __future__ import annotations

import base64
import json
import time
from collections.abc import Callable
from typing import Any

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, hmac

from shared.errors import AuthenticationError

_HEADER = {"alg": "HS256", "typ": "JWT"}


class InvalidTokenError(AuthenticationError):
    pass


class ExpiredTokenError(AuthenticationError):
    pass


class MissingSubjectError(AuthenticationError):
    pass


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(text: str) -> bytes:
    padded = text + "=" * (-len(text) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


def _json_part(claims: dict[str, Any]) -> str:
    return _b64encode(json.dumps(claims, separators=(",", ":"), sort_keys=True).encode("utf-8"))


class TokenSigner:
    def __init__(self, secret: str, *, clock: Callable[[], float] = time.time):
        if not secret:
            raise ValueError("token secret required")
        self._key = secret.encode("utf-8")
        self._clock = clock

    def _mac(self, signing_input: bytes) -> hmac.HMAC:
        mac = hmac.HMAC(self._key, hashes.SHA256())
        mac.update(signing_input)
        return mac

    def issue(self, subject: str | None, ttl_seconds: int | None = 3600, **extra: Any) -> str:
        now = int(self._clock())
        claims: dict[str, Any] = {"iat": now, **extra}
        if subject is not None:
            claims["sub"] = subject
        if ttl_seconds is not None:
            claims["exp"] = now + int(ttl_seconds)
        signing_input = f"{_json_part(_HEADER)}.{_json_part(claims)}"
        signature = self._mac(signing_input.encode("ascii")).finalize()
        return f"{signing_input}.{_b64encode(signature)}"

    def verify(self, token: str) -> dict[str, Any]:
        parts = token.strip().split(".")
        if len(parts) != 3 or not all(parts):
            raise InvalidTokenError("Invalid token: malformed")
        try:
            header = json.loads(_b64decode(parts[0]))
            claims = json.loads(_b64decode(parts[1]))
            signature = _b64decode(parts[2])
        except (ValueError, UnicodeDecodeError) as exc:
            raise InvalidTokenError("Invalid token: malformed") from exc
        if not isinstance(header, dict) or header.get("alg") != "HS256" or not isinstance(claims, dict):
            raise InvalidTokenError("Invalid token: unsupported format")

        try:
            self._mac(f"{parts[0]}.{parts[1]}".encode("ascii")).verify(signature)
        except InvalidSignature as exc:
            raise InvalidTokenError("Invalid token: signature mismatch") from exc

        exp = claims.get("exp")
        if exp is not None:
            if not isinstance(exp, (int, float)):
                raise InvalidTokenError("Invalid token: bad exp claim")
            if exp <= self._clock():
                raise ExpiredTokenError("Token expired. Please sign in again.")

        sub = claims.get("sub")
        if not sub or not isinstance(sub, str):
            raise MissingSubjectError("Token is valid but carries no subject claim")
        return claims

    def subject(self, token: str) -> str:
        return self.verify(token)["sub"]
