from __future__ import annotations

import hashlib
import logging
import secrets
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from shared.config import DEFAULT_API_KEY_PREFIX
from shared.errors import AuthenticationError
from shared.memory_store import MemoryStore
from shared.tokens import InvalidTokenError

logger = logging.getLogger(__name__)

API_KEY_HEADER = "x-api-key"
AUTHORIZATION_HEADER = "authorization"
SESSION_TOKEN_HEADER = "x-session-token"

AUTH_REQUIRED = "Authentication required. Please provide API key or session token."


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class AuthContext:
    principal_id: str
    method: str  # api_key | token
    credential: str


@dataclass(slots=True)
class APIKey:
    key_hash: str
    key_hint: str
    principal_id: str
    label: str
    created_at: datetime
    expires_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now

    def to_public(self) -> dict[str, Any]:
        return {
            "keyHint": self.key_hint,
            "label": self.label,
            "principalId": self.principal_id,
            "createdAt": self.created_at.isoformat(),
            "expiresAt": self.expires_at.isoformat() if self.expires_at else None,
        }


class APIKeyManager:
    """Issues and checks long-lived API keys.

    Only a SHA-256 of each key is kept, so the raw key is observable exactly
    once, as the return value of ``generate_api_key``. Expired keys are purged
    lazily, on the first attempt to use them.
    """

    def __init__(self, store: MemoryStore[APIKey] | None = None, *, prefix: str = DEFAULT_API_KEY_PREFIX, clock: Callable[[], datetime] = _utcnow):
        self.store: MemoryStore[APIKey] = store if store is not None else MemoryStore()
        self.prefix = prefix
        self._clock = clock

    @staticmethod
    def _key_hash(key: str) -> str:
        return hashlib.sha256(key.encode("utf-8")).hexdigest()

    def generate_api_key(self, principal_id: str, label: str, expires_at: datetime | None = None) -> str:
        if not principal_id:
            raise ValueError("principal_id required")
        if not label or not isinstance(label, str):
            raise ValueError("API key label is required")
        raw = f"{self.prefix}{secrets.token_urlsafe(32)}"
        record = APIKey(
            key_hash=self._key_hash(raw),
            key_hint=f"{raw[: len(self.prefix) + 4]}...",
            principal_id=principal_id,
            label=label,
            created_at=self._clock(),
            expires_at=expires_at,
        )
        self.store.put(record.key_hash, record)
        logger.info("issued API key %s (%s) for %s", record.key_hint, label, principal_id)
        return raw

    def validate(self, raw: str) -> APIKey:
        key_hash = self._key_hash(raw)
        record = self.store.get(key_hash)
        if record is None:
            raise AuthenticationError("Invalid API key")
        now = self._clock()
        if self.store.expire(key_hash, lambda r: r.is_expired(now)):
            logger.info("purged expired API key %s", record.key_hint)
            raise AuthenticationError("API key expired")
        return record

    def revoke_api_key(self, raw: str, principal_id: str | None = None) -> bool:
        key_hash = self._key_hash(raw)
        if principal_id is not None:
            record = self.store.get(key_hash)
            if record is None or record.principal_id != principal_id:
                return False
        revoked = self.store.delete(key_hash)
        if revoked:
            logger.info("revoked API key for %s", principal_id or "operator")
        return revoked

    def list_api_keys(self, principal_id: str) -> list[dict[str, Any]]:
        now = self._clock()
        out = []
        for record in self.store.values():
            if record.principal_id != principal_id:
                continue
            out.append({**record.to_public(), "expired": record.is_expired(now)})
        return sorted(out, key=lambda k: k["createdAt"])


def _normalize_headers(headers: Mapping[str, Any] | None) -> dict[str, str]:
    return {str(k).lower(): str(v).strip() for k, v in (headers or {}).items() if v is not None and str(v).strip()}


def _bearer_token(value: str) -> str:
    scheme, _, token = value.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise InvalidTokenError("Invalid authorization header. Expected 'Bearer <token>'.")
    return token.strip()


class AuthMiddleware:
    """Resolves the credential on a call envelope to an ``AuthContext``.

    First match wins: ``x-api-key``, then ``authorization: Bearer``, then
    ``x-session-token``. Nothing found means the call never reaches a tool.
    """

    def __init__(self, keys: APIKeyManager, verify_token: Callable[[str], str]):
        self.keys = keys
        self.verify_token = verify_token

    def authenticate(self, headers: Mapping[str, Any] | None) -> AuthContext:
        h = _normalize_headers(headers)
        api_key = h.get(API_KEY_HEADER)
        if api_key:
            record = self.keys.validate(api_key)
            return AuthContext(principal_id=record.principal_id, method="api_key", credential=api_key)
        return self._token_context(h)

    def authenticate_token(self, headers: Mapping[str, Any] | None) -> AuthContext:
        """Token channels only; key management must not be reachable with an API key."""
        return self._token_context(_normalize_headers(headers))

    def _token_context(self, h: dict[str, str]) -> AuthContext:
        authorization = h.get(AUTHORIZATION_HEADER)
        if authorization:
            token = _bearer_token(authorization)
        else:
            token = h.get(SESSION_TOKEN_HEADER, "")
        if not token:
            raise AuthenticationError(AUTH_REQUIRED)
        principal_id = self.verify_token(token)
        return AuthContext(principal_id=principal_id, method="token", credential=token)


def validate_organization_access(principal_id: str, organization_id: str, repositories) -> bool:
    members = repositories.members.find_by(organizationId=organization_id)
    if not members.ok:
        return False
    return any(m.get("userId") == principal_id for m in members.value or [])


def validate_organization_ownership(principal_id: str, organization_id: str, repositories) -> bool:
    org = repositories.organizations.find(organization_id)
    if not org.ok or not org.value:
        return False
    return org.value.get("ownerId") == principal_id
