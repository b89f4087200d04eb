from __future__ import annotations

import logging
import os
import secrets
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_API_KEY_PREFIX = "twk_"


def _split_modules(raw: str) -> tuple[str, ...]:
    return tuple(m.strip() for m in raw.split(",") if m.strip())


@dataclass
class RuntimeConfig:
    token_secret: str = ""
    log_level: str = "INFO"
    tool_modules: tuple[str, ...] = ()
    api_key_prefix: str = DEFAULT_API_KEY_PREFIX
    server_name: str = "toolwire-worker"

    @classmethod
    def from_env(cls, environ=None) -> RuntimeConfig:
        env = os.environ if environ is None else environ
        secret = env.get("TOOLWIRE_TOKEN_SECRET", "")
        if not secret:
            logger.warning("TOOLWIRE_TOKEN_SECRET not set; using a per-process secret, tokens will not validate elsewhere")
            secret = secrets.token_urlsafe(32)
        return cls(
            token_secret=secret,
            log_level=env.get("TOOLWIRE_LOG_LEVEL", "INFO").upper(),
            tool_modules=_split_modules(env.get("TOOLWIRE_TOOL_MODULES", "")),
            api_key_prefix=env.get("TOOLWIRE_API_KEY_PREFIX", DEFAULT_API_KEY_PREFIX) or DEFAULT_API_KEY_PREFIX,
        )
