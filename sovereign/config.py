"""
Environment-driven settings.

PORT and DATABASE_URL keep the names the original deployment used; the rest
are namespaced SOVEREIGN_*.
"""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Mapping, Optional

from sovereign.core.types import DigestFraming

TRUTHY = {"1", "true", "yes", "on"}


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def default_database_url() -> str:
    return f"sqlite://{Path.cwd() / 'sovereign.db'}"


@dataclass(frozen=True)
class Settings:
    host: str = "127.0.0.1"
    port: int = 3001
    database_url: str = field(default_factory=default_database_url)
    session_secret: Optional[str] = None
    session_ttl: int = 3600
    challenge_ttl: float = 300.0
    provider_timeout: float = 10.0
    digest_framing: DigestFraming = DigestFraming.CONCAT
    retrieval_k: int = 5
    log_replies: bool = False

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if env is None else env
        framing_raw = (env.get("SOVEREIGN_DIGEST_FRAMING") or DigestFraming.CONCAT.value).strip()
        try:
            framing = DigestFraming(framing_raw)
        except ValueError:
            raise ValueError(
                f"SOVEREIGN_DIGEST_FRAMING must be one of "
                f"{[f.value for f in DigestFraming]}, got {framing_raw!r}"
            )

        return cls(
            host=env.get("HOST") or "127.0.0.1",
            port=_int(env, "PORT", 3001),
            database_url=env.get("DATABASE_URL") or default_database_url(),
            session_secret=env.get("SOVEREIGN_SESSION_SECRET") or None,
            session_ttl=_int(env, "SOVEREIGN_SESSION_TTL", 3600),
            challenge_ttl=_float(env, "SOVEREIGN_CHALLENGE_TTL", 300.0),
            provider_timeout=_float(env, "SOVEREIGN_PROVIDER_TIMEOUT", 10.0),
            digest_framing=framing,
            retrieval_k=_int(env, "SOVEREIGN_RETRIEVAL_K", 5),
            log_replies=(env.get("SOVEREIGN_LOG_REPLIES") or "").strip().lower() in TRUTHY,
        )

    def with_overrides(self, **changes) -> "Settings":
        return replace(self, **{k: v for k, v in changes.items() if v is not None})
