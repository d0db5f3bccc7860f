from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

DEFAULT_ATTACHMENT_MAX_BYTES = 10 * 1024 * 1024


def _env_int(env: Mapping[str, str], name: str, *, default: int, minimum: int = 0) -> int:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return max(minimum, value)


def _split_csv(raw: str) -> list[str]:
    return [x.strip() for x in raw.split(",") if x.strip()]


@dataclass(frozen=True)
class AppConfig:
    cors_allow_origins: list[str]
    attachment_max_bytes: int

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "AppConfig":
        env = os.environ if environ is None else environ
        return cls(
            cors_allow_origins=_split_csv(
                env.get("CORS_ALLOW_ORIGINS", "http://127.0.0.1:5173,http://localhost:5173")
            ),
            attachment_max_bytes=_env_int(
                env,
                "ATTACHMENT_MAX_BYTES",
                default=DEFAULT_ATTACHMENT_MAX_BYTES,
                minimum=1,
            ),
        )
