from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_MODEL = "gemini-3-flash-preview"
DEFAULT_API_BASE_URL = "https://generativelanguage.googleapis.com"

ENV_PREFIX = "CINERECAP_"


def env(name: str, default: str | None = None) -> str | None:
    raw = os.environ.get(f"{ENV_PREFIX}{name}")
    if raw is None or not raw.strip():
        return default
    return raw.strip()


def default_data_dir() -> Path:
    return Path(env("DATA_DIR", "data")).resolve()


def _api_key_from_env() -> str | None:
    # Build pipelines commonly export the bare names; the prefixed one wins.
    for name in (f"{ENV_PREFIX}API_KEY", "GEMINI_API_KEY", "API_KEY"):
        value = os.environ.get(name, "").strip()
        if value:
            return value
    return None


@dataclass(frozen=True)
class Settings:
    api_key: str | None = None
    model: str = DEFAULT_MODEL
    api_base_url: str = DEFAULT_API_BASE_URL
    timeout_s: float = 60.0
    data_dir: Path = Path("data")
    users_file: Path = Path("data/authorized_users.json")
    session_db: Path = Path("data/sessions.sqlite3")
    log_level: str = "INFO"
    max_sessions: int = 4096

    @classmethod
    def from_env(cls) -> Settings:
        data_dir = default_data_dir()
        return cls(
            api_key=_api_key_from_env(),
            model=env("MODEL", DEFAULT_MODEL),
            api_base_url=env("API_BASE_URL", DEFAULT_API_BASE_URL).rstrip("/"),
            timeout_s=float(env("TIMEOUT_S", "60")),
            data_dir=data_dir,
            users_file=Path(env("USERS_FILE", str(data_dir / "authorized_users.json"))).resolve(),
            session_db=Path(env("SESSION_DB", str(data_dir / "sessions.sqlite3"))).resolve(),
            log_level=(env("LOG_LEVEL", "INFO") or "INFO").upper(),
            max_sessions=int(env("MAX_SESSIONS", "4096")),
        )


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("cinerecap").setLevel(getattr(logging, level, logging.INFO))
