"""Environment-driven runtime settings for the CodeCraft backend."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

ENV_PRODUCTION = "production"
ENV_DEVELOPMENT = "development"
STORAGE_LOCAL = "local"
STORAGE_BLOB = "blob"
ALLOWED_STORAGE_BACKENDS = {STORAGE_LOCAL, STORAGE_BLOB}

PRODUCTION_WORKSPACE_DIR = Path("/tmp/workspace")
DEFAULT_WORKSPACE_DIR = Path.cwd() / "workspace"
DEFAULT_PORT = 5000
DEFAULT_SCAFFOLD_TRIGGERS = ("create-react-app",)
DEFAULT_DELETE_GRACE_SECONDS = 1.0
DEFAULT_GEMINI_MODEL = "gemini-1.5-flash"
DEFAULT_GEMINI_API_BASE = "https://generativelanguage.googleapis.com"
DEFAULT_BLOB_API_URL = "https://blob.vercel-storage.com"
DEFAULT_BLOB_PUBLIC_URL = "https://public.blob.vercel-storage.com"
VERSION = "0.1.0"


@dataclass(frozen=True)
class Settings:
    """Resolved configuration shared by the app, routers and sessions."""

    environment: str = ENV_DEVELOPMENT
    workspace_dir: Path = DEFAULT_WORKSPACE_DIR
    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    storage_backend: str = STORAGE_LOCAL
    blob_token: str = ""
    blob_api_url: str = DEFAULT_BLOB_API_URL
    blob_public_url: str = DEFAULT_BLOB_PUBLIC_URL
    gemini_api_key: str = ""
    gemini_model: str = DEFAULT_GEMINI_MODEL
    gemini_api_base: str = DEFAULT_GEMINI_API_BASE
    scaffold_triggers: tuple[str, ...] = field(default=DEFAULT_SCAFFOLD_TRIGGERS)
    delete_grace_seconds: float = DEFAULT_DELETE_GRACE_SECONDS
    log_level: str = "INFO"

    @property
    def is_production(self) -> bool:
        return self.environment == ENV_PRODUCTION


def _parse_triggers(raw: str | None) -> tuple[str, ...]:
    if raw is None:
        return DEFAULT_SCAFFOLD_TRIGGERS
    triggers: list[str] = []
    for item in raw.split(","):
        value = item.strip()
        if value and value not in triggers:
            triggers.append(value)
    return tuple(triggers)


def _parse_float(raw: str | None, default: float) -> float:
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"invalid number: {raw!r}") from None
    if value < 0:
        raise ValueError(f"value must be non-negative: {raw!r}")
    return value


def load_settings(env_file: str | Path | None = None) -> Settings:
    """Build settings from the process environment after loading `.env`.

    Variables already present in the environment win over the `.env` file.
    """
    load_dotenv(dotenv_path=env_file, override=False)

    environment = (
        os.getenv("CODECRAFT_ENV") or os.getenv("NODE_ENV") or ENV_DEVELOPMENT
    ).strip().lower()

    workspace_raw = str(os.getenv("CODECRAFT_WORKSPACE", "")).strip()
    if workspace_raw:
        workspace_dir = Path(workspace_raw)
    elif environment == ENV_PRODUCTION:
        workspace_dir = PRODUCTION_WORKSPACE_DIR
    else:
        workspace_dir = DEFAULT_WORKSPACE_DIR

    storage_backend = str(os.getenv("CODECRAFT_STORAGE", STORAGE_LOCAL)).strip().lower()
    if storage_backend not in ALLOWED_STORAGE_BACKENDS:
        raise ValueError(f"unsupported storage backend: {storage_backend}")

    port_raw = os.getenv("CODECRAFT_PORT") or os.getenv("PORT") or str(DEFAULT_PORT)
    try:
        port = int(port_raw)
    except ValueError:
        raise ValueError(f"invalid port: {port_raw!r}") from None

    return Settings(
        environment=environment,
        workspace_dir=workspace_dir.expanduser().resolve(),
        host=str(os.getenv("CODECRAFT_HOST", "0.0.0.0")).strip() or "0.0.0.0",
        port=port,
        storage_backend=storage_backend,
        blob_token=str(os.getenv("WORKSPACE_READ_WRITE_TOKEN", "")).strip(),
        blob_api_url=os.getenv("CODECRAFT_BLOB_API_URL", DEFAULT_BLOB_API_URL).rstrip("/"),
        blob_public_url=os.getenv("CODECRAFT_BLOB_PUBLIC_URL", DEFAULT_BLOB_PUBLIC_URL).rstrip("/"),
        gemini_api_key=str(os.getenv("GEMINI_API_KEY", "")).strip(),
        gemini_model=str(os.getenv("CODECRAFT_GEMINI_MODEL", DEFAULT_GEMINI_MODEL)).strip()
        or DEFAULT_GEMINI_MODEL,
        gemini_api_base=os.getenv("CODECRAFT_GEMINI_API_BASE", DEFAULT_GEMINI_API_BASE).rstrip("/"),
        scaffold_triggers=_parse_triggers(os.getenv("CODECRAFT_SCAFFOLD_TRIGGERS")),
        delete_grace_seconds=_parse_float(
            os.getenv("CODECRAFT_DELETE_GRACE_SECONDS"), DEFAULT_DELETE_GRACE_SECONDS
        ),
        log_level=str(os.getenv("CODECRAFT_LOG_LEVEL", "INFO")).strip().upper() or "INFO",
    )
