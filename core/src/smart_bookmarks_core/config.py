from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from smart_bookmarks_core.home import AppPaths

ENV_SUPABASE_URL = "SUPABASE_URL"
ENV_SUPABASE_ANON_KEY = "SUPABASE_ANON_KEY"
ENV_SITE_URL = "SMART_BOOKMARKS_SITE_URL"


class NetworkConfig(BaseModel):
    bind_host: str = Field(default="127.0.0.1")
    port: int = Field(default=3000, ge=1, le=65535)


class SupabaseConfig(BaseModel):
    """Hosted backend settings.

    `url` and `anon_key` are the only required values; without both the app
    still serves pages but disables sign-in and shows a configuration banner.
    """

    url: str | None = Field(default=None, description="Project endpoint, e.g. https://x.supabase.co")
    anon_key: str | None = Field(default=None, description="Public (anon) API key")
    oauth_provider: str = Field(default="google")
    table: str = Field(default="bookmarks")
    schema_name: str = Field(default="public")
    site_url: str | None = Field(
        default=None,
        description=(
            "Public origin used to build the OAuth callback target. If omitted, the origin "
            "of the incoming request is used."
        ),
    )

    @property
    def is_configured(self) -> bool:
        return bool((self.url or "").strip() and (self.anon_key or "").strip())


class SessionConfig(BaseModel):
    cookie_name: str = Field(default="sb_sid")
    cookie_max_age_s: int = Field(default=60 * 60 * 24 * 30, ge=60)
    idle_timeout_s: int = Field(
        default=60 * 60,
        ge=1,
        description="Controllers without live listeners are torn down after this many seconds.",
    )


class ThemeConfig(BaseModel):
    storage_key: str = Field(default="theme")
    cookie_max_age_s: int = Field(default=60 * 60 * 24 * 365, ge=60)


class LoggingConfig(BaseModel):
    max_size_mb: int = Field(
        default=10, ge=1, description="Max size of a log file in MB before rolling."
    )
    backup_count: int = Field(default=5, ge=1, description="Number of log archives to keep.")


class CoreConfig(BaseModel):
    version: str = Field(default="1")
    network: NetworkConfig = Field(default_factory=NetworkConfig)
    supabase: SupabaseConfig = Field(default_factory=SupabaseConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    theme: ThemeConfig = Field(default_factory=ThemeConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def _read_json(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def load_core_config(paths: AppPaths, environ: dict[str, str] | None = None) -> CoreConfig:
    """Load config from ${SMART_BOOKMARKS_HOME}/config/core.json.

    - If missing: returns defaults.
    - SUPABASE_URL / SUPABASE_ANON_KEY / SMART_BOOKMARKS_SITE_URL override the file.
    - Validation is performed by Pydantic.
    """

    config_path = paths.core_config_path
    raw: dict[str, Any] = _read_json(config_path) if config_path.exists() else {}
    config = CoreConfig.model_validate(raw)
    return apply_env_overrides(config, environ)


def apply_env_overrides(config: CoreConfig, environ: dict[str, str] | None = None) -> CoreConfig:
    env = os.environ if environ is None else environ

    update: dict[str, str] = {}
    for env_key, field in (
        (ENV_SUPABASE_URL, "url"),
        (ENV_SUPABASE_ANON_KEY, "anon_key"),
        (ENV_SITE_URL, "site_url"),
    ):
        value = (env.get(env_key) or "").strip()
        if value:
            update[field] = value

    if not update:
        return config

    supabase = config.supabase.model_copy(update=update)
    return config.model_copy(update={"supabase": supabase})
