"""Application configuration via environment variables.

Nested sections use ``__`` as delimiter (``INTEGRATIONS__RADARR__URL``);
list values such as ``ADVANCED_RULES`` are given as JSON.
"""

import asyncio
import logging
import re
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

DURATION_PATTERN = re.compile(r"^(\d+)([dhms])$")
NEVER = "never"


def check_duration(value: str) -> str:
    """Normalize a retention value, raising ValueError when malformed."""
    value = value.strip().lower()
    if value == NEVER or DURATION_PATTERN.match(value):
        return value
    raise ValueError(f"invalid duration {value!r} (expected e.g. 30d, 12h, 45m, 90s or 'never')")


class _Frozen(BaseModel):
    model_config = {"frozen": True, "extra": "ignore"}


# ── Sections ─────────────────────────────────────────────────────

class AppConfig(_Frozen):
    dry_run: bool = True
    enable_deletion: bool = False
    leaving_soon_days: int = Field(default=14, ge=1)

    @property
    def deletion_allowed(self) -> bool:
        return self.enable_deletion and not self.dry_run


class SyncConfig(_Frozen):
    full_interval: int = Field(default=60, ge=1)          # minutes
    incremental_interval: int = Field(default=15, ge=1)   # minutes
    auto_start: bool = True
    timeout_seconds: float = Field(default=600.0, gt=0)


class RulesConfig(_Frozen):
    movie_retention: str = "90d"
    tv_retention: str = "120d"

    @field_validator("movie_retention", "tv_retention")
    @classmethod
    def _duration(cls, v: str) -> str:
        return check_duration(v)


class IntegrationConfig(_Frozen):
    enabled: bool = False
    url: str = ""
    api_key: str = ""
    timeout: float = Field(default=30.0, gt=0)

    @field_validator("url")
    @classmethod
    def _strip_slash(cls, v: str) -> str:
        return v.strip().rstrip("/")

    @model_validator(mode="after")
    def _require_credentials(self):
        if self.enabled and not (self.url and self.api_key):
            raise ValueError("enabled integration requires url and api_key")
        return self


class SymlinkLibraryConfig(_Frozen):
    enabled: bool = False
    base_path: str = "/data/media/leaving-soon"
    movies_library_name: str = "Leaving Soon - Movies"
    tv_library_name: str = "Leaving Soon - TV Shows"
    hide_when_empty: bool = False

    @model_validator(mode="after")
    def _require_base_path(self):
        if self.enabled and not self.base_path:
            raise ValueError("symlink library requires base_path")
        return self


class JellyfinConfig(IntegrationConfig):
    symlink_library: SymlinkLibraryConfig = SymlinkLibraryConfig()


class IntegrationsConfig(_Frozen):
    jellyfin: JellyfinConfig = JellyfinConfig()
    radarr: IntegrationConfig = IntegrationConfig()
    sonarr: IntegrationConfig = IntegrationConfig()
    jellyseerr: IntegrationConfig = IntegrationConfig()
    jellystat: IntegrationConfig = IntegrationConfig()


# ── Advanced rules ───────────────────────────────────────────────

class UserMatcher(_Frozen):
    """One requester entry of a ``user`` rule. Any single identifier is enough."""
    user_id: Optional[int] = None
    username: Optional[str] = None
    email: Optional[str] = None
    retention: Optional[str] = None
    require_watched: Optional[bool] = None

    @field_validator("retention")
    @classmethod
    def _duration(cls, v: Optional[str]) -> Optional[str]:
        return check_duration(v) if v is not None else None

    @model_validator(mode="after")
    def _require_identifier(self):
        if self.user_id is None and not self.username and not self.email:
            raise ValueError("user matcher needs at least one of user_id, username, email")
        return self


class AdvancedRule(_Frozen):
    name: str
    type: Literal["user", "tag", "watched"]
    enabled: bool = True
    tag: Optional[str] = None
    retention: Optional[str] = None
    require_watched: bool = False
    users: list[UserMatcher] = Field(default_factory=list)

    @field_validator("retention")
    @classmethod
    def _duration(cls, v: Optional[str]) -> Optional[str]:
        return check_duration(v) if v is not None else None

    @model_validator(mode="after")
    def _check_variant(self):
        if self.type == "tag":
            if not self.tag:
                raise ValueError(f"tag rule {self.name!r} requires a tag")
            if self.retention is None:
                raise ValueError(f"tag rule {self.name!r} requires a retention")
        elif self.type == "watched":
            if self.retention is None:
                raise ValueError(f"watched rule {self.name!r} requires a retention")
        elif self.type == "user":
            if not self.users:
                raise ValueError(f"user rule {self.name!r} requires at least one user")
            for u in self.users:
                if u.retention is None and self.retention is None:
                    raise ValueError(f"user rule {self.name!r} has a user without retention")
        return self


class Settings(BaseSettings):
    """All configuration loaded from environment / .env file."""

    # ── Application ──────────────────────────────────────────────
    app_name: str = "Prunarr"
    debug: bool = False
    log_level: str = "info"
    max_jobs: int = Field(default=100, ge=1)

    # ── Database ─────────────────────────────────────────────────
    database_url: str = "sqlite+aiosqlite:///./data/prunarr.db"

    # ── Server ───────────────────────────────────────────────────
    host: str = "0.0.0.0"
    port: int = Field(default=8080, ge=1, le=65535)

    # ── Retention engine ─────────────────────────────────────────
    app: AppConfig = AppConfig()
    sync: SyncConfig = SyncConfig()
    rules: RulesConfig = RulesConfig()
    integrations: IntegrationsConfig = IntegrationsConfig()
    advanced_rules: list[AdvancedRule] = Field(default_factory=list)

    @property
    def has_jellyfin(self) -> bool:
        return self.integrations.jellyfin.enabled

    @property
    def has_radarr(self) -> bool:
        return self.integrations.radarr.enabled

    @property
    def has_sonarr(self) -> bool:
        return self.integrations.sonarr.enabled

    @property
    def has_jellyseerr(self) -> bool:
        return self.integrations.jellyseerr.enabled

    @property
    def has_jellystat(self) -> bool:
        return self.integrations.jellystat.enabled

    @property
    def has_symlink_library(self) -> bool:
        return self.has_jellyfin and self.integrations.jellyfin.symlink_library.enabled

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_nested_delimiter": "__",
        "extra": "ignore",
        "frozen": True,
    }


class ConfigStore:
    """Holds the active settings snapshot.

    Readers call ``get()`` once and keep the returned object; a reload
    builds a fresh validated snapshot and swaps it in, so an in-flight
    sync cycle never observes a half-applied change.
    """

    def __init__(self, initial: Settings):
        self._current = initial
        self._lock = asyncio.Lock()

    def get(self) -> Settings:
        return self._current

    async def replace(self, new: Settings) -> Settings:
        async with self._lock:
            old, self._current = self._current, new
        if old.sync != new.sync:
            logger.info("Sync intervals changed in new configuration")
        return new

    async def reload(self) -> Settings:
        """Re-read environment / .env. Validation errors leave the old snapshot active."""
        fresh = Settings()
        logger.info("Configuration reloaded")
        return await self.replace(fresh)


settings = Settings()
