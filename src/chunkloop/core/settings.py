"""Settings for chunkloop.

Manifesto:
    Dispatch options (chunk size, pool width, worker kind, timeouts,
    retries) should be explicit and environment-driven.  ``LoopSettings``
    is the single validated source the backend registration falls back to
    for every option the caller does not pass.

    - **Pydantic validation:** bad values fail at startup, not mid-run
    - **Environment-driven:** ``CHUNKLOOP_*`` variables and ``.env`` files
    - **Sensible defaults:** one iteration per chunk, one chunk in flight

Examples:
    >>> import os
    >>> os.environ["CHUNKLOOP_CHUNK_SIZE"] = "8"
    >>> get_settings(_force_reload=True).chunk_size
    8

Tags:
    settings, configuration, pydantic, environment, chunkloop

Doc-Types:
    - API Reference
    - Configuration Guide
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

WorkerKind = Literal["subprocess", "pool", "inline"]


class LoopSettings(BaseSettings):
    """Dispatch configuration read from ``CHUNKLOOP_*`` environment variables.

    Fields
    ──────
    chunk_size      : Upper bound on iterations per task
    max_workers     : Chunks in flight at once (1 = serial reference dispatch)
    worker          : Isolated worker kind used when none is registered
    worker_timeout  : Seconds a single worker may run (None = unbounded)
    max_retries     : Re-submissions of a crashed chunk (0 = none)
    log_level       : Structlog log level
    log_json        : Force JSON logs (None = auto-detect from tty)
    """

    model_config = SettingsConfigDict(
        env_prefix="CHUNKLOOP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Dispatch ─────────────────────────────────────────────────
    chunk_size: int = Field(default=1, ge=1)
    max_workers: int = Field(default=1, ge=1)
    worker: WorkerKind = "subprocess"
    worker_timeout: float | None = Field(default=None, gt=0)
    max_retries: int = Field(default=0, ge=0)

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    log_json: bool | None = None


_settings_cache: dict[str, LoopSettings] = {}


def get_settings(*, _force_reload: bool = False) -> LoopSettings:
    """Load, validate, and cache a :class:`LoopSettings` instance.

    Parameters
    ----------
    _force_reload:
        Bypass cache and re-read the environment.
    """
    if not _force_reload and "default" in _settings_cache:
        return _settings_cache["default"]
    settings = LoopSettings()
    _settings_cache["default"] = settings
    return settings


def clear_settings_cache() -> None:
    """Drop the cached settings (tests, long-running processes)."""
    _settings_cache.clear()


__all__ = ["LoopSettings", "WorkerKind", "get_settings", "clear_settings_cache"]
