from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from .discord import DiscordConfig, load_discord_config
from .source import DEFAULT_SITE_HOST


STATE_BACKENDS = ("json", "sqlite", "memory")


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, "").strip() or default)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, "").strip() or default)
    except ValueError:
        return default


@dataclass(frozen=True)
class MonitorConfig:
    discord: DiscordConfig | None = None
    check_interval_seconds: float = 60.0
    pacing_seconds: float = 1.0
    timeout_seconds: float = 30.0
    state_backend: str = "json"
    state_path: Path = Path("data/state.json")
    sqlite_path: Path = Path("data/monitor.db")
    proxy_url: str | None = None
    site_host: str = DEFAULT_SITE_HOST
    host: str = "0.0.0.0"
    port: int = 3000


def load_config() -> MonitorConfig:
    backend = os.getenv("STATE_BACKEND", "json").strip().lower() or "json"
    if backend not in STATE_BACKENDS:
        raise ValueError(f"STATE_BACKEND must be one of {', '.join(STATE_BACKENDS)}, got {backend!r}")
    return MonitorConfig(
        discord=load_discord_config(),
        check_interval_seconds=_env_float("CHECK_INTERVAL_SECONDS", 60.0),
        pacing_seconds=_env_float("PACING_SECONDS", 1.0),
        timeout_seconds=_env_float("TIMEOUT_SECONDS", 30.0),
        state_backend=backend,
        state_path=Path(os.getenv("STATE_PATH", "").strip() or "data/state.json"),
        sqlite_path=Path(os.getenv("SQLITE_DB_PATH", "").strip() or "data/monitor.db"),
        proxy_url=os.getenv("PROXY_URL", "").strip() or None,
        site_host=os.getenv("SITE_HOST", "").strip().lower() or DEFAULT_SITE_HOST,
        host=os.getenv("HOST", "").strip() or "0.0.0.0",
        port=_env_int("PORT", 3000),
    )
