from __future__ import annotations

import os
import sys
import threading
import time
from dataclasses import dataclass
from typing import Any

import requests


@dataclass(frozen=True)
class DiscordConfig:
    webhook_url: str


def load_discord_config() -> DiscordConfig | None:
    url = (os.getenv("DISCORD_WEBHOOK_URL") or os.getenv("DISCORD_WEBHOOK") or "").strip()
    if not url:
        return None
    return DiscordConfig(webhook_url=url)


_LAST_SEND_AT: float | None = None
_SEND_LOCK = threading.Lock()


def _warn(msg: str) -> None:
    print(f"[discord] {msg}", file=sys.stderr, flush=True)


def send_discord_webhook(*, cfg: DiscordConfig, payload: dict[str, Any], timeout_seconds: float = 15.0) -> bool:
    """POST one payload to the webhook. Returns False on any failure, never raises."""
    try:
        min_interval_seconds = float(os.getenv("DISCORD_MIN_INTERVAL_SECONDS", "").strip() or 0.5)
    except ValueError:
        min_interval_seconds = 0.5

    global _LAST_SEND_AT
    with _SEND_LOCK:
        if _LAST_SEND_AT is not None:
            remaining = min_interval_seconds - (time.perf_counter() - _LAST_SEND_AT)
            if remaining > 0:
                time.sleep(remaining)
        try:
            resp = requests.post(cfg.webhook_url, json=payload, timeout=(timeout_seconds, timeout_seconds))
        except requests.RequestException as e:
            _warn(f"send failed: {type(e).__name__}: {e}")
            return False
        finally:
            _LAST_SEND_AT = time.perf_counter()

    if resp.status_code == 429:
        _warn(f"rate limited (429); retry_after={resp.headers.get('Retry-After')}")
        return False
    try:
        resp.raise_for_status()
    except requests.HTTPError:
        body = (resp.text or "").strip().replace("\n", " ")
        if len(body) > 300:
            body = body[:300] + "..."
        _warn(f"send failed: {resp.status_code} {body}")
        return False
    return True
