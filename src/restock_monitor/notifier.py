from __future__ import annotations

import sys
from typing import Any

from .discord import DiscordConfig, send_discord_webhook
from .models import RestockEvent
from .timeutil import utc_now_iso


EMBED_TITLE = "🚨 RESTOCK DÉTECTÉ - Espace des Marques"
EMBED_FOOTER = "Espace des Marques Monitor"
EMBED_COLOR = 0x00FF00


def _warn(msg: str) -> None:
    print(f"[notify] {msg}", file=sys.stderr, flush=True)


def format_restock_payload(event: RestockEvent, now: str) -> dict[str, Any]:
    product = event.product
    embed: dict[str, Any] = {
        "title": EMBED_TITLE,
        "color": EMBED_COLOR,
        "fields": [
            {"name": "📦 Produit", "value": product.title or "Unknown", "inline": False},
            {"name": "🏷️ Marque", "value": product.brand or "N/A", "inline": True},
            {"name": "📏 Taille", "value": event.size, "inline": True},
            {"name": "💰 Prix", "value": product.price or "N/A", "inline": True},
            {"name": "📊 Stock", "value": event.entry.stock_label or "En stock", "inline": True},
        ],
        "footer": {"text": EMBED_FOOTER},
        "timestamp": now,
    }
    if product.image_url:
        embed["thumbnail"] = {"url": product.image_url}

    components = [
        {
            "type": 1,
            "components": [{"type": 2, "style": 5, "label": "🛒 Voir le produit", "url": product.url}],
        }
    ]
    return {"embeds": [embed], "components": components}


class Notifier:
    """Delivers restock alerts. Without a webhook configured it does nothing."""

    def __init__(self, cfg: DiscordConfig | None, *, timeout_seconds: float = 15.0) -> None:
        self._cfg = cfg
        self._timeout_seconds = timeout_seconds

    @property
    def configured(self) -> bool:
        return self._cfg is not None

    def notify(self, event: RestockEvent) -> bool:
        if self._cfg is None:
            return True
        try:
            payload = format_restock_payload(event, utc_now_iso())
            ok = send_discord_webhook(cfg=self._cfg, payload=payload, timeout_seconds=self._timeout_seconds)
        except Exception as e:
            _warn(f"delivery crashed for {event.product.id} size={event.size}: {type(e).__name__}: {e}")
            return False
        if not ok:
            _warn(f"restock alert for {event.product.id} size={event.size} was not delivered")
        return ok
