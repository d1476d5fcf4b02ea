from __future__ import annotations

import json
import re
import sys
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from .errors import FetchError, ParseError
from .http_client import HttpClient
from .models import Snapshot, StockEntry


DEFAULT_SITE_HOST = "espace-des-marques.com"

# https://www.espace-des-marques.com/fr/116527/pantalon-de-ski-noir-femme-o-neill-gore-tex-madness
_PRODUCT_ID_RE = re.compile(r"/fr/(\d+)/")
_TITLE_SUFFIX_RE = re.compile(r"\s*\|\s*Espace des marques\s*$", re.IGNORECASE)
_WS_RE = re.compile(r"\s+")


def _warn(msg: str) -> None:
    print(f"[source] {msg}", file=sys.stderr, flush=True)


def compact_ws(text: str | None) -> str:
    return _WS_RE.sub(" ", (text or "").strip())


def extract_product_id(url: str) -> str | None:
    m = _PRODUCT_ID_RE.search(url or "")
    return m.group(1) if m else None


def is_site_url(url: str, *, site_host: str = DEFAULT_SITE_HOST) -> bool:
    try:
        p = urlparse(url)
    except ValueError:
        return False
    host = (p.netloc or "").lower()
    return p.scheme in ("http", "https") and (host == site_host or host.endswith("." + site_host))


def decode_variants(raw: str) -> dict[str, StockEntry]:
    """Decode the ``data-variants`` JSON into a size -> stock map.

    Raises ParseError when the payload is not a JSON list of objects.
    """
    try:
        variants = json.loads(raw)
    except ValueError as e:
        raise ParseError(f"variants payload is not JSON: {e}") from e
    if not isinstance(variants, list):
        raise ParseError(f"variants payload is a {type(variants).__name__}, expected a list")

    sizes: dict[str, StockEntry] = {}
    for variant in variants:
        if not isinstance(variant, dict):
            continue
        size = compact_ws(str(variant.get("labelAddCart") or "")) or "Unknown"
        sizes[size] = StockEntry(
            in_stock=variant.get("hasStock") is True,
            stock_label=compact_ws(str(variant.get("labelStock") or "")),
            variant_code=str(variant.get("codeAlerting") or variant.get("actionAddCart") or ""),
        )
    return sizes


def _first(value: Any) -> Any:
    if isinstance(value, list):
        return value[0] if value else None
    return value


def _json_ld_product(soup: BeautifulSoup) -> dict[str, Any]:
    """Return the JSON-LD ``Product`` object, or the first object of any block."""
    first: dict[str, Any] | None = None
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        try:
            data = json.loads(script.string or script.get_text() or "")
        except ValueError:
            continue
        items = data if isinstance(data, list) else [data]
        for item in items:
            if not isinstance(item, dict):
                continue
            if item.get("@type") == "Product":
                return item
            if first is None:
                first = item
    return first or {}


def _text_of(soup: BeautifulSoup, selector: str) -> str:
    tag = soup.select_one(selector)
    return compact_ws(tag.get_text(" ", strip=True)) if tag else ""


def parse_product_page(html: str) -> Snapshot:
    soup = BeautifulSoup(html, "lxml")

    ld = _json_ld_product(soup)
    brand = ld.get("brand")
    offers = _first(ld.get("offers"))
    offers = offers if isinstance(offers, dict) else {}

    title = compact_ws(str(ld.get("name") or ""))
    if not title:
        title = _TITLE_SUFFIX_RE.sub("", _text_of(soup, "title")).strip() or "Unknown Product"

    image = _first(ld.get("image"))
    image_url = image if isinstance(image, str) else ""
    if not image_url:
        og = soup.find("meta", attrs={"property": "og:image"})
        image_url = str(og.get("content") or "") if og else ""

    price = str(offers.get("price") or "")
    if not price:
        price = _text_of(soup, "[class*='product-price']")

    sizes: dict[str, StockEntry] = {}
    holder = soup.find(attrs={"data-variants": True})
    if holder is not None:
        try:
            sizes = decode_variants(str(holder.get("data-variants")))
        except ParseError as e:
            _warn(f"could not parse variants: {e}")

    return Snapshot(
        title=title,
        brand=compact_ws(str(brand.get("name") or "")) if isinstance(brand, dict) else "",
        price=price,
        original_price=_text_of(soup, "[class*='original-price']"),
        image_url=image_url,
        sizes=sizes,
        availability=str(offers.get("availability") or ""),
    )


@dataclass(frozen=True)
class SnapshotSourceConfig:
    site_host: str = DEFAULT_SITE_HOST


class EspaceDesMarquesSource:
    """Turns a product URL into a stock-by-size snapshot."""

    def __init__(self, client: HttpClient, cfg: SnapshotSourceConfig | None = None) -> None:
        self._client = client
        self._cfg = cfg or SnapshotSourceConfig()

    @property
    def site_host(self) -> str:
        return self._cfg.site_host

    def accepts(self, url: str) -> bool:
        return is_site_url(url, site_host=self._cfg.site_host)

    def fetch_snapshot(self, url: str) -> Snapshot:
        res = self._client.fetch_text(url)
        if not res.ok or res.text is None:
            raise FetchError(res.error or f"HTTP {res.status_code}")
        return parse_product_page(res.text)

    def product_id(self, url: str) -> str | None:
        return extract_product_id(url)
