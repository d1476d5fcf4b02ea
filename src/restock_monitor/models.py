from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class StockEntry:
    in_stock: bool
    stock_label: str = ""
    variant_code: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"inStock": self.in_stock, "stockLabel": self.stock_label, "variantCode": self.variant_code}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> StockEntry:
        return cls(
            in_stock=raw.get("inStock") is True,
            stock_label=str(raw.get("stockLabel") or ""),
            variant_code=str(raw.get("variantCode") or ""),
        )


@dataclass(frozen=True)
class Snapshot:
    title: str
    brand: str
    price: str
    original_price: str
    image_url: str
    sizes: dict[str, StockEntry]
    availability: str = ""


@dataclass(eq=False)
class Product:
    """A monitored product page.

    One instance exists per id for the lifetime of the process; the scheduler
    and the control operations both mutate it in place.
    """

    id: str
    url: str
    title: str = ""
    brand: str = ""
    price: str = ""
    original_price: str = ""
    image_url: str = ""
    watched_sizes: set[str] = field(default_factory=set)
    previous_stock: dict[str, StockEntry] = field(default_factory=dict)
    notified_sizes: set[str] = field(default_factory=set)
    created_at: str | None = None
    last_checked: str | None = None
    last_error: str | None = None

    def refresh_metadata(self, snapshot: Snapshot) -> None:
        # Empty values from a partial page never erase what we already know.
        self.title = snapshot.title or self.title
        self.brand = snapshot.brand or self.brand
        self.price = snapshot.price or self.price
        self.original_price = snapshot.original_price or self.original_price
        self.image_url = snapshot.image_url or self.image_url


@dataclass(frozen=True)
class RestockEvent:
    product: Product
    size: str
    entry: StockEntry


@dataclass(frozen=True)
class CheckResult:
    success: bool
    sizes: dict[str, StockEntry] | None = None
    error: str | None = None


def sizes_to_dict(sizes: dict[str, StockEntry]) -> dict[str, dict[str, Any]]:
    return {name: entry.to_dict() for name, entry in sizes.items()}


def sizes_from_dict(raw: Any) -> dict[str, StockEntry]:
    if not isinstance(raw, dict):
        return {}
    return {str(name): StockEntry.from_dict(entry) for name, entry in raw.items() if isinstance(entry, dict)}


def product_to_record(product: Product) -> dict[str, Any]:
    return {
        "id": product.id,
        "url": product.url,
        "title": product.title,
        "brand": product.brand,
        "price": product.price,
        "originalPrice": product.original_price,
        "imageUrl": product.image_url,
        "watchedSizes": sorted(product.watched_sizes),
        "previousStock": sizes_to_dict(product.previous_stock),
        "notifiedSizes": sorted(product.notified_sizes),
        "createdAt": product.created_at,
        "lastChecked": product.last_checked,
        "lastError": product.last_error,
    }


def _str_set(raw: Any) -> set[str]:
    if not isinstance(raw, (list, tuple, set)):
        return set()
    return {str(x) for x in raw if isinstance(x, str) and x}


def product_from_record(rec: dict[str, Any], *, product_id: str | None = None) -> Product:
    return Product(
        id=str(product_id or rec["id"]),
        url=str(rec.get("url") or ""),
        title=str(rec.get("title") or ""),
        brand=str(rec.get("brand") or ""),
        price=str(rec.get("price") or ""),
        original_price=str(rec.get("originalPrice") or ""),
        image_url=str(rec.get("imageUrl") or ""),
        watched_sizes=_str_set(rec.get("watchedSizes")),
        previous_stock=sizes_from_dict(rec.get("previousStock")),
        notified_sizes=_str_set(rec.get("notifiedSizes")),
        created_at=rec.get("createdAt"),
        last_checked=rec.get("lastChecked"),
        last_error=rec.get("lastError"),
    )
