from __future__ import annotations

import json
import os
import sqlite3
import sys
import threading
from contextlib import closing
from pathlib import Path
from typing import Any, Iterable

from .errors import PersistenceError
from .models import Product, product_from_record, product_to_record
from .timeutil import utc_now_iso


SCHEMA_VERSION = 1


def _warn(msg: str) -> None:
    print(f"[store] {msg}", file=sys.stderr, flush=True)


class NullProductStore:
    """In-memory mode: nothing survives a restart."""

    kind = "memory"

    def load_all(self) -> list[Product]:
        return []

    def upsert_all(self, products: Iterable[Product]) -> None:
        return None

    def delete(self, product_id: str) -> None:
        return None


def _empty_state() -> dict[str, Any]:
    return {"schema_version": SCHEMA_VERSION, "updated_at": utc_now_iso(), "products": {}}


class JsonProductStore:
    """Products mirrored into a single JSON document keyed by product id."""

    kind = "json"

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> dict[str, Any]:
        if not self._path.exists():
            return _empty_state()
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            _warn(f"ignoring unreadable state file {self._path}: {e}")
            return _empty_state()
        if not isinstance(data, dict):
            return _empty_state()
        if not isinstance(data.get("products"), dict):
            data["products"] = {}
        if data.get("schema_version") != SCHEMA_VERSION:
            migrated = _empty_state()
            migrated["products"] = data["products"]
            return migrated
        return data

    def _write(self, state: dict[str, Any]) -> None:
        out = {**state, "schema_version": SCHEMA_VERSION, "updated_at": utc_now_iso()}
        tmp = self._path.with_name(self._path.name + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(out, ensure_ascii=False, indent=2, sort_keys=True) + "\n", encoding="utf-8")
            os.replace(tmp, self._path)
        except OSError as e:
            raise PersistenceError(f"could not write {self._path}: {e}") from e

    def load_all(self) -> list[Product]:
        with self._lock:
            state = self._read()
        products: list[Product] = []
        for pid, rec in state["products"].items():
            if not isinstance(rec, dict) or not rec.get("url"):
                continue
            products.append(product_from_record(rec, product_id=pid))
        return products

    def upsert_all(self, products: Iterable[Product]) -> None:
        with self._lock:
            state = self._read()
            for p in products:
                state["products"][p.id] = product_to_record(p)
            self._write(state)

    def delete(self, product_id: str) -> None:
        with self._lock:
            state = self._read()
            if state["products"].pop(product_id, None) is None:
                return
            self._write(state)


class SqliteProductStore:
    """One row per product; set and stock columns hold JSON text."""

    kind = "sqlite"

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()
        self._initialized = False

    def _connect(self) -> sqlite3.Connection:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        return sqlite3.connect(self._path)

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        if self._initialized:
            return
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS monitored_products (
              id TEXT PRIMARY KEY,
              url TEXT NOT NULL,
              title TEXT,
              brand TEXT,
              price TEXT,
              original_price TEXT,
              image_url TEXT,
              watched_sizes TEXT NOT NULL DEFAULT '[]',
              previous_stock TEXT NOT NULL DEFAULT '{}',
              notified_sizes TEXT NOT NULL DEFAULT '[]',
              created_at TEXT,
              last_checked TEXT,
              last_error TEXT
            )
            """
        )
        self._initialized = True

    def load_all(self) -> list[Product]:
        try:
            with self._lock, closing(self._connect()) as conn:
                self._ensure_schema(conn)
                rows = conn.execute(
                    "SELECT id, url, title, brand, price, original_price, image_url, watched_sizes,"
                    " previous_stock, notified_sizes, created_at, last_checked, last_error FROM monitored_products"
                ).fetchall()
        except sqlite3.Error as e:
            raise PersistenceError(f"could not load products from {self._path}: {e}") from e

        products: list[Product] = []
        for row in rows:
            (pid, url, title, brand, price, original_price, image_url, watched, stock, notified, created_at, last_checked, last_error) = row
            try:
                rec = {
                    "url": url,
                    "title": title,
                    "brand": brand,
                    "price": price,
                    "originalPrice": original_price,
                    "imageUrl": image_url,
                    "watchedSizes": json.loads(watched or "[]"),
                    "previousStock": json.loads(stock or "{}"),
                    "notifiedSizes": json.loads(notified or "[]"),
                    "createdAt": created_at,
                    "lastChecked": last_checked,
                    "lastError": last_error,
                }
            except ValueError as e:
                _warn(f"skipping product {pid} with corrupt row: {e}")
                continue
            products.append(product_from_record(rec, product_id=pid))
        return products

    def upsert_all(self, products: Iterable[Product]) -> None:
        rows = []
        for p in products:
            rec = product_to_record(p)
            rows.append(
                (
                    p.id,
                    p.url,
                    p.title,
                    p.brand,
                    p.price,
                    p.original_price,
                    p.image_url,
                    json.dumps(rec["watchedSizes"], ensure_ascii=False),
                    json.dumps(rec["previousStock"], ensure_ascii=False),
                    json.dumps(rec["notifiedSizes"], ensure_ascii=False),
                    p.created_at,
                    p.last_checked,
                    p.last_error,
                )
            )
        try:
            with self._lock, closing(self._connect()) as conn:
                self._ensure_schema(conn)
                conn.executemany(
                    """
                    INSERT INTO monitored_products (id, url, title, brand, price, original_price, image_url,
                      watched_sizes, previous_stock, notified_sizes, created_at, last_checked, last_error)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                      title = excluded.title,
                      brand = excluded.brand,
                      price = excluded.price,
                      original_price = excluded.original_price,
                      image_url = excluded.image_url,
                      watched_sizes = excluded.watched_sizes,
                      previous_stock = excluded.previous_stock,
                      notified_sizes = excluded.notified_sizes,
                      last_checked = excluded.last_checked,
                      last_error = excluded.last_error
                    """,
                    rows,
                )
                conn.commit()
        except sqlite3.Error as e:
            raise PersistenceError(f"could not save products to {self._path}: {e}") from e

    def delete(self, product_id: str) -> None:
        try:
            with self._lock, closing(self._connect()) as conn:
                self._ensure_schema(conn)
                conn.execute("DELETE FROM monitored_products WHERE id = ?", (product_id,))
                conn.commit()
        except sqlite3.Error as e:
            raise PersistenceError(f"could not delete product {product_id}: {e}") from e
