from __future__ import annotations

import os
import sys
import threading
import time
from dataclasses import replace
from typing import Any, Callable, Iterable

from .diff import diff_stock
from .errors import DuplicateProduct, FetchError, InvalidIdentifier, NotFound, PersistenceError
from .models import CheckResult, Product, RestockEvent, Snapshot
from .notifier import Notifier
from .store import NullProductStore
from .timeutil import utc_now_iso


DEFAULT_INTERVAL_SECONDS = 60.0
DEFAULT_PACING_SECONDS = 1.0


def _log(msg: str) -> None:
    if os.getenv("MONITOR_LOG", "1").strip() != "0":
        print(msg, flush=True)


def _warn(msg: str) -> None:
    print(msg, file=sys.stderr, flush=True)


class Scheduler:
    """Runs ``cycle`` once right away, then every ``interval_seconds``.

    The running flag and the worker thread are swapped under one lock, so
    concurrent ``start()`` calls spawn exactly one thread. ``stop()`` only
    prevents further cycles; a cycle already in flight runs to completion,
    and a thread started after it waits for that cycle before its first one.
    """

    def __init__(self, cycle: Callable[[], Any], *, interval_seconds: float = DEFAULT_INTERVAL_SECONDS) -> None:
        self._cycle = cycle
        self._interval_seconds = interval_seconds
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._stop_event: threading.Event | None = None
        self._retired: threading.Thread | None = None

    @property
    def interval_seconds(self) -> float:
        return self._interval_seconds

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._thread is not None

    def start(self) -> bool:
        with self._lock:
            if self._thread is not None:
                return False
            stop_event = threading.Event()
            thread = threading.Thread(
                target=self._run,
                args=(stop_event, self._retired),
                name="restock-monitor-scheduler",
                daemon=True,
            )
            self._stop_event = stop_event
            self._thread = thread
            self._retired = None
            thread.start()
        _log(f"[monitor] started interval={self._interval_seconds:g}s")
        return True

    def stop(self) -> bool:
        with self._lock:
            if self._thread is None or self._stop_event is None:
                return False
            self._stop_event.set()
            self._retired = self._thread
            self._thread = None
            self._stop_event = None
        _log("[monitor] stopped")
        return True

    def _run(self, stop_event: threading.Event, previous: threading.Thread | None = None) -> None:
        if previous is not None:
            previous.join()
        while not stop_event.is_set():
            started = time.monotonic()
            try:
                self._cycle()
            except Exception as e:
                _warn(f"[monitor] cycle crashed: {type(e).__name__}: {e}")
            remaining = self._interval_seconds - (time.monotonic() - started)
            if stop_event.wait(max(0.0, remaining)):
                break


def _detached(product: Product) -> Product:
    return replace(
        product,
        watched_sizes=set(product.watched_sizes),
        previous_stock=dict(product.previous_stock),
        notified_sizes=set(product.notified_sizes),
    )


class MonitorService:
    """Owns the product registry, the scheduler and the check pipeline.

    ``source`` must provide ``fetch_snapshot(url)`` and ``product_id(url)``.
    Every check (scheduled or forced) holds ``_check_lock``; every registry
    or product field mutation holds ``_lock``. A check fetches without
    ``_lock`` and applies its diff under it, so a watch-list update made
    while a fetch is in flight is used by that very diff. Store writes and
    deletes hold ``_persist_lock`` so a removed product is never written back.
    """

    def __init__(
        self,
        *,
        source: Any,
        store: Any | None = None,
        notifier: Notifier | None = None,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        pacing_seconds: float = DEFAULT_PACING_SECONDS,
    ) -> None:
        self._source = source
        self._store = store if store is not None else NullProductStore()
        self._notifier = notifier if notifier is not None else Notifier(None)
        self._pacing_seconds = pacing_seconds
        self._products: dict[str, Product] = {}
        self._lock = threading.RLock()
        self._check_lock = threading.Lock()
        self._persist_lock = threading.Lock()
        self._scheduler = Scheduler(self.run_cycle, interval_seconds=interval_seconds)

    # -- lifecycle -----------------------------------------------------------

    @property
    def is_monitoring(self) -> bool:
        return self._scheduler.is_running

    @property
    def store_kind(self) -> str:
        return str(getattr(self._store, "kind", type(self._store).__name__))

    @property
    def notifier_configured(self) -> bool:
        return self._notifier.configured

    def start(self) -> bool:
        return self._scheduler.start()

    def stop(self) -> bool:
        return self._scheduler.stop()

    def restore(self, *, start: bool = True) -> int:
        """Load persisted products into the registry; starts monitoring if any."""
        try:
            loaded = self._store.load_all()
        except PersistenceError as e:
            _warn(f"[monitor] could not restore products: {e}")
            return 0
        with self._lock:
            for product in loaded:
                self._products.setdefault(product.id, product)
            if start and self._products:
                self._scheduler.start()
        _log(f"[monitor] restored products={len(loaded)} store={self.store_kind}")
        return len(loaded)

    # -- read access ---------------------------------------------------------

    def __len__(self) -> int:
        with self._lock:
            return len(self._products)

    def list_products(self) -> list[Product]:
        with self._lock:
            return [_detached(p) for p in self._products.values()]

    def get(self, product_id: str) -> Product:
        with self._lock:
            return _detached(self._require(product_id))

    def _require(self, product_id: str) -> Product:
        product = self._products.get(product_id)
        if product is None:
            raise NotFound(product_id)
        return product

    # -- control operations --------------------------------------------------

    def preview(self, url: str) -> tuple[str | None, Snapshot]:
        return self._source.product_id(url), self._source.fetch_snapshot(url)

    def add(self, url: str, watched_sizes: Iterable[str] = ()) -> Product:
        product_id = self._source.product_id(url)
        if not product_id:
            raise InvalidIdentifier(url)
        with self._lock:
            if product_id in self._products:
                raise DuplicateProduct(product_id)

        snapshot = self._source.fetch_snapshot(url)
        now = utc_now_iso()
        product = Product(
            id=product_id,
            url=url,
            title=snapshot.title,
            brand=snapshot.brand,
            price=snapshot.price,
            original_price=snapshot.original_price,
            image_url=snapshot.image_url,
            watched_sizes={s for s in watched_sizes if s},
            previous_stock=dict(snapshot.sizes),
            notified_sizes=set(),
            created_at=now,
            last_checked=now,
        )
        with self._lock:
            # Another add for the same id may have finished while we were fetching.
            if product_id in self._products:
                raise DuplicateProduct(product_id)
            self._products[product_id] = product
            self._scheduler.start()
        _log(f"[{product_id}] added title={product.title!r} sizes={len(product.previous_stock)}")
        self._persist()
        return self.get(product_id)

    def remove(self, product_id: str) -> None:
        with self._lock:
            self._require(product_id)
            del self._products[product_id]
            if not self._products:
                self._scheduler.stop()
        _log(f"[{product_id}] removed")
        with self._persist_lock:
            try:
                self._store.delete(product_id)
            except PersistenceError as e:
                _warn(f"[{product_id}] could not delete from store: {e}")

    def set_watched_sizes(self, product_id: str, sizes: Iterable[str]) -> Product:
        with self._lock:
            product = self._require(product_id)
            product.watched_sizes = {s for s in sizes if s}
        self._persist()
        return self.get(product_id)

    def reset_notifications(self, product_id: str) -> Product:
        with self._lock:
            self._require(product_id).notified_sizes.clear()
        self._persist()
        return self.get(product_id)

    def force_check(self, product_id: str) -> CheckResult:
        with self._lock:
            product = self._require(product_id)
        result, _events = self._check(product)
        self._persist()
        return result

    # -- checking ------------------------------------------------------------

    def run_cycle(self) -> None:
        with self._lock:
            products = list(self._products.values())
        if not products:
            return

        started = time.perf_counter()
        _log(f"[monitor] cycle start products={len(products)}")
        checked = failed = restocks = 0
        for product in products:
            with self._lock:
                registered = self._products.get(product.id) is product
            if not registered:
                _log(f"[{product.id}] skipped (removed)")
                continue
            if checked:
                time.sleep(self._pacing_seconds)
            result, events = self._check(product)
            checked += 1
            restocks += len(events)
            if not result.success:
                failed += 1

        self._persist()
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        _log(f"[monitor] cycle done checked={checked} failed={failed} restocks={restocks} {elapsed_ms}ms")

    def _check(self, product: Product) -> tuple[CheckResult, list[RestockEvent]]:
        with self._check_lock:
            try:
                snapshot = self._source.fetch_snapshot(product.url)
            except FetchError as e:
                return self._record_failure(product, str(e)), []
            except Exception as e:
                return self._record_failure(product, f"{type(e).__name__}: {e}"), []

            with self._lock:
                product.refresh_metadata(snapshot)
                diff = diff_stock(product.previous_stock, snapshot.sizes, product.watched_sizes, product.notified_sizes)
                product.previous_stock = dict(snapshot.sizes)
                product.last_checked = utc_now_iso()
                product.last_error = None

            in_stock = sum(1 for e in snapshot.sizes.values() if e.in_stock)
            _log(f"[{product.id}] ok sizes={len(snapshot.sizes)} in_stock={in_stock} restocks={len(diff.events)}")
            events = [RestockEvent(product=product, size=r.size, entry=r.entry) for r in diff.events]
            for event in events:
                _log(f"[{product.id}] RESTOCK {product.title} size={event.size}")
                try:
                    self._notifier.notify(event)
                except Exception as e:
                    _warn(f"[{product.id}] notify failed size={event.size}: {type(e).__name__}: {e}")
            return CheckResult(success=True, sizes=dict(snapshot.sizes)), events

    def _record_failure(self, product: Product, error: str) -> CheckResult:
        with self._lock:
            product.last_error = error
        _warn(f"[{product.id}] error :: {error}")
        return CheckResult(success=False, error=error)

    def _persist(self) -> None:
        with self._persist_lock:
            with self._lock:
                products = [_detached(p) for p in self._products.values()]
            try:
                self._store.upsert_all(products)
            except PersistenceError as e:
                _warn(f"[monitor] could not save {len(products)} products: {e}")
