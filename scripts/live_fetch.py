from __future__ import annotations

import os
import sys

from restock_monitor.errors import FetchError
from restock_monitor.http_client import HttpClient
from restock_monitor.source import EspaceDesMarquesSource


def main() -> int:
    try:
        sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        sys.stderr.reconfigure(encoding="utf-8", errors="replace")
    except AttributeError:
        pass

    urls_env = os.getenv("LIVE_URLS", "").strip()
    urls = [u.strip() for u in urls_env.split(",") if u.strip()] if urls_env else sys.argv[1:]
    if not urls:
        print("usage: live_fetch.py URL [URL ...]  (or LIVE_URLS=url1,url2)", file=sys.stderr)
        return 2

    timeout_seconds = float(os.getenv("LIVE_TIMEOUT_SECONDS", "30"))
    proxy_url = os.getenv("PROXY_URL", "").strip() or None
    source = EspaceDesMarquesSource(HttpClient(timeout_seconds=timeout_seconds, proxy_url=proxy_url))

    errors: list[str] = []
    for url in urls:
        print(f"\n== {source.product_id(url) or '?'} :: {url}", flush=True)
        try:
            snap = source.fetch_snapshot(url)
        except FetchError as e:
            errors.append(f"  ✗ {url}: {e}")
            print(f"ok=False error={e}", flush=True)
            continue

        in_stock = sum(1 for e in snap.sizes.values() if e.in_stock)
        print(f"{snap.title} | {snap.brand} | {snap.price} (was {snap.original_price or '-'})", flush=True)
        print(f"  Stock: {in_stock} in stock, {len(snap.sizes) - in_stock} OOS", flush=True)
        for size, entry in snap.sizes.items():
            print(f"- {size} | in_stock={entry.in_stock} | {entry.stock_label} | {entry.variant_code}", flush=True)

    if errors:
        print(f"\nErrors ({len(errors)}):", flush=True)
        for e in errors:
            print(e, flush=True)
    return 1 if errors else 0


if __name__ == "__main__":
    raise SystemExit(main())
