from __future__ import annotations

import argparse
from dataclasses import replace
from pathlib import Path

from .config import STATE_BACKENDS, MonitorConfig, load_config
from .http_client import HttpClient
from .monitor import MonitorService
from .notifier import Notifier
from .source import EspaceDesMarquesSource, SnapshotSourceConfig
from .store import JsonProductStore, NullProductStore, SqliteProductStore


def build_store(cfg: MonitorConfig):
    if cfg.state_backend == "sqlite":
        return SqliteProductStore(cfg.sqlite_path)
    if cfg.state_backend == "memory":
        return NullProductStore()
    return JsonProductStore(cfg.state_path)


def build_service(cfg: MonitorConfig, *, dry_run: bool = False) -> tuple[MonitorService, EspaceDesMarquesSource]:
    client = HttpClient(timeout_seconds=cfg.timeout_seconds, proxy_url=cfg.proxy_url)
    source = EspaceDesMarquesSource(client, SnapshotSourceConfig(site_host=cfg.site_host))
    service = MonitorService(
        source=source,
        store=build_store(cfg),
        notifier=Notifier(None if dry_run else cfg.discord),
        interval_seconds=cfg.check_interval_seconds,
        pacing_seconds=cfg.pacing_seconds,
    )
    return service, source


def main(argv: list[str] | None = None) -> int:
    cfg = load_config()

    parser = argparse.ArgumentParser(prog="restock-monitor")
    parser.add_argument("--backend", choices=STATE_BACKENDS, default=cfg.state_backend)
    parser.add_argument("--state", default=str(cfg.state_path), help="JSON state file (backend=json).")
    parser.add_argument("--db", default=str(cfg.sqlite_path), help="SQLite database file (backend=sqlite).")
    parser.add_argument("--host", default=cfg.host)
    parser.add_argument("--port", type=int, default=cfg.port)
    parser.add_argument("--interval-seconds", type=float, default=cfg.check_interval_seconds)
    parser.add_argument("--timeout-seconds", type=float, default=cfg.timeout_seconds)
    parser.add_argument(
        "--once",
        action="store_true",
        help="Check every stored product once, save and exit instead of serving the API.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Do not send Discord notifications.",
    )
    args = parser.parse_args(argv)

    cfg = replace(
        cfg,
        state_backend=args.backend,
        state_path=Path(args.state),
        sqlite_path=Path(args.db),
        host=args.host,
        port=args.port,
        check_interval_seconds=args.interval_seconds,
        timeout_seconds=args.timeout_seconds,
    )
    service, source = build_service(cfg, dry_run=args.dry_run)

    if args.once:
        service.restore(start=False)
        service.run_cycle()
        return 0

    import uvicorn

    from .api import create_app

    app = create_app(service, accepts_url=source.accepts)
    print(f"[monitor] store={service.store_kind} discord={'on' if service.notifier_configured else 'off'}", flush=True)
    service.restore()
    try:
        uvicorn.run(app, host=cfg.host, port=cfg.port)
    finally:
        service.stop()
    return 0
