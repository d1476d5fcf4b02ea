from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, List

from fastapi import FastAPI, HTTPException, status
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field

from .errors import DuplicateProduct, FetchError, InvalidIdentifier, NotFound
from .models import Snapshot, product_to_record, sizes_to_dict
from .monitor import MonitorService


class ProductUrl(BaseModel):
    url: str = ""


class AddProductRequest(BaseModel):
    url: str = ""
    watchedSizes: List[str] = Field(default_factory=list)


class WatchedSizesRequest(BaseModel):
    watchedSizes: List[str] = Field(default_factory=list)


def _snapshot_to_dict(snapshot: Snapshot) -> dict[str, Any]:
    return {
        "title": snapshot.title,
        "brand": snapshot.brand,
        "price": snapshot.price,
        "originalPrice": snapshot.original_price,
        "imageUrl": snapshot.image_url,
        "availability": snapshot.availability,
        "sizes": sizes_to_dict(snapshot.sizes),
    }


def create_app(service: MonitorService, *, accepts_url: Callable[[str], bool] | None = None) -> FastAPI:
    """Control surface over a running MonitorService."""
    app = FastAPI(title="Restock Monitor", version="0.1.0")
    started_at = datetime.now(timezone.utc).isoformat()

    def _check_url(url: str) -> None:
        if not url or (accepts_url is not None and not accepts_url(url)):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid URL - not a supported product page")

    @app.get("/health")
    def healthcheck():
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "startedAt": started_at,
            "monitoredProducts": len(service),
            "isMonitoring": service.is_monitoring,
            "store": service.store_kind,
            "hasDiscordWebhook": service.notifier_configured,
        }

    @app.get("/ping", response_class=PlainTextResponse)
    def ping():
        return "pong"

    @app.get("/api/products")
    def list_products():
        products = [product_to_record(p) for p in service.list_products()]
        return {"products": products, "isMonitoring": service.is_monitoring}

    @app.post("/api/products/fetch")
    def fetch_product(request: ProductUrl):
        _check_url(request.url)
        try:
            product_id, snapshot = service.preview(request.url)
        except FetchError as exc:
            raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
        return {"id": product_id, "url": request.url, **_snapshot_to_dict(snapshot)}

    @app.post("/api/products")
    def add_product(request: AddProductRequest):
        _check_url(request.url)
        try:
            product = service.add(request.url, request.watchedSizes)
        except (InvalidIdentifier, DuplicateProduct) as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
        except FetchError as exc:
            raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
        return {
            "success": True,
            "message": f"Now monitoring: {product.title}",
            "product": product_to_record(product),
        }

    @app.delete("/api/products/{product_id}")
    def remove_product(product_id: str):
        try:
            service.remove(product_id)
        except NotFound as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
        return {"success": True, "message": "Product removed"}

    @app.put("/api/products/{product_id}/sizes")
    def update_sizes(product_id: str, request: WatchedSizesRequest):
        try:
            product = service.set_watched_sizes(product_id, request.watchedSizes)
        except NotFound as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
        return {"success": True, "watchedSizes": sorted(product.watched_sizes)}

    @app.post("/api/products/{product_id}/reset")
    def reset_notifications(product_id: str):
        try:
            service.reset_notifications(product_id)
        except NotFound as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
        return {"success": True, "message": "Notifications reset"}

    @app.post("/api/products/{product_id}/check")
    def force_check(product_id: str):
        try:
            result = service.force_check(product_id)
        except NotFound as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
        body: dict[str, Any] = {"success": result.success}
        if result.sizes is not None:
            body["sizes"] = sizes_to_dict(result.sizes)
        if result.error is not None:
            body["error"] = result.error
        return body

    @app.post("/api/monitoring/start")
    def start_monitoring():
        service.start()
        return {"success": True, "message": "Monitoring started", "isMonitoring": service.is_monitoring}

    @app.post("/api/monitoring/stop")
    def stop_monitoring():
        service.stop()
        return {"success": True, "message": "Monitoring stopped", "isMonitoring": service.is_monitoring}

    return app
