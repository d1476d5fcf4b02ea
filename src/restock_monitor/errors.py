from __future__ import annotations


class MonitorError(Exception):
    """Base class for every error raised by the restock monitor."""


class FetchError(MonitorError):
    """Transport failure, timeout or non-200 response from the snapshot source."""


class ParseError(MonitorError):
    """Malformed snapshot payload."""


class DuplicateProduct(MonitorError):
    def __init__(self, product_id: str) -> None:
        super().__init__(f"product {product_id} is already being monitored")
        self.product_id = product_id


class InvalidIdentifier(MonitorError):
    def __init__(self, url: str) -> None:
        super().__init__(f"could not extract product id from {url}")
        self.url = url


class NotFound(MonitorError):
    def __init__(self, product_id: str) -> None:
        super().__init__(f"product {product_id} not found")
        self.product_id = product_id


class PersistenceError(MonitorError):
    """The persistence adapter failed to read or write."""
