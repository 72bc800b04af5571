"""
Prometheus metrics for REST calls and order book synchronization.
"""
from typing import Optional

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge


class ClientMetrics:
    """Metrics collector for the client and its order books."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        registry = registry if registry is not None else REGISTRY

        # REST metrics
        self.requests = Counter(
            'huobi_requests_total',
            'Total number of REST requests sent',
            ['endpoint', 'method'],
            registry=registry
        )

        self.request_errors = Counter(
            'huobi_request_errors_total',
            'Total number of failed REST requests',
            ['endpoint', 'error_type'],
            registry=registry
        )

        # Order book metrics
        self.orderbook_resyncs = Counter(
            'huobi_orderbook_resyncs_total',
            'Total number of order book resynchronizations',
            ['symbol', 'reason'],
            registry=registry
        )

        self.orderbook_updates = Counter(
            'huobi_orderbook_updates_total',
            'Total number of order book messages applied',
            ['symbol', 'kind'],
            registry=registry
        )

        self.orderbook_levels = Gauge(
            'huobi_orderbook_levels',
            'Current number of price levels per side',
            ['symbol', 'side'],
            registry=registry
        )

    def record_request(self, endpoint: str, method: str) -> None:
        self.requests.labels(endpoint=endpoint, method=method).inc()

    def record_request_error(self, endpoint: str, error: Exception) -> None:
        self.request_errors.labels(endpoint=endpoint, error_type=type(error).__name__).inc()

    def record_resync(self, symbol: str, reason: str) -> None:
        self.orderbook_resyncs.labels(symbol=symbol, reason=reason).inc()

    def record_book_update(self, symbol: str, kind: str, bid_levels: int, ask_levels: int) -> None:
        """Count an applied snapshot or delta and publish the resulting depth."""
        self.orderbook_updates.labels(symbol=symbol, kind=kind).inc()
        self.orderbook_levels.labels(symbol=symbol, side='bid').set(bid_levels)
        self.orderbook_levels.labels(symbol=symbol, side='ask').set(ask_levels)
