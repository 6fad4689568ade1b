"""
Prometheus metrics blueprint for observability.

Exposes /metrics with HTTP request metrics and checkout counters fed by
the service signals. Restrict it to the internal network in production.
"""
from flask import Blueprint, Response, request, g
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CollectorRegistry, CONTENT_TYPE_LATEST
from prometheus_client import multiprocess, REGISTRY
import time
import os

from pos.signals import (
    sale_committed, sale_cancelled, sale_returned, stock_adjusted,
    promo_code_applied, promo_code_rejected
)

metrics_bp = Blueprint('metrics', __name__)

# Check if running in multi-process mode (Gunicorn)
MULTIPROCESS_MODE = os.environ.get('PROMETHEUS_MULTIPROC_DIR') is not None

if MULTIPROCESS_MODE:
    registry = CollectorRegistry()
    multiprocess.MultiProcessCollector(registry)
else:
    registry = REGISTRY

_metric_registry = registry if not MULTIPROCESS_MODE else None

# HTTP Request Metrics
http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'http_status'],
    registry=_metric_registry
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request latency in seconds',
    ['method', 'endpoint'],
    registry=_metric_registry,
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)
)

http_requests_in_flight = Gauge(
    'http_requests_in_flight',
    'Number of HTTP requests currently being processed',
    registry=_metric_registry
)

# Checkout Metrics
pos_sales_total = Counter(
    'pos_sales_total',
    'Sales by outcome',
    ['outcome'],
    registry=_metric_registry
)

pos_sales_amount_total = Counter(
    'pos_sales_amount_total',
    'Sum of committed sale final amounts',
    registry=_metric_registry
)

pos_promo_codes_total = Counter(
    'pos_promo_codes_total',
    'Promo code applications by result',
    ['result', 'reason'],
    registry=_metric_registry
)

pos_stock_adjustments_total = Counter(
    'pos_stock_adjustments_total',
    'Manual stock adjustments by reason',
    ['reason'],
    registry=_metric_registry
)


def _on_sale_committed(sale, totals=None, **extra):
    pos_sales_total.labels(outcome='committed').inc()
    if totals:
        pos_sales_amount_total.inc(float(totals['total']))


def _on_sale_cancelled(sale, **extra):
    pos_sales_total.labels(outcome='cancelled').inc()


def _on_sale_returned(sale, **extra):
    pos_sales_total.labels(outcome='returned').inc()


def _on_promo_applied(code, **extra):
    pos_promo_codes_total.labels(result='applied', reason='').inc()


def _on_promo_rejected(code, reason=None, **extra):
    pos_promo_codes_total.labels(result='rejected', reason=reason or 'UNKNOWN').inc()


def _on_stock_adjusted(product, reason=None, **extra):
    pos_stock_adjustments_total.labels(reason=reason or 'OTHER').inc()


def connect_metrics_receivers() -> None:
    """Subscribe the checkout counters to the service signals."""
    sale_committed.connect(_on_sale_committed)
    sale_cancelled.connect(_on_sale_cancelled)
    sale_returned.connect(_on_sale_returned)
    promo_code_applied.connect(_on_promo_applied)
    promo_code_rejected.connect(_on_promo_rejected)
    stock_adjusted.connect(_on_stock_adjusted)


def setup_metrics_instrumentation(app):
    """
    Setup before_request and after_request hooks for automatic metrics collection.

    This should be called from app factory after app creation.
    """

    @app.before_request
    def before_request_metrics():
        """Record request start time and increment in-flight counter."""
        g._prometheus_metrics_start_time = time.time()
        http_requests_in_flight.inc()

    @app.after_request
    def after_request_metrics(response):
        """Record request metrics after response is ready."""
        if hasattr(g, '_prometheus_metrics_start_time'):
            duration = time.time() - g._prometheus_metrics_start_time
            endpoint = request.endpoint or 'unknown'

            http_request_duration_seconds.labels(
                method=request.method,
                endpoint=endpoint
            ).observe(duration)

            http_requests_total.labels(
                method=request.method,
                endpoint=endpoint,
                http_status=response.status_code
            ).inc()

            http_requests_in_flight.dec()

        return response

    connect_metrics_receivers()


@metrics_bp.route('/metrics')
def metrics():
    """
    Prometheus metrics endpoint.

    Not authenticated: expose only to the Prometheus server.
    """
    data = generate_latest(registry)
    return Response(data, mimetype=CONTENT_TYPE_LATEST)
