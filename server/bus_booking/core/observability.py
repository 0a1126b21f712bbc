"""Observability setup for OpenTelemetry, metrics, and structured logging."""

import logging

import structlog
from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest

from .config import settings

SERVICE_NAME = "bus-booking-api"
API_VERSION = "1.0.0"

# Prometheus metrics
REGISTRY = CollectorRegistry()

# Request metrics
REQUEST_COUNT = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status_code'],
    registry=REGISTRY
)

REQUEST_DURATION = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    registry=REGISTRY
)

# Seat reservation metrics
HOLDS_CREATED = Counter(
    'seat_holds_created_total',
    'Total seat holds issued, including renewals',
    registry=REGISTRY
)

HOLD_CONFLICTS = Counter(
    'seat_hold_conflicts_total',
    'Hold attempts rejected because seats were unavailable',
    ['blocked_by'],
    registry=REGISTRY
)

HOLDS_RELEASED = Counter(
    'seat_holds_released_total',
    'Seats returned to available by their holder',
    registry=REGISTRY
)

HOLDS_EXPIRED = Counter(
    'seat_holds_expired_total',
    'Total seat holds removed by the expiry sweep',
    registry=REGISTRY
)

BOOKINGS_COMMITTED = Counter(
    'bookings_committed_total',
    'Total bookings committed',
    registry=REGISTRY
)

BOOKINGS_CANCELLED = Counter(
    'bookings_cancelled_total',
    'Total bookings cancelled',
    registry=REGISTRY
)

ACTIVE_HOLDS = Gauge(
    'seat_holds_active',
    'Number of live holds after the last sweep',
    registry=REGISTRY
)

REALTIME_SUBSCRIBERS = Gauge(
    'realtime_subscribers',
    'Open schedule topic subscriptions',
    registry=REGISTRY
)

REALTIME_DROPPED = Counter(
    'realtime_dropped_deliveries_total',
    'Seat events that could not be delivered to a subscriber',
    registry=REGISTRY
)


def setup_structured_logging():
    """Configure structured logging with structlog."""

    def add_trace_context(logger, method_name, event_dict):
        """Add trace context to log events."""
        span = trace.get_current_span()
        if span and span.is_recording():
            ctx = span.get_span_context()
            event_dict['trace_id'] = format(ctx.trace_id, '032x')
            event_dict['span_id'] = format(ctx.span_id, '016x')
        return event_dict

    structlog.configure(
        processors=[
            # Request IDs are bound as context vars by the middleware
            structlog.contextvars.merge_contextvars,
            add_trace_context,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.ConsoleRenderer() if settings.debug else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, settings.log_level)
        ),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _resource() -> Resource:
    return Resource.create({
        "service.name": SERVICE_NAME,
        "service.version": API_VERSION,
        "environment": settings.environment,
    })


def setup_tracing():
    """Setup OpenTelemetry tracing."""
    provider = TracerProvider(resource=_resource())
    trace.set_tracer_provider(provider)

    # Export spans only when a collector is configured
    if settings.otlp_endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otlp_endpoint)))

    return trace.get_tracer(__name__)


def setup_metrics():
    """Setup OpenTelemetry metrics."""
    if settings.otlp_endpoint:
        otlp_exporter = OTLPMetricExporter(endpoint=settings.otlp_endpoint)
        reader = PeriodicExportingMetricReader(exporter=otlp_exporter, export_interval_millis=60000)
        metrics.set_meter_provider(MeterProvider(resource=_resource(), metric_readers=[reader]))

    return metrics.get_meter(__name__)


def instrument_fastapi(app):
    """Instrument FastAPI with OpenTelemetry."""
    FastAPIInstrumentor.instrument_app(app)


def instrument_sqlalchemy():
    """Instrument SQLAlchemy with OpenTelemetry."""
    SQLAlchemyInstrumentor().instrument()


class MetricsCollector:
    """Collector for seat reservation metrics."""

    @staticmethod
    def record_hold_created():
        HOLDS_CREATED.inc()

    @staticmethod
    def record_hold_conflict(blocked_by: str):
        """Record a rejected hold attempt; ``blocked_by`` is ``held`` or ``booked``."""
        HOLD_CONFLICTS.labels(blocked_by=blocked_by).inc()

    @staticmethod
    def record_seats_released(count: int):
        HOLDS_RELEASED.inc(count)

    @staticmethod
    def record_holds_expired(count: int):
        HOLDS_EXPIRED.inc(count)

    @staticmethod
    def record_booking_committed():
        BOOKINGS_COMMITTED.inc()

    @staticmethod
    def record_booking_cancelled():
        BOOKINGS_CANCELLED.inc()

    @staticmethod
    def set_active_holds(count: int):
        ACTIVE_HOLDS.set(count)

    @staticmethod
    def set_realtime_subscribers(count: int):
        REALTIME_SUBSCRIBERS.set(count)

    @staticmethod
    def record_dropped_delivery():
        REALTIME_DROPPED.inc()


def get_prometheus_metrics():
    """Get Prometheus metrics for the /metrics endpoint."""
    return generate_latest(REGISTRY)


# Global metrics collector instance
metrics_collector = MetricsCollector()
