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

SERVICE_NAME = "hotel-booking-api"

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

# Business metrics
HOLDS_CREATED = Counter(
    'room_holds_created_total',
    'Total room holds created',
    ['room_type_id'],
    registry=REGISTRY
)

HOLDS_RELEASED = Counter(
    'room_holds_released_total',
    'Total room holds explicitly released',
    registry=REGISTRY
)

HOLDS_EXPIRED = Counter(
    'room_holds_expired_total',
    'Total expired room holds reclaimed on access',
    registry=REGISTRY
)

HOLDS_EXTENDED = Counter(
    'room_holds_extended_total',
    'Total room hold extensions',
    registry=REGISTRY
)

BOOKINGS_CREATED = Counter(
    'bookings_created_total',
    'Total bookings created from holds',
    registry=REGISTRY
)

BOOKINGS_CONFIRMED = Counter(
    'bookings_confirmed_total',
    'Total bookings confirmed',
    registry=REGISTRY
)

BOOKINGS_CANCELLED = Counter(
    'bookings_cancelled_total',
    'Total bookings cancelled',
    ['refunded'],
    registry=REGISTRY
)

BOOKINGS_RESCHEDULED = Counter(
    'bookings_rescheduled_total',
    'Total bookings moved to new dates',
    registry=REGISTRY
)

CAPACITY_CONFLICTS = Counter(
    'inventory_capacity_conflicts_total',
    'Reservations rejected for lack of capacity',
    ['room_type_id'],
    registry=REGISTRY
)

TRANSACTION_RETRIES = Counter(
    'inventory_transaction_retries_total',
    'Inventory transactions retried after lock contention',
    ['operation'],
    registry=REGISTRY
)

TRANSACTIONS_ABORTED = Counter(
    'inventory_transactions_aborted_total',
    'Inventory transactions abandoned after exhausting retries',
    ['operation'],
    registry=REGISTRY
)

ACTIVE_HOLDS = Gauge(
    'room_holds_active',
    'Number of active holds seen by the last listing',
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
            # request_id is bound by RequestIDMiddleware
            structlog.contextvars.merge_contextvars,
            add_trace_context,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
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
        "service.version": "1.0.0",
        "environment": settings.environment,
    })


def setup_tracing():
    """Setup OpenTelemetry tracing."""
    provider = TracerProvider(resource=_resource())

    if settings.otlp_endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otlp_endpoint)))

    trace.set_tracer_provider(provider)
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


def instrument_sqlalchemy(engine=None):
    """Instrument SQLAlchemy with OpenTelemetry."""
    if engine is not None:
        SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)
    else:
        SQLAlchemyInstrumentor().instrument()


class MetricsCollector:
    """Collector for business metrics."""

    @staticmethod
    def record_hold_created(room_type_id: int):
        HOLDS_CREATED.labels(room_type_id=str(room_type_id)).inc()

    @staticmethod
    def record_hold_released():
        HOLDS_RELEASED.inc()

    @staticmethod
    def record_holds_expired(count: int = 1):
        HOLDS_EXPIRED.inc(count)

    @staticmethod
    def record_hold_extended():
        HOLDS_EXTENDED.inc()

    @staticmethod
    def record_booking_created():
        BOOKINGS_CREATED.inc()

    @staticmethod
    def record_booking_confirmed():
        BOOKINGS_CONFIRMED.inc()

    @staticmethod
    def record_booking_cancelled(refunded: bool):
        BOOKINGS_CANCELLED.labels(refunded=str(refunded).lower()).inc()

    @staticmethod
    def record_booking_rescheduled():
        BOOKINGS_RESCHEDULED.inc()

    @staticmethod
    def record_capacity_conflict(room_type_id: int):
        CAPACITY_CONFLICTS.labels(room_type_id=str(room_type_id)).inc()

    @staticmethod
    def record_transaction_retry(operation: str):
        TRANSACTION_RETRIES.labels(operation=operation).inc()

    @staticmethod
    def record_transaction_aborted(operation: str):
        TRANSACTIONS_ABORTED.labels(operation=operation).inc()

    @staticmethod
    def set_active_holds(count: int):
        ACTIVE_HOLDS.set(count)


def get_prometheus_metrics():
    """Get Prometheus metrics for the /metrics endpoint."""
    return generate_latest(REGISTRY)


# Global metrics collector instance
metrics_collector = MetricsCollector()


class StructuredLogger:
    """Structured logger with business context."""

    def __init__(self, name_or_logger):
        if isinstance(name_or_logger, str):
            self.logger = structlog.get_logger(name_or_logger)
        else:
            self.logger = name_or_logger

    def info(self, message: str, **kwargs):
        """Log info message with context."""
        self.logger.info(message, **kwargs)

    def warning(self, message: str, **kwargs):
        """Log warning message with context."""
        self.logger.warning(message, **kwargs)

    def error(self, message: str, **kwargs):
        """Log error message with context."""
        self.logger.error(message, **kwargs)

    def exception(self, message: str, **kwargs):
        """Log error message with the active exception attached."""
        self.logger.exception(message, **kwargs)

    def debug(self, message: str, **kwargs):
        """Log debug message with context."""
        self.logger.debug(message, **kwargs)

    def with_context(self, **kwargs):
        """Add context to logger."""
        return StructuredLogger(self.logger.bind(**kwargs))


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger instance."""
    return StructuredLogger(name)
