"""Observability setup for OpenTelemetry, metrics, and structured logging."""

import logging

from opentelemetry import trace, metrics
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest
import structlog

from .config import settings

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
BOOKINGS_CREATED = Counter(
    'bookings_created_total',
    'Total bookings created in PENDING',
    registry=REGISTRY
)

BOOKINGS_CONFIRMED = Counter(
    'bookings_confirmed_total',
    'Total bookings confirmed by payment',
    registry=REGISTRY
)

BOOKINGS_EXPIRED = Counter(
    'bookings_expired_total',
    'Total pending bookings cancelled by the expiry sweeper',
    registry=REGISTRY
)

BOOKINGS_CANCELLED = Counter(
    'bookings_cancelled_total',
    'Total bookings cancelled',
    ['reason'],
    registry=REGISTRY
)

BOOKING_TRANSITIONS = Counter(
    'booking_status_transitions_total',
    'Applied booking status transitions',
    ['from_status', 'to_status'],
    registry=REGISTRY
)

BOOKING_RACES_LOST = Counter(
    'booking_conditional_updates_lost_total',
    'Conditional booking updates that found the row already changed',
    ['operation'],
    registry=REGISTRY
)

EXPIRY_FAILURES = Counter(
    'booking_expiry_failures_total',
    'Bookings the sweeper failed to cancel',
    registry=REGISTRY
)

WALLET_REFUNDS = Counter(
    'wallet_refunds_total',
    'Refunds credited to wallets',
    registry=REGISTRY
)

WALLET_REFUNDED_AMOUNT = Counter(
    'wallet_refunded_amount_total',
    'Sum of refunded amounts credited to wallets',
    registry=REGISTRY
)

EVENTS_EMITTED = Counter(
    'booking_events_emitted_total',
    'Booking domain events published',
    ['event_type'],
    registry=REGISTRY
)

EVENTS_FAILED = Counter(
    'booking_events_failed_total',
    'Booking domain events that could not be published',
    ['event_type'],
    registry=REGISTRY
)

SWEEP_DURATION = Histogram(
    'booking_expiry_sweep_duration_seconds',
    'Duration of one expiry sweep',
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
    
    # Configure structlog
    structlog.configure(
        processors=[
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


def setup_tracing(app_name: str = "hotel-booking-api"):
    """Setup OpenTelemetry tracing."""
    
    # Create resource
    resource = Resource.create({
        "service.name": app_name,
        "service.version": "1.0.0",
        "environment": settings.environment,
    })
    
    # Setup tracer provider
    trace.set_tracer_provider(TracerProvider(resource=resource))
    
    # Setup OTLP exporter (if OTLP endpoint is configured)
    if settings.otlp_endpoint:
        otlp_exporter = OTLPSpanExporter(endpoint=settings.otlp_endpoint)
        span_processor = BatchSpanProcessor(otlp_exporter)
        trace.get_tracer_provider().add_span_processor(span_processor)
    
    # Get tracer
    tracer = trace.get_tracer(__name__)
    return tracer


def setup_metrics(app_name: str = "hotel-booking-api"):
    """Setup OpenTelemetry metrics."""
    
    # Create resource
    resource = Resource.create({
        "service.name": app_name,
        "service.version": "1.0.0",
        "environment": settings.environment,
    })
    
    # Setup OTLP metric exporter (if configured)
    if settings.otlp_endpoint:
        otlp_exporter = OTLPMetricExporter(endpoint=settings.otlp_endpoint)
        reader = PeriodicExportingMetricReader(exporter=otlp_exporter, export_interval_millis=60000)
        metrics.set_meter_provider(MeterProvider(resource=resource, metric_readers=[reader]))
    
    # Get meter
    meter = metrics.get_meter(__name__)
    return meter


def instrument_fastapi(app):
    """Instrument FastAPI with OpenTelemetry."""
    FastAPIInstrumentor.instrument_app(app)
    

def instrument_sqlalchemy():
    """Instrument SQLAlchemy with OpenTelemetry."""
    SQLAlchemyInstrumentor().instrument()


class MetricsCollector:
    """Collector for business metrics."""

    @staticmethod
    def record_booking_created():
        """Record a booking creation."""
        BOOKINGS_CREATED.inc()

    @staticmethod
    def record_booking_confirmed():
        """Record a payment confirmation."""
        BOOKINGS_CONFIRMED.inc()

    @staticmethod
    def record_booking_expired():
        """Record a booking cancelled for non-payment."""
        BOOKINGS_EXPIRED.inc()

    @staticmethod
    def record_booking_cancelled(reason: str):
        """Record a cancellation, labelled by its kind."""
        BOOKINGS_CANCELLED.labels(reason=reason).inc()

    @staticmethod
    def record_transition(from_status: str, to_status: str):
        """Record an applied status transition."""
        BOOKING_TRANSITIONS.labels(from_status=from_status, to_status=to_status).inc()

    @staticmethod
    def record_race_lost(operation: str):
        """Record a conditional update that affected no rows."""
        BOOKING_RACES_LOST.labels(operation=operation).inc()

    @staticmethod
    def record_expiry_failure():
        """Record a booking the sweeper could not cancel."""
        EXPIRY_FAILURES.inc()

    @staticmethod
    def record_refund(amount: float):
        """Record a wallet refund."""
        WALLET_REFUNDS.inc()
        WALLET_REFUNDED_AMOUNT.inc(amount)

    @staticmethod
    def record_event_emitted(event_type: str):
        """Record a published domain event."""
        EVENTS_EMITTED.labels(event_type=event_type).inc()

    @staticmethod
    def record_event_failed(event_type: str):
        """Record a domain event that could not be published."""
        EVENTS_FAILED.labels(event_type=event_type).inc()

    @staticmethod
    def observe_sweep_duration(seconds: float):
        """Record how long an expiry sweep took."""
        SWEEP_DURATION.observe(seconds)


def get_prometheus_metrics():
    """Get Prometheus metrics for the /metrics endpoint."""
    return generate_latest(REGISTRY)


# Global metrics collector instance
metrics_collector = MetricsCollector()
