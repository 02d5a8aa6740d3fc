"""
OpenTelemetry wiring: providers/exporters for traces, metrics and logs, plus
the instrument sets each service records simulated outcomes into.
"""

import logging
from contextlib import contextmanager

from opentelemetry import metrics, trace
from opentelemetry._logs import set_logger_provider
from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.metrics import CallbackOptions, Observation
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from . import config
from .simulator import SimulationOutcome
from .state import IncidentSnapshot, IncidentState

log = logging.getLogger(__name__)


def build_resource(service_name: str) -> Resource:
    return Resource.create({
        "service.name":           service_name,
        "service.version":        config.SERVICE_VERSION,
        "deployment.environment": config.DEPLOYMENT_ENVIRONMENT,
    })


def setup_telemetry(service_name: str, endpoint: str = None):
    """Install global tracer/meter/logger providers exporting over OTLP gRPC.

    Returns a ``shutdown()`` callable that flushes and stops all three
    providers. With ``OTEL_SDK_DISABLED=true`` nothing is installed and the
    API's no-op providers stay in place.
    """
    if config.OTEL_SDK_DISABLED:
        log.info("OpenTelemetry SDK disabled, telemetry for %s is a no-op", service_name)
        return lambda: None

    endpoint = endpoint or config.OTEL_ENDPOINT
    resource = build_resource(service_name)

    trace_provider = TracerProvider(resource=resource)
    trace_provider.add_span_processor(
        BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint, insecure=True))
    )
    trace.set_tracer_provider(trace_provider)

    reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(endpoint=endpoint, insecure=True),
        export_interval_millis=config.METRIC_EXPORT_INTERVAL_MS,
    )
    meter_provider = MeterProvider(resource=resource, metric_readers=[reader])
    metrics.set_meter_provider(meter_provider)

    log_provider = LoggerProvider(resource=resource)
    log_provider.add_log_record_processor(
        BatchLogRecordProcessor(OTLPLogExporter(endpoint=endpoint, insecure=True))
    )
    set_logger_provider(log_provider)
    otel_handler = LoggingHandler(level=logging.INFO, logger_provider=log_provider)
    logging.getLogger().addHandler(otel_handler)

    log.info("Telemetry for %s exporting to %s", service_name, endpoint)

    def shutdown():
        logging.getLogger().removeHandler(otel_handler)
        for name, provider in (("tracer", trace_provider),
                               ("meter", meter_provider),
                               ("logger", log_provider)):
            try:
                provider.shutdown()
            except Exception:
                log.error("Error shutting down %s provider", name, exc_info=True)

    return shutdown


class DatabaseInstruments:
    """Metrics of the simulated database service."""

    def __init__(self, meter: metrics.Meter, state: IncidentState):
        self._state = state
        self.queries = meter.create_counter(
            "db_queries_total", description="Total number of database queries processed")
        self.errors = meter.create_counter(
            "db_errors_total", description="Total number of database errors encountered")
        self.duration = meter.create_histogram(
            "db_query_duration_seconds", unit="s", description="Database query duration in seconds")
        self.connections = meter.create_up_down_counter(
            "db_connections_active", description="Number of active database connections")
        self.incident = meter.create_observable_gauge(
            "db_incident_active", callbacks=[self._observe_incident],
            description="Whether a database incident is currently active")
        self.transitions = meter.create_counter(
            "db_incident_transitions_total",
            description="Incident starts and resolutions seen by the incident clock")

    def _observe_incident(self, options: CallbackOptions):
        snapshot = self._state.snapshot()
        yield Observation(int(snapshot.active), {"incident_type": snapshot.kind.value})

    def on_transition(self, event: str, snapshot: IncidentSnapshot):
        """Incident clock listener."""
        self.transitions.add(1, {"event": event, "incident_type": snapshot.kind.value})

    @contextmanager
    def connection(self):
        """Count one active connection for the duration of the block."""
        self.connections.add(1)
        try:
            yield
        finally:
            self.connections.add(-1)

    def record(self, outcome: SimulationOutcome):
        attrs = outcome.attributes()
        self.queries.add(1, {"status": attrs["status"], "operation": attrs["operation"]})
        if not outcome.success:
            self.errors.add(1, {"error_type": attrs["error_type"], "operation": attrs["operation"]})
        self.duration.record(outcome.elapsed_ms / 1000, {"service": "database"})


class CoreInstruments:
    """Metrics of the core API service."""

    def __init__(self, meter: metrics.Meter):
        self.transactions = meter.create_counter(
            "api_transactions_total", description="Total number of API transactions processed")
        self.errors = meter.create_counter(
            "api_errors_total", description="Total number of API errors encountered")
        self.response_time = meter.create_histogram(
            "api_response_time_seconds", unit="s", description="API response time in seconds")
        self.db_call_duration = meter.create_histogram(
            "db_call_duration_seconds", unit="s", description="Database service call duration in seconds")
