"""OpenTelemetry setup - traces and metrics over OTLP/HTTP.

When OTEL_ENABLED is true, setup_telemetry():
- builds a Resource (service name, version, deployment environment)
- installs a TracerProvider with a batching OTLP span exporter
- installs a MeterProvider with a periodic OTLP metric reader
- sets the global propagator to W3C trace context + baggage

and returns a Telemetry handle whose tracer/meter feed TracingMiddleware.
When disabled, it returns a handle with no tracer or meter; the middleware
then only manages the correlation ID.

Telemetry.shutdown() flushes and closes the providers. It runs during process
shutdown with its own timeout, independent of the HTTP drain timeout.
"""

from dataclasses import dataclass

from opentelemetry import metrics, trace
from opentelemetry.baggage.propagation import W3CBaggagePropagator
from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.metrics import Meter
from opentelemetry.propagate import set_global_textmap
from opentelemetry.propagators.composite import CompositePropagator
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Tracer
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

from stencil.config import Settings
from stencil.logging import get_logger

logger = get_logger(__name__)

INSTRUMENTATION_NAME = "stencil"

SPAN_EXPORT_DELAY_MS = 5_000
METRIC_EXPORT_INTERVAL_MS = 10_000

# Independent of SHUTDOWN_TIMEOUT
TELEMETRY_SHUTDOWN_TIMEOUT_S = 5.0


@dataclass
class Telemetry:
    """Handle on the configured providers.

    Attributes:
        tracer_provider: SDK tracer provider, or None when disabled.
        meter_provider: SDK meter provider, or None when disabled.
    """

    tracer_provider: TracerProvider | None = None
    meter_provider: MeterProvider | None = None

    @classmethod
    def disabled(cls) -> "Telemetry":
        return cls()

    @property
    def enabled(self) -> bool:
        return self.tracer_provider is not None

    @property
    def tracer(self) -> Tracer | None:
        if self.tracer_provider is None:
            return None
        return self.tracer_provider.get_tracer(INSTRUMENTATION_NAME)

    @property
    def meter(self) -> Meter | None:
        if self.meter_provider is None:
            return None
        return self.meter_provider.get_meter(INSTRUMENTATION_NAME)

    def shutdown(self, timeout: float = TELEMETRY_SHUTDOWN_TIMEOUT_S) -> bool:
        """Flush pending spans/metrics and shut the providers down.

        Returns:
            True if everything flushed within the timeout, False otherwise.
            Failures are logged, never raised.
        """
        if not self.enabled:
            return True

        timeout_ms = int(timeout * 1000)
        ok = True

        if self.tracer_provider is not None:
            try:
                if not self.tracer_provider.force_flush(timeout_millis=timeout_ms):
                    logger.warning("telemetry_trace_flush_timeout", timeout_s=timeout)
                    ok = False
                self.tracer_provider.shutdown()
            except Exception as e:
                logger.error("telemetry_trace_shutdown_failed", error=str(e))
                ok = False

        if self.meter_provider is not None:
            try:
                self.meter_provider.shutdown(timeout_millis=timeout_ms)
            except Exception as e:
                logger.error("telemetry_metric_shutdown_failed", error=str(e))
                ok = False

        logger.info("telemetry_shutdown", ok=ok)
        return ok


def build_resource(settings: Settings) -> Resource:
    """Resource attributes identifying this service."""
    return Resource.create(
        {
            "service.name": settings.otel_service_name,
            "service.version": settings.otel_service_version,
            "deployment.environment": settings.environment,
        }
    )


def _signal_endpoint(base: str, signal: str) -> str:
    return f"{base.rstrip('/')}/v1/{signal}"


def setup_telemetry(settings: Settings) -> Telemetry:
    """Initialize OpenTelemetry from settings. Call once at startup.

    Args:
        settings: Application settings (OTEL_* fields).

    Returns:
        Telemetry handle; Telemetry.disabled() when OTEL_ENABLED is false.
    """
    if not settings.otel_enabled:
        logger.info("telemetry_disabled")
        return Telemetry.disabled()

    resource = build_resource(settings)
    endpoint = settings.otel_exporter_otlp_endpoint

    tracer_provider = TracerProvider(resource=resource)
    tracer_provider.add_span_processor(
        BatchSpanProcessor(
            OTLPSpanExporter(endpoint=_signal_endpoint(endpoint, "traces")),
            schedule_delay_millis=SPAN_EXPORT_DELAY_MS,
        )
    )
    trace.set_tracer_provider(tracer_provider)
    logger.info("trace_provider_initialized")

    meter_provider = MeterProvider(
        resource=resource,
        metric_readers=[
            PeriodicExportingMetricReader(
                OTLPMetricExporter(endpoint=_signal_endpoint(endpoint, "metrics")),
                export_interval_millis=METRIC_EXPORT_INTERVAL_MS,
            )
        ],
    )
    metrics.set_meter_provider(meter_provider)
    logger.info("meter_provider_initialized")

    set_global_textmap(
        CompositePropagator([TraceContextTextMapPropagator(), W3CBaggagePropagator()])
    )

    logger.info(
        "telemetry_initialized",
        service=settings.otel_service_name,
        endpoint=endpoint,
    )
    return Telemetry(tracer_provider=tracer_provider, meter_provider=meter_provider)
