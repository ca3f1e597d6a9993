"""Chat engine metrics exported through OpenTelemetry.

The counters and histograms named in ``telemetry_port`` are registered up
front; any other name gets an instrument on first use.
"""

import logging
from dataclasses import dataclass
from importlib import import_module
from typing import Any

from tutor_rag.application.ports import TelemetryPort
from tutor_rag.application.ports.telemetry_port import (
    COUNTERS,
    HISTOGRAMS,
    REQUEST_LATENCY_MS,
)

logger = logging.getLogger(__name__)

_UNITS = {REQUEST_LATENCY_MS: "ms"}


@dataclass
class OtelConfig:
    service_name: str = "tutor-rag"
    otlp_endpoint: str | None = None  # grpc, e.g. http://localhost:4317
    environment: str = "production"
    enable_console: bool = False


class NoopTelemetry(TelemetryPort):
    """Discards every metric; used when telemetry is switched off."""

    def incr(self, name: str, tags: dict[str, Any] | None = None) -> None:
        return None

    def observe(self, name: str, value: float, tags: dict[str, Any] | None = None) -> None:
        return None


class OpenTelemetryAdapter(TelemetryPort):
    """TelemetryPort backed by an OpenTelemetry MeterProvider.

    If the SDK cannot be set up the adapter stays usable and records nothing;
    ``enabled`` tells the two cases apart. Recording errors are logged at
    debug level and never reach the chat turn.
    """

    def __init__(self, cfg: OtelConfig) -> None:
        self._cfg = cfg
        self._counters: dict[str, Any] = {}
        self._histograms: dict[str, Any] = {}
        self._meter = self._build_meter()
        if self._meter is not None:
            for name in COUNTERS:
                self._instrument(self._counters, name)
            for name in HISTOGRAMS:
                self._instrument(self._histograms, name)

    @property
    def enabled(self) -> bool:
        return self._meter is not None

    def _build_meter(self) -> Any | None:
        try:
            sdk_metrics = import_module("opentelemetry.sdk.metrics")
            sdk_export = import_module("opentelemetry.sdk.metrics.export")
            sdk_resources = import_module("opentelemetry.sdk.resources")
            api_metrics = import_module("opentelemetry.metrics")

            readers = []
            if self._cfg.otlp_endpoint:
                grpc = import_module("opentelemetry.exporter.otlp.proto.grpc.metric_exporter")
                exporter = grpc.OTLPMetricExporter(endpoint=self._cfg.otlp_endpoint)
                readers.append(sdk_export.PeriodicExportingMetricReader(exporter))
            if self._cfg.enable_console:
                console = sdk_export.ConsoleMetricExporter()
                readers.append(sdk_export.PeriodicExportingMetricReader(console))

            resource = sdk_resources.Resource.create(
                {
                    "service.name": self._cfg.service_name,
                    "deployment.environment": self._cfg.environment,
                }
            )
            provider = sdk_metrics.MeterProvider(resource=resource, metric_readers=readers)
            return provider.get_meter("tutor_rag")
        except Exception as ex:  # noqa: BLE001
            logger.warning("OpenTelemetry unavailable, metrics disabled: %s", ex)
            return None

    def _instrument(self, registry: dict[str, Any], name: str) -> Any:
        instrument = registry.get(name)
        if instrument is None:
            assert self._meter is not None
            if registry is self._counters:
                instrument = self._meter.create_counter(name, unit="1")
            else:
                instrument = self._meter.create_histogram(name, unit=_UNITS.get(name, "1"))
            registry[name] = instrument
        return instrument

    def incr(self, name: str, tags: dict[str, Any] | None = None) -> None:
        if self._meter is None:
            return
        try:
            self._instrument(self._counters, name).add(1, attributes=tags or {})
        except Exception as ex:  # noqa: BLE001
            logger.debug("counter %s not recorded: %s", name, ex)

    def observe(self, name: str, value: float, tags: dict[str, Any] | None = None) -> None:
        if self._meter is None:
            return
        try:
            self._instrument(self._histograms, name).record(value, attributes=tags or {})
        except Exception as ex:  # noqa: BLE001
            logger.debug("histogram %s not recorded: %s", name, ex)
