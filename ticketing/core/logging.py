"""Logging and tracing setup for the ticketing API."""

from __future__ import annotations

import logging
from logging.config import dictConfig

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from ticketing.core.config import Settings

APP_LOGGER = "ticketing"


def _level(name: str, default: int = logging.INFO) -> int:
    level = logging.getLevelName(name.strip().upper())
    return level if isinstance(level, int) else default


def configure_logging(settings: Settings) -> logging.Logger:
    """Route application and driver logs to stderr.

    ``ticketing.*`` loggers follow ``LOG_LEVEL``; asyncpg is kept at
    ``DATABASE_LOG_LEVEL`` so that pool chatter does not drown ticket events.
    """

    app_level = _level(settings.log_level)
    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"ticketing": {"format": settings.log_format}},
            "handlers": {
                "stderr": {
                    "class": "logging.StreamHandler",
                    "formatter": "ticketing",
                    "stream": "ext://sys.stderr",
                }
            },
            "loggers": {
                APP_LOGGER: {"level": app_level},
                "asyncpg": {"level": _level(settings.database_log_level, logging.WARNING)},
            },
            "root": {"handlers": ["stderr"], "level": logging.WARNING},
        }
    )
    return logging.getLogger(APP_LOGGER)


def init_tracer(settings: Settings) -> TracerProvider | None:
    """Install an OTLP-exporting tracer provider when tracing is enabled.

    Returns ``None`` when tracing is off or an SDK provider is already
    installed, so the caller only shuts down what it created.
    """

    if not settings.otel_enabled or isinstance(trace.get_tracer_provider(), TracerProvider):
        return None

    exporter = OTLPSpanExporter(
        endpoint=settings.otel_exporter_otlp_endpoint,
        headers=settings.otlp_headers() or None,
    )
    provider = TracerProvider(
        resource=Resource.create(
            {"service.name": settings.otel_service_name, "deployment.environment": settings.environment}
        )
    )
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)
    return provider


def shutdown_tracer(provider: TracerProvider | None) -> None:
    if provider is not None:
        provider.shutdown()
