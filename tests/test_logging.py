import logging

from ticketing.core.config import Settings
from ticketing.core.logging import configure_logging, init_tracer, shutdown_tracer


def test_otlp_headers_skip_malformed_items():
    settings = Settings(otel_exporter_otlp_headers="a=1, b = 2,broken,,=x")

    assert settings.otlp_headers() == {"a": "1", "b": "2"}
    assert Settings().otlp_headers() == {}


def test_configure_logging_sets_app_and_driver_levels():
    settings = Settings(log_level="debug", database_log_level="error")

    logger = configure_logging(settings)

    assert logger.name == "ticketing"
    assert logger.level == logging.DEBUG
    assert logging.getLogger("ticketing.tickets.service").getEffectiveLevel() == logging.DEBUG
    assert logging.getLogger("asyncpg").level == logging.ERROR


def test_tracer_disabled_by_default():
    assert init_tracer(Settings()) is None
    shutdown_tracer(None)


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("MAX_UPDATE_RETRIES", "7")
    monkeypatch.setenv("DEFAULT_LIST_LIMIT", "20")

    settings = Settings()

    assert settings.max_update_retries == 7
    assert settings.default_list_limit == 20
