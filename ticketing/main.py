from contextlib import asynccontextmanager

from fastapi import FastAPI

from ticketing.api.routes import ping, tickets
from ticketing.core.config import get_settings
from ticketing.core.logging import configure_logging, init_tracer, shutdown_tracer
from ticketing.services.postgres import PostgresPool
from ticketing.tickets.notifications import LoggingNotificationDispatcher
from ticketing.tickets.repository import TicketRepository
from ticketing.tickets.service import TicketService


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover - executed by framework
    settings = get_settings()
    logger = configure_logging(settings)
    tracer_provider = init_tracer(settings)

    postgres = PostgresPool(
        dsn=settings.postgres_dsn,
        min_size=settings.postgres_pool_min_size,
        max_size=settings.postgres_pool_max_size,
    )
    app.state.postgres = postgres
    app.state.ticket_service = None
    try:
        pool = await postgres.get_pool()
        service = TicketService(
            repository=TicketRepository(pool),
            notifier=LoggingNotificationDispatcher(frontend_url=settings.frontend_url),
            max_update_retries=settings.max_update_retries,
            default_offset=settings.default_list_offset,
            default_limit=settings.default_list_limit,
        )
        await service.ensure_schema()
        app.state.ticket_service = service
    except Exception:
        logger.exception("Ticket service could not be initialised")
    try:
        yield
    finally:
        await postgres.close()
        shutdown_tracer(tracer_provider)


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.include_router(ping.router)
    app.include_router(tickets.router)
    return app


app = create_app()
