import csv
import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse, RedirectResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from rsvp.core.config import Settings, settings
from rsvp.core.cookies import SessionCodec, decode_secret_key
from rsvp.core.errors import StoreUnavailableError, StoreWriteError
from rsvp.core.logging import setup_logging
from rsvp.core.rate_limiter import configure_limiter
from rsvp.database import build_engine, build_session_factory, init_db
from rsvp.middleware.request_logger import RequestLoggerMiddleware
from rsvp.services.guest_state import GuestStateMachine
from rsvp.services.guest_store import GuestStore, InMemoryGuestStore
from rsvp.services.sql_guest_store import SqlGuestStore
from rsvp.web.routers import api_web, rsvp_web

logger = logging.getLogger(__name__)


def read_guest_names(path: str) -> list[str]:
    """First column of each row is the guest's full name."""
    if not os.path.exists(path):
        logger.warning(f"Guest list {path} not found, skipping import")
        return []

    with open(path, newline="", encoding="utf-8") as f:
        return [row[0].strip() for row in csv.reader(f) if row and row[0].strip()]


def create_app(
    app_settings: Optional[Settings] = None,
    store: Optional[GuestStore] = None,
) -> FastAPI:
    """
    Build the application. The store is created here (or injected by tests)
    and shared through app.state; nothing is kept at module level.
    """
    app_settings = app_settings or settings
    setup_logging(app_settings)

    codec = SessionCodec(decode_secret_key(app_settings.secret_cookie_key))

    engine = None
    if store is None:
        if app_settings.store_backend == "memory":
            store = InMemoryGuestStore()
        else:
            engine = build_engine(app_settings.database_url)
            store = SqlGuestStore(build_session_factory(engine))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting RSVP service")

        if engine is not None:
            await init_db(engine)
            logger.info("Database tables ready")

        added = await store.seed_guests(read_guest_names(app_settings.guests_csv_path))
        if added:
            logger.info(f"Imported {added} new guests from {app_settings.guests_csv_path}")

        yield

        logger.info("Shutting down RSVP service")
        if engine is not None:
            await engine.dispose()

    app = FastAPI(
        title="Wedding RSVPs",
        description="Invitation code sessions and RSVP collection",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.settings = app_settings
    app.state.store = store
    app.state.codec = codec
    app.state.state_machine = GuestStateMachine(store, codec)

    # -------------------------------------------------
    # Rate Limiting (slowapi)
    # -------------------------------------------------
    app.state.limiter = configure_limiter(app_settings)
    app.add_exception_handler(RateLimitExceeded, rsvp_web.rate_limited)
    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(RequestLoggerMiddleware)

    @app.exception_handler(StoreUnavailableError)
    async def store_unavailable_handler(request: Request, exc: StoreUnavailableError):
        logger.error(f"Could not read from store: {exc}", extra={"path": request.url.path})
        if request.url.path.startswith("/api"):
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={"error": "Store unavailable"},
            )
        return RedirectResponse(url="/error", status_code=status.HTTP_303_SEE_OTHER)

    @app.exception_handler(StoreWriteError)
    async def store_write_handler(request: Request, exc: StoreWriteError):
        # Guest pages swallow write errors; this only fires for the admin API
        logger.error(f"Could not write to store: {exc}", extra={"path": request.url.path})
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Store write failed"},
        )

    @app.get("/health")
    async def health():
        return {"ok": True}

    app.include_router(rsvp_web.router)
    app.include_router(api_web.router)

    return app


def main() -> None:
    import uvicorn

    uvicorn.run(create_app(), host="0.0.0.0", port=int(os.environ.get("PORT", "8080")))


if __name__ == "__main__":
    main()
