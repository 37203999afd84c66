"""FastAPI application."""

import argparse
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from configs import get_settings
from src.controllers.admin_controllers import admin_router
from src.controllers.affiliate_controllers import affiliate_router
from src.controllers.redirect_controllers import redirect_router
from src.dependencies import get_coordinator
from src.repositories.offers.database import Base, engine
from src.repositories.offers import models  # noqa: F401
from src.services.verification.scheduler import BatchScheduler

from startup import create_mock_data


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()

    logger.info("Creating database tables...")
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created successfully!")

    logger.info("Populating mocked data!")
    create_mock_data()

    scheduler = None
    if settings.AUTO_VERIFY_ENABLED:
        scheduler = BatchScheduler(
            get_coordinator(),
            interval_hours=settings.AUTO_VERIFY_INTERVAL_HOURS,
            initial_delay_sec=settings.AUTO_VERIFY_INITIAL_DELAY_SEC,
        )
        scheduler.start()

    yield

    if scheduler is not None:
        await scheduler.stop()


def create_app() -> FastAPI:
    settings = get_settings()

    logger.info("Starting FastAPI application...")
    app = FastAPI(
        title="Price Guard API",
        root_path=settings.ROOT_PATH_BACKEND,
        description="Price-guarded affiliate redirects and offer verification",
        lifespan=lifespan,
    )
    if settings.ALLOWED_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.ALLOWED_ORIGINS,
            allow_methods=["GET", "POST"],
            allow_headers=["Authorization", "Content-Type"],
        )
    app.include_router(redirect_router)
    app.include_router(admin_router)
    app.include_router(affiliate_router)

    @app.get("/", response_description="Api healthcheck")  # type: ignore[misc]
    async def index() -> Dict[str, str]:
        """Define a route for handling HTTP GET requests to the root URL ("/")."""
        return {"status": "ok"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    parser = argparse.ArgumentParser()
    parser.add_argument("--docker", action="store_true", help="Running with docker")
    parser.add_argument("--host", required=True, help="Application host.")
    parser.add_argument("--port", required=True, help="Application port.")
    parser.add_argument(
        "--reload",
        required=False,
        help="Enable auto-reload for development purposes.",
    )
    args = parser.parse_args()
    if not args.docker:
        from dotenv import load_dotenv

        load_dotenv("../../.env")
        get_settings.cache_clear()

    assert (
        get_settings().PRICE_TOKEN_SECRET
    ), "Variable PRICE_TOKEN_SECRET from env file shouldn't be empty, fill in the credential."

    uvicorn.run(
        "app:app", host=args.host, port=int(args.port), reload=(args.reload or False)
    )
