"""
FastAPI application for the search & discovery service.

    uvicorn api.app:create_app --factory --reload       # development
    uvicorn api.app:app --host 0.0.0.0 --port 8000      # production
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config.settings import get_settings
from core.logging import configure_logging, get_logger
from core.middleware import REQUEST_ID_HEADER, RESPONSE_TIME_HEADER, RequestTracingMiddleware

logger = get_logger(__name__)


def _load_brand_vocabulary() -> None:
    """Teach the intent classifier the catalog's brands; built-ins on failure."""
    from search.catalog import get_catalog_store
    from search.intent import load_brands

    try:
        count = load_brands(get_catalog_store())
    except Exception as e:
        logger.warning("Brand vocabulary not loaded, using built-in brands", error=str(e))
        return
    logger.info("Brand vocabulary loaded", count=count)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Startup: logging, brand vocabulary. Clients (Supabase, Redis, Algolia,
    OpenAI) stay lazy until the first request that needs them.

    Shutdown: drain detached trending / miss / index tasks.
    """
    settings = get_settings()
    configure_logging(
        json_logs=settings.is_production,
        log_level="DEBUG" if settings.debug else "INFO",
    )
    logger.info(
        "Search API starting",
        environment=settings.environment,
        algolia_enabled=settings.algolia_enabled,
        redis_enabled=settings.redis_enabled,
        semantic_search=settings.semantic_search_enabled,
    )
    _load_brand_vocabulary()

    yield

    from core.tasks import get_task_runner
    logger.info("Search API stopped", dead_letters=len(get_task_runner().dead_letters()))


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title="Search & Discovery API",
        description=(
            "Product search with fast-index and catalog paths, zero-result "
            "recovery, autocomplete, regional trending and search-miss analytics."
        ),
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    # First added is outermost
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER, RESPONSE_TIME_HEADER],
    )
    app.add_middleware(RequestTracingMiddleware)

    from api.routes import health, search
    app.include_router(health.router)
    app.include_router(search.router)

    return app


app = create_app()
