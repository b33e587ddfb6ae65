from contextlib import asynccontextmanager
from textwrap import dedent
import logging
from typing import Optional

import pydantic
from fastapi import FastAPI
from fastapi.routing import APIRoute

from files_index.adapters.storage import BaseObjectStore, StoreFactory
from files_index.config.settings import Settings
from files_index.errors import (
    StoreAdapterError,
    handle_broad_exceptions,
    handle_pydantic_validation_errors,
    handle_store_adapter_errors,
)
from files_index.routers.files import router as files_router
from files_index.routers.health import router as health_router
from files_index.routers.random import router as random_router
from files_index.tasks import MaintenanceRunner
from files_index.utils.log_setup import configure_logging

# Set up logging
logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, store: Optional[BaseObjectStore] = None) -> FastAPI:
    """Create a FastAPI application."""
    settings = settings or Settings()
    configure_logging(settings.log_level)

    store = store or StoreFactory.get_store(settings)
    index_config = settings.index_config()
    runner = MaintenanceRunner(store, index_config, max_workers=settings.maintenance_workers)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        logger.info("Waiting for running maintenance tasks")
        runner.shutdown(wait=True)

    app = FastAPI(
        title="Files Index API",
        summary="Indexed, filterable file listings over a key-value object store",
        version="v1",
        description=dedent(
            """\
        Listings are served from a materialized index kept loosely consistent
        with the store. Writes are logged and become visible after
        `action=merge-operations`; `action=rebuild` reconstructs the index from
        a full scan. When the index cannot be read, listings fall back to a
        store scan and report `isIndexedResponse: false`.
        """
        ),
        docs_url="/",  # its easier to find the docs when they live on the base url
        generate_unique_id_function=custom_generate_unique_id,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.index_config = index_config
    app.state.store = store
    app.state.maintenance = runner
    logger.info(f"Serving index over {store.describe()} in {settings.deployment_mode} mode")

    app.include_router(files_router, prefix="/v1", tags=["files"])
    app.include_router(random_router, prefix="/v1", tags=["random"])
    app.include_router(health_router, tags=["health"])

    app.add_exception_handler(
        exc_class_or_status_code=pydantic.ValidationError,
        handler=handle_pydantic_validation_errors,
    )
    app.add_exception_handler(
        exc_class_or_status_code=StoreAdapterError,
        handler=handle_store_adapter_errors,
    )
    app.middleware("http")(handle_broad_exceptions)

    return app


def custom_generate_unique_id(route: APIRoute):
    """
    Generate prettier `operationId`s in the OpenAPI schema.

    These become the function names in generated client SDKs.
    """
    return f"{route.tags[0]}-{route.name}"


if __name__ == "__main__":
    import uvicorn

    app = create_app()
    uvicorn.run(app, host="0.0.0.0", port=8000)
