"""Main entry point for the GCS proxy application."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI

from gcs_proxy.core.client import create_http_client
from gcs_proxy.core.config import Settings, get_settings
from gcs_proxy.core.logging import setup_logging
from gcs_proxy.core.proxy import ProxyHandler

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    client: Optional[httpx.AsyncClient] = None
) -> FastAPI:
    """
    Create the FastAPI application serving the configured bucket.

    Every path belongs to the bucket, so the interactive docs and the
    OpenAPI schema are not mounted. When ``client`` is given it is used as-is
    and left open at shutdown; otherwise the lifespan creates and closes one.
    """
    settings = settings or get_settings()
    proxy_config = settings.get_proxy_config()
    handler = ProxyHandler(proxy_config, client)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan management
        Handles startup and shutdown procedures
        """
        logger.info("Starting GCS proxy...")
        owned_client = None
        if handler.client is None:
            owned_client = create_http_client(settings)
            handler.client = owned_client

        logger.info(
            "Proxy configuration",
            extra={
                "host": settings.HOST,
                "port": settings.PORT,
                "log_level": settings.LOG_LEVEL,
                "bucket_name": proxy_config.bucket_name,
                "bucket_on_path": proxy_config.bucket_on_path,
                "timeout": proxy_config.timeout,
                "index_filename": proxy_config.index_filename,
                "proxy_endpoint": proxy_config.endpoint
            }
        )

        yield

        logger.info("Shutting down GCS proxy...")
        if owned_client is not None:
            await owned_client.aclose()
            handler.client = None

    app = FastAPI(
        title="GCS Proxy",
        description="Static site proxy for Google Cloud Storage buckets",
        version="0.1.0",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan
    )
    app.state.proxy_handler = handler

    # Catch-all route; the handler enforces methods itself so that any
    # method other than GET and HEAD is answered with 405.
    app.add_route("/{path:path}", handler, include_in_schema=False)

    return app


def main() -> None:
    """Main entry point for the application."""
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)

    app = create_app(settings)

    uvicorn.run(
        app,
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
        access_log=False,
        server_header=False,
        date_header=True,
    )


if __name__ == "__main__":
    main()
