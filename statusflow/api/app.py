"""
FastAPI application factory for StatusFlow.

Provides create_app() to construct a configured FastAPI application with
the resource and operation endpoints. The operation processor lifecycle
is managed via FastAPI lifespan events.

Usage:
    >>> app = create_app(StatusFlowConfig.for_development())
    >>> # Run with uvicorn:
    >>> # uvicorn statusflow.api.app:create_app --factory
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from statusflow import __version__
from statusflow.api.gateway import RequestGateway, error_body
from statusflow.api.router_resources import create_operation_router, create_resource_router
from statusflow.application.factories import StatusFlowFactory, StatusFlowServices
from statusflow.config import StatusFlowConfig, configure_logging, get_config
from statusflow.domain.models.resource_kind import ResourceKindRegistry

logger = logging.getLogger(__name__)


def create_app(
    config: Optional[StatusFlowConfig] = None,
    kinds: Optional[ResourceKindRegistry] = None,
    services: Optional[StatusFlowServices] = None,
) -> FastAPI:
    """
    Create a FastAPI application serving the change-status endpoints.

    Args:
        config: Configuration (global config from the environment if None)
        kinds: Kind registry (built-in kinds if None)
        services: Prebuilt service graph; overrides config and kinds

    Returns:
        Configured FastAPI application.
    """
    if services is None:
        config = config or get_config()
        configure_logging(config)
        services = StatusFlowFactory.create(config, kinds)
    config = services.config

    gateway = RequestGateway(
        services.engine,
        services.tracker,
        on_accepted=lambda operation: services.processor.wake(),
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Run the operation processor for the lifetime of the app."""
        if config.start_processor:
            services.processor.start()
        try:
            yield
        finally:
            if services.processor.is_running():
                services.processor.stop()

    def get_gateway() -> RequestGateway:
        return gateway

    app = FastAPI(
        title="StatusFlow",
        description="Change-status / request resource reference service",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.services = services

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content=error_body(
                "ValidationError",
                "Malformed request body",
                {"errors": jsonable_encoder(exc.errors())},
            ),
        )

    app.include_router(create_resource_router(get_gateway=get_gateway))
    app.include_router(create_operation_router(get_gateway=get_gateway))

    @app.get("/health", tags=["infrastructure"])
    def health_check() -> JSONResponse:
        """Liveness probe."""
        return JSONResponse(content={
            "status": "healthy",
            "storageMode": config.storage_mode,
            "processorRunning": services.processor.is_running(),
        })

    logger.info(f"StatusFlow app created ({config.storage_mode} storage)")
    return app


__all__ = ["create_app"]
