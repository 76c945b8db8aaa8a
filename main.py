"""
FastAPI application entry point.
"""
import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from api.container import Container, build_container
from api.routes import invoices as invoice_routes
from api.middleware import RequestIDMiddleware, LoggingMiddleware
from core.config import settings
from core.exceptions import register_exception_handlers
from core.response import success_response
from core.logging_config import get_logger, configure_logging
from shared.codes import BusinessCode


configure_logging()
logger = get_logger(__name__)


def create_app(container_factory: Optional[Callable[[], Container]] = None) -> FastAPI:
    factory = container_factory or build_container

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        container = factory()
        app.state.container = container
        # Create tables in development only; production runs Alembic migrations
        if container.settings.invoice.store == "sql":
            if container.settings.DEBUG:
                from infrastructure.database import create_tables

                await create_tables()
                logger.info("database_initialized", message="Database tables created (development)")
            else:
                logger.info(
                    "database_migrations_required",
                    message="No auto-create in production, use Alembic migrations (alembic upgrade head)"
                )
        yield
        await container.aclose()
        logger.info("application_shutdown", message="Application shutdown")

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan,
        description="Crypto invoice lifecycle and processor reconciliation",
    )

    # Middleware runs bottom-up: RequestID first, so logging sees the request id
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    app.include_router(invoice_routes.router, prefix="/api/v1")

    @app.get("/", tags=["Root"])
    async def root():
        return success_response(
            data={
                "name": settings.PROJECT_NAME,
                "version": settings.VERSION,
                "docs": "/docs",
            },
        )

    @app.get("/health", tags=["Health"])
    async def health_check(request: Request):
        """Database and chain RPC probes; 503 when either fails."""
        container: Container = request.app.state.container
        checks = {
            "database": await _probe_database(container),
            "rpc": await _probe_rpc(container),
        }
        healthy = all(value in {"connected", "memory"} for value in checks.values())
        data = {
            "status": "ok" if healthy else "degraded",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": container.settings.VERSION,
            "checks": checks,
        }
        if healthy:
            return success_response(data=data, message="healthy")
        logger.warning("health_degraded", checks=checks)
        body = success_response(data=data, message="degraded", code=BusinessCode.SERVICE_UNAVAILABLE)
        return JSONResponse(status_code=503, content=body.model_dump(mode="json"))

    @app.get("/metrics", tags=["Health"], include_in_schema=False)
    async def metrics(request: Request):
        container: Container = request.app.state.container
        return Response(content=container.metrics.render(), media_type=container.metrics.content_type)

    return app


async def _probe_database(container: Container) -> str:
    if container.settings.invoice.store == "memory":
        return "memory"
    from infrastructure.database import ping

    try:
        await asyncio.wait_for(ping(), timeout=container.settings.chain.health_timeout_seconds)
        return "connected"
    except Exception as exc:
        return f"error: {str(exc) or type(exc).__name__}"


async def _probe_rpc(container: Container) -> str:
    timeout = container.settings.chain.health_timeout_seconds
    try:
        await asyncio.wait_for(
            container.rpc_client.block_number(container.settings.chain.health_chain, timeout=timeout),
            timeout=timeout,
        )
        return "connected"
    except Exception as exc:
        return f"error: {str(exc) or type(exc).__name__}"


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info"
    )
