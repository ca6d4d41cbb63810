"""Main FastAPI application for the workflow engine."""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .api.endpoints import router, status_for_error
from .config import AppConfig, get_config
from .core.exceptions import FlowGraphError, create_error_response
from .core.execution_engine import ExecutionEngine
from .core.executor_registry import ExecutorRegistry
from .core.graph_manager import GraphManager
from .core.graph_validator import ValidationEngine
from .core.logging import setup_logging, get_logger
from .core.notifications import LoggingNotifier
from .core.validation_cache import CachedValidator, ValidationCache
from .executors import register_builtin_executors
from .storage.database import create_tables, get_database_engine, reset_database_engine

logger = get_logger(__name__)


def create_app(config: Optional[AppConfig] = None) -> FastAPI:
    """
    Build the application.

    Components are wired onto ``app.state`` during startup so each app
    instance owns its own engine and storage binding.
    """
    config = config or get_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(
            level=config.log_level.value,
            log_file=config.log_file,
            log_format=config.log_format,
            structured=config.structured_logging,
            max_size=config.log_max_size,
            backup_count=config.log_backup_count,
        )
        logger.info(f"Starting {config.app_name} {config.app_version}")

        reset_database_engine()
        get_database_engine(
            config.database_url,
            echo=config.database_echo,
            connect_args=config.get_database_connect_args(),
        )
        create_tables()
        logger.info("Database tables created")

        validation_engine = ValidationEngine()
        registry = register_builtin_executors(ExecutorRegistry())
        app.state.config = config
        app.state.graph_manager = GraphManager(validator=validation_engine)
        app.state.validator = CachedValidator(
            validation_engine,
            ValidationCache(max_size=config.validation_cache_size, ttl=config.validation_cache_ttl),
        )
        app.state.execution_engine = ExecutionEngine(
            executor_registry=registry,
            notifier=LoggingNotifier(),
            rule_registry=validation_engine.rule_registry,
            status_reset_delay=config.status_reset_delay,
            default_node_timeout=config.default_node_timeout,
            run_history_limit=config.run_history_limit,
        )
        logger.info(f"Core components initialized; executors: {', '.join(registry.subtypes())}")

        yield

        logger.info(f"Shutting down {config.app_name}")
        if app.state.execution_engine.is_running:
            app.state.execution_engine.cancel()
        reset_database_engine()

    app = FastAPI(
        title=config.app_name,
        description="Validate, schedule and run trigger/action workflow graphs",
        version=config.app_version,
        debug=config.debug,
        lifespan=lifespan,
    )

    @app.exception_handler(FlowGraphError)
    async def flowgraph_error_handler(request: Request, exc: FlowGraphError) -> JSONResponse:
        status_code = status_for_error(exc)
        if status_code >= 500:
            logger.error(f"{exc.error_code} on {request.url.path}: {exc.message}")
        else:
            logger.warning(f"{exc.error_code} on {request.url.path}: {exc.message}")
        return JSONResponse(status_code=status_code, content=create_error_response(exc))

    app.include_router(router)
    return app


if __name__ == "__main__":
    import uvicorn

    settings = get_config()
    uvicorn.run(create_app(settings), **settings.get_uvicorn_config())
