"""
backend/pickcache/main.py

Purpose:
    FastAPI application factory: settings validation, collaborator wiring
    (Mongo, generation provider, pick pipeline), middleware, exception
    mapping and the optional scheduled pick refresh.

    Run with: uvicorn pickcache.main:create_app --factory

Dependencies:
    - pickcache.config
    - pickcache.database
    - pickcache.services.pick_pipeline
"""

import logging
from contextlib import asynccontextmanager

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from pickcache.config import Settings, load_settings
from pickcache.database import PICKS_COLLECTION, close_db, connect_db, ensure_indexes
from pickcache.errors import ConfigurationError, InputValidationError, PickServiceError
from pickcache.middleware.logging import StructuredLoggingMiddleware, setup_logging
from pickcache.middleware.security_headers import SecurityHeadersMiddleware
from pickcache.providers.openai_client import OpenAIClient
from pickcache.services.pick_pipeline import PickPipeline, build_pipeline
from pickcache.workers.pick_refresh import refresh_upcoming_picks

logger = logging.getLogger("pickcache")

_REFRESH_JOB_ID = "pick_refresh"


def _register_refresh_job(scheduler: AsyncIOScheduler, app: FastAPI, settings: Settings) -> None:
    async def _run() -> None:
        await refresh_upcoming_picks(
            app.state.db,
            app.state.pipeline,
            lookahead_hours=settings.PICK_REFRESH_LOOKAHEAD_HOURS,
            max_retries=settings.PICK_REFRESH_MAX_RETRIES,
            retry_base_seconds=settings.PICK_REFRESH_RETRY_BASE_SECONDS,
        )

    scheduler.add_job(
        _run,
        "interval",
        id=_REFRESH_JOB_ID,
        minutes=settings.PICK_REFRESH_INTERVAL_MINUTES,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )


def _lifespan_for(settings: Settings, injected: bool):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging()
        if injected:
            yield
            return

        client, db = connect_db(settings)
        await ensure_indexes(db)
        llm = OpenAIClient(
            settings.OPENAI_API_KEY,
            settings.OPENAI_BASE_URL,
            chat_model=settings.LLM_MODEL,
            embedding_model=settings.EMBEDDING_MODEL,
            temperature=settings.LLM_TEMPERATURE,
        )
        app.state.mongo_client = client
        app.state.db = db
        app.state.pipeline = build_pipeline(settings, db[PICKS_COLLECTION], llm)
        logger.info(
            "Pick pipeline ready (strategy=%s, model=%s, embedding=%s/%d)",
            settings.COMMIT_STRATEGY, settings.LLM_MODEL,
            settings.EMBEDDING_MODEL, settings.EMBEDDING_DIMENSIONS,
        )

        scheduler = AsyncIOScheduler()
        if settings.PICK_REFRESH_ENABLED:
            _register_refresh_job(scheduler, app, settings)
            scheduler.start()
            logger.info("Pick refresh scheduled every %d minutes", settings.PICK_REFRESH_INTERVAL_MINUTES)

        yield

        if scheduler.running:
            scheduler.shutdown(wait=False)
        await llm.aclose()
        close_db(client)

    return lifespan


def _error_response(request: Request, exc: PickServiceError) -> JSONResponse:
    content = {"detail": exc.message}
    if isinstance(exc, InputValidationError):
        content["errors"] = exc.errors
    if exc.status_code >= 500:
        logger.error(
            "[ERROR %d] %s %s: %s | %s",
            exc.status_code, request.method, request.url.path, exc.message, exc.details,
        )
    else:
        logger.warning(
            "[CLIENT ERROR %d] %s %s: %s | %s",
            exc.status_code, request.method, request.url.path, exc.message, exc.details,
        )
    return JSONResponse(status_code=exc.status_code, content=content)


def _install_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        """Return field-level validation detail as a 400."""
        errors = []
        for err in exc.errors():
            loc = err.get("loc", ())
            # Strip the "body" prefix for cleaner messages
            field = ".".join(str(l) for l in loc[1:]) if len(loc) > 1 else str(loc[-1]) if loc else "unknown"
            errors.append({"field": field, "message": err.get("msg", "Invalid value.")})
        return _error_response(request, InputValidationError("Invalid request payload", errors=errors))

    @app.exception_handler(PickServiceError)
    async def pick_service_error_handler(request: Request, exc: PickServiceError):
        return _error_response(request, exc)


def create_app(settings: Settings | None = None, *, pipeline: PickPipeline | None = None) -> FastAPI:
    """Build the application. Raises ConfigurationError before anything is served."""
    settings = settings or load_settings()

    app = FastAPI(
        title="Pick Cache",
        description="Cached LLM betting picks per game and market",
        version="0.1.0",
        lifespan=_lifespan_for(settings, injected=pipeline is not None),
    )
    app.state.settings = settings
    app.state.pipeline = pipeline
    app.state.db = None

    app.add_middleware(SecurityHeadersMiddleware, allow_origins=settings.cors_origins)
    app.add_middleware(StructuredLoggingMiddleware)

    _install_exception_handlers(app)

    from pickcache.routers.picks import router as picks_router

    app.include_router(picks_router)

    @app.get("/health")
    async def health(request: Request):
        """Health check -- verifies DB connection."""
        db = request.app.state.db
        if db is None:
            return {"status": "healthy", "db": "not_configured"}
        try:
            result = await db.command("ping")
            db_ok = result.get("ok") == 1.0
        except Exception:
            logger.warning("Health check ping failed", exc_info=True)
            db_ok = False
        return {
            "status": "healthy" if db_ok else "degraded",
            "db": "connected" if db_ok else "disconnected",
        }

    return app


def serve() -> None:
    """Console entry point. Exits non-zero instead of serving when misconfigured."""
    import uvicorn

    setup_logging()
    try:
        app = create_app()
    except ConfigurationError as exc:
        fields = (exc.details or {}).get("fields", [])
        logger.critical("[FATAL] Invalid or missing configuration: %s", ", ".join(fields) or exc.message)
        raise SystemExit(1) from exc
    uvicorn.run(app, host="0.0.0.0", port=8000)
