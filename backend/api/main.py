from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

# Telemetry must be initialized before the instrumented app is built
from common.core.otel_axiom_exporter import _initialize_telemetry, get_logger
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.asgi import OpenTelemetryMiddleware

from api.v1.routes.router import api_router
from common.core.config import settings
from common.core.constants import DispatchMode, Environment
from common.core.exceptions import AppException
from common.core.http_errors import to_http_exception
from common.providers.kv_store.factory import get_kv_store
from common.providers.locking.factory import get_lock_provider
from common.providers.messaging.factory import get_message_queue
from packages.notifications.services.event_publisher import get_event_publisher

_initialize_telemetry()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        f"Starting {settings.app_name} (store={settings.store_provider.value}, "
        f"locks={settings.lock_provider.value}, dispatch={settings.dispatch_mode.value})"
    )
    await get_kv_store().connect()
    await get_lock_provider().connect()
    yield
    logger.info("Shutting down application...")
    # In-process dispatches started by the last transitions finish first
    await get_event_publisher().drain()
    if settings.dispatch_mode == DispatchMode.QUEUE:
        await get_message_queue().disconnect()
    await get_lock_provider().disconnect()
    await get_kv_store().disconnect()


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Errors raised outside a route's http_errors() block, e.g. by read paths."""
    http_exc = to_http_exception(exc)
    if http_exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=http_exc.status_code, content={"detail": http_exc.detail})


def create_app() -> FastAPI:
    # OpenAPI docs only in local development
    local = settings.environment == Environment.LOCAL
    app = FastAPI(
        title=settings.app_name,
        version=settings.api_version,
        lifespan=lifespan,
        docs_url="/docs" if local else None,
        redoc_url="/redoc" if local else None,
        openapi_url="/openapi.json" if local else None,
    )

    FastAPIInstrumentor.instrument_app(app)
    # Context propagation for requests arriving with trace headers
    app.add_middleware(OpenTelemetryMiddleware)
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(AppException, app_exception_handler)

    app.include_router(api_router, prefix="/api/v1")

    # k8s liveness check, kept outside /api/v1
    @app.get("/healthz", include_in_schema=False)
    async def healthz():
        return {"status": "ok"}

    return app


app = create_app()
