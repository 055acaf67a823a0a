import os
import time
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.middleware import SlowAPIMiddleware

from .config import settings
from .db import Base, engine
from .errors import install_error_handlers
from .logging import setup_logging, RequestIdMiddleware, structlog
from .auth.router import router as auth_router
from .routes.categories import router as categories_router
from .routes.files import router as files_router
from .routes.items import router as items_router
from .routes.locations import router as locations_router


logger = structlog.get_logger()
STARTED_AT = time.monotonic()


def create_app() -> FastAPI:
    setup_logging()
    app = FastAPI(title=settings.app_name)

    # Middlewares
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)

    install_error_handlers(app)

    # Routers
    app.include_router(auth_router)
    app.include_router(locations_router)
    app.include_router(categories_router)
    app.include_router(items_router)
    app.include_router(files_router)

    @app.get("/health", tags=["health"])
    @limiter.exempt
    def health():
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime": round(time.monotonic() - STARTED_AT, 3),
        }

    # Metrics
    Instrumentator().instrument(app).expose(app)

    @app.on_event("startup")
    def _startup():
        # Ensure local SQLite directory exists
        if settings.database_url.startswith("sqlite:///./"):
            os.makedirs("var", exist_ok=True)
        if settings.auto_create_db:
            Base.metadata.create_all(bind=engine)
        logger.info("startup_complete", environment=settings.environment, auto_create_db=settings.auto_create_db)

    return app


app = create_app()
