import logging
from datetime import datetime
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from vaultshare.api.api_v1.api import api_router
from vaultshare.core.config import Settings, settings as default_settings
from vaultshare.core.exceptions import VaultShareError
from vaultshare.core.time import utcnow
from vaultshare.db.base import Base
from vaultshare.db.session import make_engine, make_session_factory
from vaultshare.services.audit import AuditLog
from vaultshare.services.cache import MemoryPreviewCache, PreviewCache, RedisPreviewCache
from vaultshare.services.files import FileService
from vaultshare.services.notifications import MailNotifier, Notifier
from vaultshare.services.preview import PreviewRenderer
from vaultshare.services.shares import ShareLinkManager
from vaultshare.services.storage import BlobStore, LocalBlobStore
from vaultshare.services.sweeper import ExpirySweeper

logger = logging.getLogger(__name__)


def build_cache(settings: Settings) -> PreviewCache:
    if settings.PREVIEW_CACHE_URL:
        return RedisPreviewCache.from_url(settings.PREVIEW_CACHE_URL)
    return MemoryPreviewCache()


def create_app(
    settings: Optional[Settings] = None,
    *,
    blob_store: Optional[BlobStore] = None,
    notifier: Optional[Notifier] = None,
    cache: Optional[PreviewCache] = None,
    clock: Callable[[], datetime] = utcnow,
) -> FastAPI:
    settings = settings or default_settings

    engine = make_engine(settings.SQLALCHEMY_DATABASE_URI)
    # Create tables for development (in production use Alembic)
    Base.metadata.create_all(bind=engine)
    session_factory = make_session_factory(engine)

    blob_store = blob_store or LocalBlobStore(settings.STORAGE_PATHS)
    notifier = notifier or MailNotifier.from_settings(settings)
    cache = cache or build_cache(settings)
    audit = AuditLog(clock=clock)
    share_manager = ShareLinkManager(
        blob_store, notifier, audit, frontend_url=settings.FRONTEND_URL, clock=clock
    )

    app = FastAPI(
        title=settings.PROJECT_NAME,
        openapi_url=f"{settings.API_V1_STR}/openapi.json",
    )
    app.state.settings = settings
    app.state.clock = clock
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.file_service = FileService(blob_store, audit, clock=clock)
    app.state.share_manager = share_manager
    app.state.preview_renderer = PreviewRenderer(
        share_manager, blob_store, cache, audit, ttl=settings.PREVIEW_CACHE_TTL, clock=clock
    )
    app.state.sweeper = ExpirySweeper(
        session_factory, blob_store, interval_seconds=settings.SWEEP_INTERVAL_SECONDS, clock=clock
    )

    # Set all CORS enabled origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router, prefix=settings.API_V1_STR)

    @app.get("/")
    def read_root():
        return {"message": f"Welcome to {settings.PROJECT_NAME} API"}

    @app.exception_handler(VaultShareError)
    async def vaultshare_exception_handler(request: Request, exc: VaultShareError):
        return JSONResponse(
            status_code=exc.status_code,
            content={"message": exc.message, "detail": exc.message, "reason": exc.reason},
        )

    # Global Exception Handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"message": "Internal Server Error", "detail": str(exc)},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.info("Validation error on %s: %s", request.url.path, exc.errors())
        return JSONResponse(
            status_code=422,
            content={"message": "Validation Error", "detail": jsonable_encoder(exc.errors())},
        )

    @app.on_event("startup")
    async def start_sweeper():
        if settings.SWEEP_ENABLED:
            app.state.sweeper.start()

    @app.on_event("shutdown")
    async def stop_sweeper():
        await app.state.sweeper.stop()

    return app
