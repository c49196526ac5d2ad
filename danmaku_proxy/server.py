"""
HTTP front end for the danmaku proxy.

Routes:
    GET /proxy/<encoded source URL>  redirect to the cached XML (fetching it if needed)
    GET /xml/<key>.xml               serve a cached document
    GET /clean-task?secret=...       run an eviction sweep
    GET /                            health and counters
"""

import hmac
from typing import Optional
from contextlib import asynccontextmanager
from urllib.parse import unquote

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import FileResponse, PlainTextResponse, RedirectResponse
from starlette.concurrency import run_in_threadpool
import uvicorn

from danmaku_proxy.cache import CacheStore, XmlCacheStore
from danmaku_proxy.config import Settings, get_settings
from danmaku_proxy.coordinator import ProxyCoordinator
from danmaku_proxy.exceptions import AuthError, CacheMissError, ProxyException, StorageError
from danmaku_proxy.logging_manager import get_logger
from danmaku_proxy.maintenance import MaintenanceScheduler
from danmaku_proxy.metrics_manager import MetricsManager
from danmaku_proxy.upstream import UpstreamClient

logging_manager = get_logger(__name__)
logger = logging_manager.logger


def verify_clean_secret(provided: Optional[str], expected: Optional[str]) -> None:
    """
    Check the cleanup secret.

    An unset expected secret rejects every caller, including one that sends
    no secret at all.

    Raises:
        AuthError: If the secrets differ or none is configured
    """
    if expected is None or provided is None:
        raise AuthError("Invalid secret")
    if not hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
        raise AuthError("Invalid secret")


def create_app(settings: Optional[Settings] = None,
               store: Optional[CacheStore] = None,
               upstream: Optional[UpstreamClient] = None,
               metrics_manager: Optional[MetricsManager] = None) -> FastAPI:
    """
    Build the FastAPI application and wire its collaborators.

    Args:
        settings: Application settings (default: loaded from the environment)
        store: Cache store (default: an XmlCacheStore on settings.XML_DIR)
        upstream: Conversion service client (default: built from settings)
        metrics_manager: Shared counters (default: a fresh MetricsManager)

    Returns:
        FastAPI: Configured application
    """
    settings = settings or get_settings()
    store = store or XmlCacheStore.from_settings(settings)
    upstream = upstream or UpstreamClient.from_settings(settings)
    metrics_manager = metrics_manager or MetricsManager()

    coordinator = ProxyCoordinator(
        store=store,
        upstream=upstream,
        bypass_marker=settings.BYPASS_HOST_MARKER,
        metrics_manager=metrics_manager,
    )
    scheduler = MaintenanceScheduler(
        store=store,
        interval=settings.MAINTENANCE_INTERVAL_SECONDS,
        metrics_manager=metrics_manager,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Log startup and print the counters on shutdown."""
        logging_manager.info(f"Starting danmaku proxy, caching in {settings.XML_DIR}", ":rocket:")
        yield
        logging_manager.info("Shutting down danmaku proxy")
        metrics_manager.display_metrics()

    app = FastAPI(
        title="Danmaku Proxy",
        description="Caching redirect proxy for converted video comment XML",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.store = store
    app.state.coordinator = coordinator
    app.state.scheduler = scheduler
    app.state.metrics_manager = metrics_manager

    def error_redirect() -> RedirectResponse:
        return RedirectResponse(settings.ERROR_REDIRECT_URL, status_code=302)

    @app.middleware("http")
    async def cache_maintenance(request: Request, call_next):
        """Run the rate-limited threshold sweep before handling the request."""
        try:
            await run_in_threadpool(scheduler.maybe_sweep)
        except Exception:  # never block a request on maintenance
            logging_manager.exception("Unexpected error during cache maintenance")
        return await call_next(request)

    @app.exception_handler(Exception)
    async def unhandled_exception(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.url.path}: {exc!r}", exc_info=exc)
        return error_redirect()

    @app.get("/")
    def root():
        """Health check endpoint."""
        try:
            entries = store.count()
        except StorageError as e:
            logging_manager.warning(f"Health check could not count entries: {e}")
            entries = None
        return {
            "status": "ok",
            "entries": entries,
            "metrics": metrics_manager.get_all_metrics(),
        }

    @app.get("/proxy/{source_url:path}")
    def proxy(source_url: str, request: Request):
        """
        Redirect to the cached document for a source URL.

        Every failure turns into a redirect to the configured error page.
        """
        client = request.client.host if request.client else "unknown"
        try:
            location = coordinator.handle(unquote(source_url))
        except ProxyException as e:
            logging_manager.error(f"Proxy failed [{client}]: {e}")
            return error_redirect()
        except Exception:
            logging_manager.exception(f"Unexpected proxy failure [{client}] for {source_url}")
            return error_redirect()
        return RedirectResponse(location, status_code=302)

    @app.get("/xml/{filename}")
    def cached_document(filename: str):
        """Serve a cached XML document by file name."""
        if not isinstance(store, XmlCacheStore):
            raise HTTPException(status_code=404, detail="Not Found")
        try:
            path = store.resolve(filename)
        except CacheMissError as e:
            raise HTTPException(status_code=404, detail="Not Found") from e
        return FileResponse(path, media_type="application/xml")

    @app.get("/clean-task")
    def clean_task(secret: Optional[str] = None):
        """Run an eviction sweep when the shared secret matches."""
        try:
            verify_clean_secret(secret, settings.CLEAN_SECRET)
        except AuthError as e:
            logging_manager.warning("Rejected cleanup request with invalid secret", ":lock:")
            return PlainTextResponse(str(e), status_code=403)

        try:
            report = scheduler.sweep()
        except StorageError as e:
            logging_manager.error(f"Cleanup failed: {e}")
            return PlainTextResponse(f"Cleanup failed: {e}", status_code=500)

        logging_manager.info(f"Cleanup removed {len(report.removed)} of {report.scanned} entries", ":broom:")
        return PlainTextResponse("Cleanup completed")

    return app


def start_server(settings: Optional[Settings] = None) -> None:
    """
    Start the proxy with uvicorn.

    Args:
        settings: Application settings (default: loaded from the environment)
    """
    settings = settings or get_settings()
    logging_manager.info(f"Starting danmaku proxy on {settings.HOST}:{settings.PORT}")
    uvicorn.run(create_app(settings), host=settings.HOST, port=settings.PORT)
