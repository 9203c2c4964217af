"""FastAPI server for ruletrace: dashboard read API and MCP endpoint."""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api.dashboard import router as dashboard_router
from .api.deps import SESSION_HEADER, error_status, sanitize_error_message
from .config import settings
from .engine.controller import UpdateController
from .engine.query import QueryEngine
from .engine.sessions import SessionStore
from .exceptions import RuletraceError
from .mcp.transport import router as mcp_router
from .middleware import SecurityHeadersMiddleware
from .models import HealthResponse

logger = logging.getLogger(__name__)


def build_controller() -> UpdateController:
    """Create the update controller from process settings.

    Raises:
        StartupError: if the project root does not exist.
    """
    return UpdateController(
        settings.project_root,
        settings.config_path,
        debounce_ms=settings.debounce_ms,
        scan_workers=settings.scan_workers,
        watch=settings.watch_enabled,
        watch_retry_initial_s=settings.watch_retry_initial_s,
        watch_retry_max_s=settings.watch_retry_max_s,
    )


def create_app(controller: UpdateController | None = None) -> FastAPI:
    """Build the application.

    Args:
        controller: Controller to serve; built from settings at startup when
            omitted. It is started and stopped with the application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler for startup/shutdown."""
        # Startup
        logger.info(f"Starting ruletrace server v{__version__}")

        if not settings.debug and settings.cors_allowed_origins == "*":
            logger.warning(
                "CORS is configured to allow all origins ('*'). "
                "Set RULETRACE_CORS_ALLOWED_ORIGINS when the server is reachable from other hosts."
            )

        ctl = controller or build_controller()
        snapshot = await asyncio.to_thread(ctl.start)
        app.state.controller = ctl
        app.state.query = QueryEngine(ctl)
        logger.info(f"Serving {ctl.root} (snapshot v{snapshot.version})")

        yield
        # Shutdown
        await asyncio.to_thread(ctl.stop)
        app.state.controller = None
        app.state.query = None

    app = FastAPI(
        title="ruletrace",
        description="Live traceability between spec rules and source code",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.controller = None
    app.state.query = None
    app.state.sessions = SessionStore(max_sessions=settings.max_sessions)

    # Security headers middleware
    app.add_middleware(SecurityHeadersMiddleware)

    # CORS middleware - use configured origins instead of wildcard
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", SESSION_HEADER],
        expose_headers=[SESSION_HEADER],
    )

    app.include_router(dashboard_router)
    app.include_router(mcp_router)

    # ============ EXCEPTION HANDLERS ============

    @app.exception_handler(RuletraceError)
    async def ruletrace_exception_handler(request: Request, exc: RuletraceError):
        """Map ruletrace errors to 4xx responses."""
        status_code = error_status(exc)
        if status_code >= 500:
            logger.error(f"Request failed: {exc}", exc_info=exc)
        return JSONResponse(
            status_code=status_code,
            content={"success": False, "error": sanitize_error_message(exc)},
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Handle HTTP exceptions with consistent response format."""
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": exc.detail},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions with sanitized error messages."""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": "An internal server error occurred. Please try again.",
            },
        )

    # ============ HEALTH ENDPOINTS ============

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check(request: Request) -> HealthResponse:
        """Health check endpoint (lightweight liveness check)."""
        ctl: UpdateController | None = request.app.state.controller
        if ctl is None:
            return HealthResponse(
                status="starting", version=__version__, snapshot_version=0, controller_state="stopped"
            )
        watch_errors = len(ctl.watch_errors)
        degraded = ctl.config_error is not None or watch_errors > 0
        return HealthResponse(
            status="degraded" if degraded else "ok",
            version=__version__,
            snapshot_version=ctl.snapshot.version,
            controller_state=ctl.state.value,
            config_error=ctl.config_error,
            watch_errors=watch_errors,
        )

    return app


app = create_app()


# ============ MAIN ============


def main():
    """Run the server with uvicorn."""
    import uvicorn

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "ruletrace.server:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    main()
