"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from liquidesk import __version__
from liquidesk.config import get_settings
from liquidesk.container import build_services
from liquidesk.errors import LiquidityError
from liquidesk.ledger.database import close_db, init_db

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    await init_db()
    if getattr(app.state, "services", None) is None:
        app.state.services = build_services()
    logger.info(f"Transfer executor: {type(app.state.services.executor).__name__}")
    yield
    # Shutdown
    await close_db()


async def liquidity_error_handler(request: Request, exc: LiquidityError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.message, **exc.details},
    )


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = [
        {
            "field": ".".join(str(part) for part in err["loc"] if part != "body"),
            "message": err["msg"],
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"success": False, "message": "Validation failed", "errors": errors},
    )


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Liquidesk API",
        description="Custodial USDC liquidity positions, withdrawals and settlements",
        version=__version__,
        lifespan=lifespan,
        debug=settings.debug,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(LiquidityError, liquidity_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)

    # Register routes
    from liquidesk.api.routers import liquidity
    from liquidesk.api.routes import health

    app.include_router(health.router, tags=["Health"])
    app.include_router(liquidity.router, prefix="/api/liquidity", tags=["Liquidity"])

    return app


# Default app instance
app = create_app()
