"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import Depends, FastAPI, Request, WebSocket
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ecowheels.api.dependencies import Services, get_services
from ecowheels.api.routes import router
from ecowheels.api.websocket import handle_order_feed
from ecowheels.config import get_settings
from ecowheels.errors import EcoWheelsError, InvalidInputError
from ecowheels.state.manager import get_state_manager
from ecowheels.utils.logging import get_logger, setup_logging

setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Connect to Redis before serving and release the connection on shutdown."""
    state = await get_state_manager()
    logger.info("application_started", environment=settings.environment)
    try:
        yield
    finally:
        await state.disconnect()
        logger.info("application_stopped")


app = FastAPI(
    title="EcoWheels Driver Backend",
    description="Order lifecycle, earnings and support services for delivery drivers",
    version="0.1.0",
    lifespan=lifespan,
)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(EcoWheelsError)
async def ecowheels_error_handler(request: Request, exc: EcoWheelsError) -> JSONResponse:
    """Render every domain error as ``{"error": code, "message": text}``."""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "request_failed",
        path=request.url.path,
        method=request.method,
        error=exc.code,
        message=exc.message,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    fields = ", ".join(".".join(str(part) for part in err["loc"]) for err in exc.errors())
    error = InvalidInputError(f"Invalid request: {fields}")
    logger.warning("request_invalid", path=request.url.path, fields=fields)
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


@app.get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "healthy", "service": "ecowheels-driver-backend"}


@app.get("/")
async def root() -> dict[str, str]:
    return {"service": "EcoWheels Driver Backend API", "docs": "/docs"}


app.include_router(router, prefix="/api/v1", tags=["api"])


@app.websocket("/ws/orders")
async def orders_websocket(
    websocket: WebSocket,
    token: str,
    services: Services = Depends(get_services),
) -> None:
    """Live available/active order buckets for the token's driver."""
    await handle_order_feed(websocket, token, services)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "ecowheels.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.environment == "development",
    )
