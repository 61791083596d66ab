"""FastAPI chat command service."""

import uuid
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from chatcmd.infra.logging import app_logger
from chatcmd.infra.middleware import RequestIDMiddleware, RequestLoggingMiddleware, setup_cors
from chatcmd.infra.timeout import TimeoutMiddleware, REQUEST_TIMEOUT


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown."""
    # Startup
    app_logger.info("Application starting up")

    yield

    # Shutdown
    app_logger.info("Application shutting down")

    from chatcmd.api import dependencies
    from chatcmd.infra.database import dispose_engine
    dependencies.reset()
    dispose_engine()


app = FastAPI(
    title="Chat Command API",
    description="""
    Executes planner-produced tool chains against a user's chat data.

    ## Features

    - **Commands**: Validate and execute chains of tools for a natural-language command
    - **Clarification**: Ambiguous contacts or conversations halt the chain and return ranked options
    - **Tools**: Browse the tool catalogue and parameter schemas for the upstream planner
    """,
    version="1.0.0",
    lifespan=lifespan,
    tags_metadata=[
        {
            "name": "Commands",
            "description": "Execute and validate tool chains",
        },
        {
            "name": "Tools",
            "description": "Registered tools and their parameter schemas",
        },
        {
            "name": "Health",
            "description": "Health check and monitoring endpoints",
        },
    ],
)

# Setup middleware
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(TimeoutMiddleware, timeout=REQUEST_TIMEOUT)
# Added last so it runs first and the request id is set for logging
app.add_middleware(RequestIDMiddleware)
setup_cors(app)

# Import and register routers
from chatcmd.api.routers import commands, tools, health  # noqa: E402

app.include_router(commands.router)
app.include_router(tools.router)
app.include_router(health.router)


MAX_REQUEST_SIZE = 1024 * 1024  # 1MB


@app.middleware("http")
async def request_size_limit_middleware(request: Request, call_next):
    """Enforce request size limits."""
    content_length = request.headers.get("content-length")
    if content_length and int(content_length) > MAX_REQUEST_SIZE:
        return JSONResponse(
            status_code=413,
            content={"detail": f"Request too large. Maximum size: {MAX_REQUEST_SIZE} bytes"},
        )
    return await call_next(request)


# Error handlers
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle request validation errors."""
    return JSONResponse(
        status_code=422,
        content={"detail": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle all other exceptions."""
    error_id = str(uuid.uuid4())
    app_logger.error(f"Unhandled exception: {exc}", exc_info=True, extra={"error_id": error_id})
    return JSONResponse(
        status_code=500,
        content={"detail": f"Internal server error. Error ID: {error_id}"},
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=8000,
        timeout_keep_alive=30,
        timeout_graceful_shutdown=30,
    )
