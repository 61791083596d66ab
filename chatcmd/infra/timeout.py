"""Request timeout configuration and middleware."""

import asyncio
from fastapi import status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware


class TimeoutMiddleware(BaseHTTPMiddleware):
    """Middleware to enforce request timeouts."""

    def __init__(self, app, timeout: int = 60):
        """
        Initialize timeout middleware.

        Args:
            app: FastAPI application
            timeout: Request timeout in seconds (default: 60)
        """
        super().__init__(app)
        self.timeout = timeout

    async def dispatch(self, request, call_next):
        """Process request with timeout."""
        try:
            return await asyncio.wait_for(call_next(request), timeout=self.timeout)
        except asyncio.TimeoutError:
            return JSONResponse(
                status_code=status.HTTP_504_GATEWAY_TIMEOUT,
                content={"detail": f"Request timeout after {self.timeout} seconds"},
            )


# Timeout configurations
REQUEST_TIMEOUT = 60  # 60 seconds for general requests
LLM_CALL_TIMEOUT = 120  # 2 minutes for LLM calls
EMBEDDING_CALL_TIMEOUT = 30  # 30 seconds for embedding calls
