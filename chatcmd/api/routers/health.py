"""Health check API router."""

import logging
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from chatcmd.adapters.conversation_store import ConversationStore
from chatcmd.api.dependencies import get_store
from chatcmd.infra.metrics import get_metrics_response

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", tags=["Health"])
async def health_check():
    """Combined health check endpoint."""
    return {
        "status": "ok",
        "service": "chatcmd",
        "version": "1.0.0",
    }


@router.get("/health/live", tags=["Health"])
async def liveness_probe():
    """Liveness probe - indicates if the process is running."""
    return {"status": "alive"}


@router.get("/health/ready", tags=["Health"])
async def readiness_probe(store: ConversationStore = Depends(get_store)):
    """Readiness probe - checks conversation store connectivity."""
    try:
        store.ping()
    except Exception as e:
        logger.warning(f"Readiness check failed: {type(e).__name__}: {e}")
        return JSONResponse(status_code=503, content={"status": "not_ready"})
    return {"status": "ready"}


@router.get("/metrics", tags=["Health"])
async def metrics():
    """Prometheus metrics endpoint."""
    return get_metrics_response()
