# /app/routes/public.py

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import PlainTextResponse
from prometheus_client import generate_latest

from app.config.settings import settings
from app.models.flow import utcnow
from app.services.session_store import RedisSessionStore
from app.utils.dependencies import verify_api_key

# This file defines public-facing endpoints that do not require authentication,
# such as health checks and the main root endpoint. The /metrics endpoint is
# conditionally protected by an API key.

router = APIRouter()

@router.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "Task Process Assistant",
        "version": "1.0.0",
        "status": "operational",
        "environment": settings.environment
    }

@router.get("/health", summary="Basic Health Check")
async def health_check():
    """Basic health check for load balancers."""
    return {"status": "healthy", "timestamp": utcnow()}

@router.get("/health/ready", summary="Readiness Probe")
async def readiness_check(request: Request):
    """Readiness probe: the orchestrator is built and its session store answers."""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Service not ready: orchestrator not initialised")
    store = orchestrator.store
    if isinstance(store, RedisSessionStore):
        try:
            await store.redis.ping()
        except Exception as e:
            raise HTTPException(status_code=503, detail=f"Service not ready: {e}")
    return {"status": "ready", "processes": len(orchestrator.registry), "session_store": store.backend}

@router.get("/health/live", summary="Liveness Probe")
async def liveness_check():
    """Kubernetes/Docker liveness probe."""
    return {"status": "alive"}


@router.get("/metrics", tags=["Monitoring"])
async def metrics(request: Request, _: bool = Depends(verify_api_key)):
    """Secured Prometheus metrics endpoint."""
    return PlainTextResponse(generate_latest(), media_type="text/plain")
