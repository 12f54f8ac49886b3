from fastapi import APIRouter

from wallylog.api.v1 import auth
from wallylog.api.v1 import content
from wallylog.api.v1 import subscribe
from wallylog.core.metrics import snapshot as metrics_snapshot

api_router = APIRouter()

api_router.include_router(auth.router)
api_router.include_router(subscribe.router)
api_router.include_router(content.router)


@api_router.get("/health", tags=["health"])
def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@api_router.get("/health/ready", tags=["health"])
def readiness() -> dict[str, str]:
    return {"status": "ready"}


@api_router.get("/metrics", tags=["metrics"])
def metrics() -> dict:
    return metrics_snapshot()
