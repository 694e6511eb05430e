"""Liveness endpoint."""

from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request):
    registry = getattr(request.app.state, "registry", None)
    return {
        "status": "ok",
        "processors": registry.names() if registry is not None else [],
    }
