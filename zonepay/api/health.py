"""Liveness endpoint."""

from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request):
    orchestrator = getattr(request.app.state, "orchestrator", None)
    return {
        "status": "ok",
        "provider": orchestrator.provider.name if orchestrator else None,
    }
