"""
Health check endpoint for monitoring.
"""

from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check(request: Request):
    """Liveness plus whether the orchestrator is accepting queries."""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    accepting = orchestrator is not None and not orchestrator.is_disposed
    return {
        "status": "ok",
        "service": "dataroom-rag",
        "accepting_queries": accepting,
    }
