"""
Thin API route for the dataroom chat endpoint.

No business logic: validates the request, wires the request-scoped
cancellation signal and metadata tracker, calls
``RAGOrchestrator.process_query()`` and streams the answer back as
server-sent events.
"""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from starlette.background import BackgroundTask

from dataroom_rag.core.config import settings
from dataroom_rag.core.errors import PipelineCancelledError, PipelineDisposedError
from dataroom_rag.pipeline.orchestrator import RAGOrchestrator
from dataroom_rag.schemas.response import ChatRequest
from dataroom_rag.services.metadata_tracker import ChatMetadataTracker
from dataroom_rag.utils.cancellation import CancellationSignal
from dataroom_rag.utils.logging import get_logger

logger = get_logger("dataroom_rag.api.chat")

router = APIRouter(tags=["Chat"])

# Non-standard "client closed request" status
CLIENT_CLOSED_REQUEST = 499
DISCONNECT_POLL_SECONDS = 0.5


def get_orchestrator(request: Request) -> RAGOrchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Chat service is not ready",
        )
    return orchestrator


async def watch_disconnect(request: Request, signal: CancellationSignal) -> None:
    """Abort ``signal`` as soon as the client goes away."""
    while not signal.aborted:
        if await request.is_disconnected():
            logger.info("[CHAT] Client disconnected; cancelling request")
            signal.abort()
            return
        await asyncio.sleep(DISCONNECT_POLL_SECONDS)


async def _store_user_message(request: Request, session_id: str, content: str) -> None:
    store = getattr(request.app.state, "chat_storage", None)
    if store is None:
        return
    try:
        await store.add_message(session_id=session_id, role="user", content=content)
    except Exception as e:
        logger.warning("[CHAT] Storing user message failed (answer still streamed): %s", e)


async def _stop_watcher(watcher: asyncio.Task) -> None:
    watcher.cancel()


@router.post("/datarooms/{dataroom_id}/chat")
async def chat(
    dataroom_id: str,
    body: ChatRequest,
    request: Request,
    orchestrator: RAGOrchestrator = Depends(get_orchestrator),
):
    """Answer a question about the dataroom's documents as an SSE stream."""
    q = body.query.strip()[:80]
    logger.info(
        "[CHAT] dataroom=%s strategy=%s question: %s%s",
        dataroom_id, body.strategy, q, "..." if len(body.query) > 80 else "",
    )

    if body.chat_session_id:
        await _store_user_message(request, body.chat_session_id, body.query)

    abort_signal = CancellationSignal()
    tracker = ChatMetadataTracker()
    watcher = asyncio.create_task(watch_disconnect(request, abort_signal))

    try:
        answer = await orchestrator.process_query(
            query=body.query,
            dataroom_id=dataroom_id,
            indexed_documents=body.documents,
            messages=body.messages,
            strategy=body.strategy,
            intent=body.intent,
            complexity_analysis=body.complexity_analysis,
            query_extraction=body.query_extraction,
            timeout_ms=body.timeout_ms or settings.pipeline_timeout_ms,
            abort_signal=abort_signal,
            chat_session_id=body.chat_session_id,
            metadata_tracker=tracker,
        )
    except PipelineDisposedError as e:
        watcher.cancel()
        logger.warning("[CHAT] Rejected, service shutting down: %s", e)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=e.to_dict(),
        )
    except PipelineCancelledError:
        watcher.cancel()
        logger.info("[CHAT] Request cancelled by client")
        return Response(status_code=CLIENT_CLOSED_REQUEST)
    except Exception as e:
        watcher.cancel()
        logger.error("[CHAT] Error: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error processing question: {e}",
        )

    logger.info("[CHAT] Streaming %s answer with %d sources", answer.kind, len(answer.sources))
    return answer.to_streaming_response(
        headers={"X-Answer-Kind": answer.kind},
        background=BackgroundTask(_stop_watcher, watcher),
    )


@router.get("/datarooms/{dataroom_id}/chat/sessions/{session_id}/messages")
async def chat_history(dataroom_id: str, session_id: str, request: Request):
    """Stored messages of one chat session, oldest first, with their metadata."""
    store = getattr(request.app.state, "chat_storage", None)
    if store is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Chat history is not available",
        )
    return {"session_id": session_id, "messages": await store.list_messages(session_id)}
