import os
import sys
from contextlib import asynccontextmanager

# Fix Windows console encoding BEFORE any other imports.
# Only stdout: tqdm (used by sentence_transformers) flushes stderr and a
# reconfigured stderr raises OSError [Errno 22] on Windows.
if os.name == "nt":
    os.environ["PYTHONIOENCODING"] = "utf-8"
    if hasattr(sys.stdout, "reconfigure"):
        try:
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        except Exception:
            pass

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from dataroom_rag.api.chat import router as chat_router
from dataroom_rag.api.health import router as health_router
from dataroom_rag.core.config import settings
from dataroom_rag.utils.logging import get_logger, setup_logging

logger = get_logger("dataroom_rag.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup:
    1. Structured logging
    2. Chat history database
    3. Orchestrator with the default collaborators
    Shutdown disposes the orchestrator so in-flight requests finish
    and new ones are rejected.
    """
    setup_logging()
    logger.info("Starting Dataroom RAG Backend...")

    from dataroom_rag.pipeline.orchestrator import create_orchestrator
    from dataroom_rag.services.chat_storage import ChatStorageService
    from dataroom_rag.sqlite.database import engine, init_db

    if not init_db():
        raise RuntimeError("Database initialization failed")

    app.state.chat_storage = ChatStorageService()
    app.state.orchestrator = create_orchestrator(settings)
    logger.info("[OK] Dataroom RAG Backend started")

    try:
        yield
    finally:
        logger.info("Shutting down Dataroom RAG Backend...")
        app.state.orchestrator.dispose()
        engine.dispose()
        logger.info("[OK] Shutdown complete")


def create_app(use_lifespan: bool = True) -> FastAPI:
    app = FastAPI(
        title=settings.app_name,
        description="Retrieval-augmented chat over dataroom documents",
        version="1.0.0",
        lifespan=lifespan if use_lifespan else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # In production, specify your frontend domain
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(chat_router, prefix="/api/v1")   # /api/v1/datarooms/{id}/chat
    app.include_router(health_router, prefix="/api")    # /api/health
    return app


app = create_app()
