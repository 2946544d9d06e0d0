"""
Chat message persistence.

Writes go through a short-lived SQLAlchemy session on the default
executor so the event loop never blocks on SQLite.
"""

from __future__ import annotations

import asyncio
import functools
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from dataroom_rag.sqlite.database import SessionLocal, get_db_context
from dataroom_rag.sqlite.models import ChatMessage
from dataroom_rag.utils.logging import get_logger

logger = get_logger("dataroom_rag.services.chat_storage")


class ChatStorageService:
    def __init__(self, session_factory: sessionmaker | None = None):
        self._session_factory = session_factory or SessionLocal

    async def add_message(
        self,
        session_id: str,
        role: str,
        content: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(
            None,
            functools.partial(self._add_message_sync, session_id, role, content, metadata),
        )

    def _add_message_sync(
        self,
        session_id: str,
        role: str,
        content: str,
        metadata: dict[str, Any] | None,
    ) -> None:
        with get_db_context(self._session_factory) as db:
            db.add(ChatMessage(
                session_id=session_id,
                role=role,
                content=content,
                message_metadata=metadata,
            ))
        logger.debug("Stored %s message for session %s (%d chars)", role, session_id, len(content))

    async def list_messages(self, session_id: str) -> list[dict[str, Any]]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, functools.partial(self._list_messages_sync, session_id),
        )

    def _list_messages_sync(self, session_id: str) -> list[dict[str, Any]]:
        with get_db_context(self._session_factory) as db:
            rows = db.execute(
                select(ChatMessage)
                .where(ChatMessage.session_id == session_id)
                .order_by(ChatMessage.id)
            ).scalars().all()
            return [
                {
                    "role": row.role,
                    "content": row.content,
                    "metadata": row.message_metadata,
                    "created_at": row.created_at.isoformat() if row.created_at else None,
                }
                for row in rows
            ]
