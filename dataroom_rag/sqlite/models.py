from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, Integer, String, Text

from dataroom_rag.sqlite.database import Base


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String, nullable=False, index=True)
    role = Column(String, nullable=False)  # user, assistant, system
    content = Column(Text, nullable=False, default="")
    # ChatMetadata snapshot (timings, strategy, token usage, error)
    message_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
