from __future__ import annotations

from pydantic import BaseModel
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "Dataroom RAG Backend"
    environment: str = "development"
    host: str = "127.0.0.1"
    port: int = 8000
    # Chat history store, default stored under dataroom_rag/sqlite/app.db
    database_url: str = "sqlite:///./dataroom_rag/sqlite/app.db"
    sqlite_timeout: int = 20  # SQLite connection timeout in seconds
    sqlite_check_same_thread: bool = False

    # OpenAI
    openai_api_key: str | None = None
    generation_model: str = "gpt-4o-mini"
    generation_temperature: float = 0.3
    generation_max_tokens: int = 2000
    grading_model: str = "gpt-4o-mini"
    grading_relevance_cutoff: float = 0.5

    # ChromaDB / embeddings
    chromadb_persist_directory: str | None = None  # Auto-detected if None
    embedding_model_name: str = "all-MiniLM-L6-v2"

    # Per-strategy search tuning
    fast_top_k: int = 8
    fast_similarity_threshold: float = 0.35
    standard_top_k: int = 12
    standard_similarity_threshold: float = 0.3
    expanded_top_k: int = 20
    expanded_similarity_threshold: float = 0.25
    page_query_top_k: int = 20
    page_query_similarity_threshold: float = 0.0
    page_query_timeout_ms: int = 30000

    # Whole-request deadline used when the caller does not pass one
    pipeline_timeout_ms: int = 50000

    # Context compression budgets (tokens) by complexity level
    compression_budget_low: int = 2000
    compression_budget_medium: int = 4000
    compression_budget_high: int = 6000

    class Config:
        env_file = ".env"
        extra = "ignore"  # Ignore extra environment variables that aren't in the Settings class


class SearchConfig(BaseModel):
    """Search parameters for one strategy."""
    top_k: int
    similarity_threshold: float
    timeout_ms: int

    class Config:
        frozen = True


class RAGConfig(BaseModel):
    """
    Read-only per-strategy search table.

    Built once at process start and handed to the orchestrator, so no
    pipeline code reads module-level settings on its own.
    """
    fast: SearchConfig
    standard: SearchConfig
    expanded: SearchConfig
    page_query: SearchConfig

    class Config:
        frozen = True

    @classmethod
    def from_settings(cls, s: "Settings") -> "RAGConfig":
        return cls(
            fast=SearchConfig(
                top_k=s.fast_top_k,
                similarity_threshold=s.fast_similarity_threshold,
                timeout_ms=45000,  # 45 seconds for fast search
            ),
            standard=SearchConfig(
                top_k=s.standard_top_k,
                similarity_threshold=s.standard_similarity_threshold,
                timeout_ms=50000,  # 50 seconds for standard search
            ),
            expanded=SearchConfig(
                top_k=s.expanded_top_k,
                similarity_threshold=s.expanded_similarity_threshold,
                timeout_ms=55000,  # 55 seconds for expanded search
            ),
            page_query=SearchConfig(
                top_k=s.page_query_top_k,
                similarity_threshold=s.page_query_similarity_threshold,
                timeout_ms=s.page_query_timeout_ms,
            ),
        )


settings = Settings()
