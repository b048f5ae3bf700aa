"""Application settings loaded from environment variables via pydantic-settings.

# --- HOW SETTINGS WORK ------------------------------------------------
#
# Settings are read from two sources, in priority order:
#
#   1. **Environment variables** (e.g. OPENAI_API_KEY=sk-abc123), always win
#   2. **.env file** in the working directory, for local development
#
# Field ``pipeline_time_budget_seconds`` maps to env var
# ``PIPELINE_TIME_BUDGET_SECONDS``; pydantic-settings matches
# case-insensitively.  Defaults apply when neither source sets a field.
#
# The pipeline tunables below are the knobs an operator turns when the
# host's invocation limit changes: the time budget must stay comfortably
# under the host's kill deadline, since a batch in flight when the host
# kills the process is simply redone on resume.
# ----------------------------------------------------------------------
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """docingest application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # === Embedding Providers ===
    # Empty string = "not configured"; main.py falls through to the next
    # provider when a key is missing.
    openai_api_key: str = ""
    openai_base_url: str = ""  # Custom base URL for OpenAI-compatible APIs
    openai_embedding_model: str = ""  # Override embedding model
    ollama_base_url: str = "http://localhost:11434"

    # === Storage ===
    blob_root_dir: str = "./data/blobs"
    metadata_db_path: str = "data/documents.db"
    chromadb_persist_dir: str = "./data/chromadb"
    chromadb_collection_prefix: str = "docingest"

    # === Chunking ===
    chunk_size: int = 2000
    chunk_overlap: int = 200

    # === Pipeline ===
    pipeline_batch_size: int = 20  # fragments per checkpointed batch
    upsert_batch_size: int = 40  # fragments per embed+upsert call
    upsert_fallback_batch_size: int = 20  # sub-batch size after a rate limit
    embedding_concurrency: int = 2
    embedding_cache_max_entries: int = 10000
    pipeline_time_budget_seconds: float = Field(default=8.0, gt=0)
    auto_resume_on_pause: bool = True
    vector_delete_batch_size: int = 1000
    max_file_size_mb: int = 25

    # === App Config ===
    app_env: str = "development"
    log_level: str = "INFO"

    def get_available_embedding_providers(self) -> list[str]:
        """Return embedding provider names that have configuration present."""
        providers: list[str] = []
        if self.openai_api_key:
            providers.append("openai")
        if self.ollama_base_url:
            providers.append("nomic")
        return providers
