"""docingest composition root.

Wires providers, services and the pipeline together via constructor
injection.  ``build_pipeline`` is the single place that knows concrete
classes; everything else depends on the interfaces in
:mod:`docingest.interfaces`.  The CLI and any HTTP layer call it once at
startup, then ``await initialize_pipeline(...)`` before first use.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

from docingest.config.loader import load_settings
from docingest.config.settings import Settings
from docingest.interfaces.embedding_provider import IEmbeddingProvider
from docingest.interfaces.vector_store_provider import IVectorStoreProvider
from docingest.pipeline.deletion import DeletionCoordinator
from docingest.pipeline.resume_trigger import ResumeTrigger
from docingest.pipeline.stage_controller import StageController
from docingest.providers.blob.local_blob_store import LocalBlobStore
from docingest.providers.metadata.sqlite_metadata_store import SQLiteMetadataStore
from docingest.services.ingestion.batch_uploader import BatchUploader
from docingest.services.ingestion.checkpoint_store import CheckpointStore
from docingest.services.ingestion.chunker import TextChunker
from docingest.services.ingestion.embedding_cache import EmbeddingCache
from docingest.services.ingestion.ingestion_service import IngestionService
from docingest.services.ingestion.source_processors.dispatcher import ExtractionDispatcher
from docingest.utils.errors import ConfigurationError
from docingest.utils.logging import get_logger

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------


def _build_embedding_provider(app_settings: Settings) -> IEmbeddingProvider | None:
    """Select the first available embedding provider.

    Priority: OpenAI/OpenAI-compatible (if API key set) ->
              Nomic/Ollama (if reachable with the model pulled).
    Returns ``None`` if no embedding provider is available.
    """
    if app_settings.openai_api_key:
        from docingest.providers.embedding.openai_embedding_provider import (
            OpenAIEmbeddingProvider,
        )

        provider: IEmbeddingProvider = OpenAIEmbeddingProvider(settings=app_settings)
        if provider.is_available():
            return provider

    from docingest.providers.embedding.nomic_embedding_provider import (
        NomicEmbeddingProvider,
    )

    provider = NomicEmbeddingProvider(settings=app_settings)
    if provider.is_available():
        return provider

    return None


def _build_vector_store(app_settings: Settings) -> IVectorStoreProvider:
    # Deferred: importing chromadb is slow and not needed by every CLI command.
    from docingest.providers.vector_store.chromadb_provider import ChromaDBProvider

    return ChromaDBProvider(
        persist_directory=app_settings.chromadb_persist_dir,
        collection_prefix=app_settings.chromadb_collection_prefix,
    )


# ---------------------------------------------------------------------------
# Full DI assembly
# ---------------------------------------------------------------------------


def build_pipeline(
    custom_settings: Settings | None = None,
    embedding_provider: IEmbeddingProvider | None = None,
    vector_store: IVectorStoreProvider | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> dict[str, Any]:
    """Construct and return all pipeline components with injected dependencies.

    Parameters
    ----------
    custom_settings:
        Application settings.  Loaded via :func:`load_settings` if omitted.
    embedding_provider:
        Overrides provider selection (tests, scripts).
    vector_store:
        Overrides the ChromaDB provider.
    clock:
        Time source for the invocation budget.

    Returns
    -------
    dict
        Components keyed by role name; ``"ingestion_service"`` is the
        facade most callers need.

    Raises
    ------
    ConfigurationError
        If no embedding provider is configured or reachable.
    """
    s = custom_settings or load_settings()

    embedder = embedding_provider or _build_embedding_provider(s)
    if embedder is None:
        raise ConfigurationError(
            message="No embedding provider available: set OPENAI_API_KEY or run Ollama",
            provider_name="main",
        )
    store = vector_store or _build_vector_store(s)

    metadata_store = SQLiteMetadataStore(db_path=s.metadata_db_path)
    blob_store = LocalBlobStore(root_dir=s.blob_root_dir)
    checkpoints = CheckpointStore(metadata_store)

    embedding_cache = EmbeddingCache(embedder, max_entries=s.embedding_cache_max_entries)
    uploader = BatchUploader(
        embedding_cache,
        store,
        batch_size=s.upsert_batch_size,
        fallback_batch_size=s.upsert_fallback_batch_size,
        max_concurrency=s.embedding_concurrency,
    )
    extractor = ExtractionDispatcher()
    chunker = TextChunker(chunk_size=s.chunk_size, overlap=s.chunk_overlap)

    controller = StageController(
        checkpoints=checkpoints,
        blob_store=blob_store,
        extractor=extractor,
        chunker=chunker,
        uploader=uploader,
        batch_size=s.pipeline_batch_size,
        time_budget_seconds=s.pipeline_time_budget_seconds,
        clock=clock,
    )
    resume_trigger = ResumeTrigger(checkpoints, controller)
    deletion = DeletionCoordinator(
        metadata_store,
        blob_store,
        store,
        delete_batch_size=s.vector_delete_batch_size,
    )
    ingestion_service = IngestionService(
        checkpoints=checkpoints,
        blob_store=blob_store,
        controller=controller,
        resume_trigger=resume_trigger,
        deletion=deletion,
        extractor=extractor,
        max_file_size_mb=s.max_file_size_mb,
        auto_resume_on_pause=s.auto_resume_on_pause,
    )

    logger.info(
        "pipeline_built",
        embedding_provider=embedder.get_provider_name(),
        vector_store=store.get_provider_name(),
        time_budget=s.pipeline_time_budget_seconds,
        batch_size=s.pipeline_batch_size,
    )

    return {
        "settings": s,
        "metadata_store": metadata_store,
        "blob_store": blob_store,
        "vector_store": store,
        "embedding_provider": embedder,
        "embedding_cache": embedding_cache,
        "checkpoints": checkpoints,
        "chunker": chunker,
        "uploader": uploader,
        "stage_controller": controller,
        "resume_trigger": resume_trigger,
        "deletion_coordinator": deletion,
        "ingestion_service": ingestion_service,
    }


async def initialize_pipeline(components: dict[str, Any]) -> None:
    """Create storage tables; idempotent."""
    await components["metadata_store"].initialize()
