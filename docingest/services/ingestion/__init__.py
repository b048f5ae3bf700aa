"""Document ingestion building blocks.

Pipeline stages overview:

1. **Extract** (source_processors/) -- Format-specific processors turn raw
   uploads (PDF, DOCX, plain text) into normalized text.

2. **Chunk** (chunker.py / TextChunker) -- Packs paragraphs into ~2000-char
   fragments and stitches neighbour context onto each.

3. **Embed + store** (embedding_cache.py, batch_uploader.py) -- Content-hash
   cached embeddings written to the vector store in bounded sub-batches
   that degrade on rate limits.

4. **Checkpoint** (checkpoint_store.py) -- Persisted stage, cursor and
   progress so any invocation can be resumed.

The state machine tying these together lives in :mod:`docingest.pipeline`;
the caller-facing facade is
:class:`~docingest.services.ingestion.ingestion_service.IngestionService`.
"""

from docingest.services.ingestion.batch_uploader import BatchUploader
from docingest.services.ingestion.checkpoint_store import CheckpointStore
from docingest.services.ingestion.chunker import ChunkingResult, TextChunker
from docingest.services.ingestion.embedding_cache import EmbeddingCache

__all__ = [
    "BatchUploader",
    "CheckpointStore",
    "ChunkingResult",
    "EmbeddingCache",
    "TextChunker",
]
