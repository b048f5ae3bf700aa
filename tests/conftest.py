"""Shared pytest fixtures for the docingest test suite.

The fakes here are stateful stand-ins for the external collaborators:
an embedding provider with deterministic vectors, a namespaced in-memory
vector store that can be told to rate-limit, go down, or "kill" the
process, and a manually advanced clock for the invocation budget.
SQLite and the local blob store are used for real under ``tmp_path``.
"""

from __future__ import annotations

import hashlib
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio

from docingest.config.settings import Settings
from docingest.interfaces.embedding_provider import IEmbeddingProvider
from docingest.interfaces.vector_store_provider import IVectorStoreProvider
from docingest.models.fragment import VectorMatch, VectorRecord
from docingest.providers.blob.local_blob_store import LocalBlobStore
from docingest.providers.metadata.sqlite_metadata_store import SQLiteMetadataStore
from docingest.utils.errors import RateLimitError, VectorStoreError

_DIMENSION = 8


class SimulatedKill(BaseException):
    """Raised to emulate the host terminating an invocation mid-flight.

    A BaseException so the stage controller's error handling does not
    record it, exactly like a real kill.
    """


class FakeClock:
    """Manual monotonic clock; ``tick`` is added after every read."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.tick = 0.0

    def __call__(self) -> float:
        value = self.now
        self.now += self.tick
        return value

    def advance(self, seconds: float) -> None:
        self.now += seconds


def fake_vector(text: str) -> list[float]:
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    return [b / 255.0 for b in digest[:_DIMENSION]]


class FakeEmbeddingProvider(IEmbeddingProvider):
    """Deterministic embeddings; records every batched call."""

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        # Batch sizes to reject once each; sizes in always_rate_limit reject forever.
        self.rate_limit_sizes: list[int] = []
        self.always_rate_limit: set[int] = set()

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if len(texts) in self.always_rate_limit:
            raise RateLimitError(message="429 Too Many Requests", provider_name="fake")
        if len(texts) in self.rate_limit_sizes:
            self.rate_limit_sizes.remove(len(texts))
            raise RateLimitError(message="429 Too Many Requests", provider_name="fake")
        return [fake_vector(t) for t in texts]

    async def embed_single(self, text: str) -> list[float]:
        return (await self.embed([text]))[0]

    def get_dimension(self) -> int:
        return _DIMENSION

    def get_provider_name(self) -> str:
        return "fake_embedding"

    def is_available(self) -> bool:
        return True


class FakeVectorStore(IVectorStoreProvider):
    """In-memory namespaced store keyed by vector id."""

    def __init__(self, clock: FakeClock | None = None) -> None:
        self.data: dict[str, dict[str, VectorRecord]] = {}
        self.upsert_calls: list[tuple[str, list[str]]] = []
        self.clock = clock
        self.clock_step = 0.0
        self.unreachable = False
        self.rate_limit_sizes: list[int] = []
        self.kill_after_upserts: int | None = None

    def _check_reachable(self) -> None:
        if self.unreachable:
            raise VectorStoreError(message="connection refused", provider_name="fake_store")

    async def upsert(self, namespace: str, records: list[VectorRecord]) -> int:
        self._check_reachable()
        if len(records) in self.rate_limit_sizes:
            self.rate_limit_sizes.remove(len(records))
            raise RateLimitError(message="store over capacity", provider_name="fake_store")

        bucket = self.data.setdefault(namespace, {})
        for record in records:
            bucket[record.id] = record
        self.upsert_calls.append((namespace, [r.id for r in records]))
        if self.clock is not None:
            self.clock.advance(self.clock_step)

        if self.kill_after_upserts is not None and len(self.upsert_calls) >= self.kill_after_upserts:
            self.kill_after_upserts = None
            raise SimulatedKill()
        return len(records)

    async def query(
        self,
        namespace: str,
        vector: list[float],
        top_k: int = 10,
        filters: dict[str, Any] | None = None,
    ) -> list[VectorMatch]:
        self._check_reachable()
        matches = [
            VectorMatch(
                id=r.id,
                score=sum(a * b for a, b in zip(vector, r.vector)),
                metadata=r.metadata,
            )
            for r in self._matching(namespace, filters)
        ]
        return sorted(matches, key=lambda m: m.score, reverse=True)[:top_k]

    async def list_ids(
        self,
        namespace: str,
        filters: dict[str, Any] | None = None,
        limit: int = 1000,
    ) -> list[str]:
        self._check_reachable()
        return sorted(r.id for r in self._matching(namespace, filters))[:limit]

    async def delete_many(self, namespace: str, ids: list[str]) -> int:
        self._check_reachable()
        bucket = self.data.get(namespace, {})
        for vector_id in ids:
            bucket.pop(vector_id, None)
        return len(ids)

    def get_provider_name(self) -> str:
        return "fake_store"

    def _matching(self, namespace: str, filters: dict[str, Any] | None) -> list[VectorRecord]:
        records = self.data.get(namespace, {}).values()
        if not filters:
            return list(records)
        return [
            r for r in records if all(r.metadata.get(k) == v for k, v in filters.items())
        ]

    def ids(self, namespace: str) -> set[str]:
        return set(self.data.get(namespace, {}))

    def total_records_written(self) -> int:
        return sum(len(ids) for _, ids in self.upsert_calls)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_embedder() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def fake_vector_store(fake_clock: FakeClock) -> FakeVectorStore:
    return FakeVectorStore(clock=fake_clock)


@pytest.fixture
def simulated_kill() -> type[SimulatedKill]:
    return SimulatedKill


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Settings pointing every store at tmp_path; no auto-resume."""
    return Settings(
        openai_api_key="",
        blob_root_dir=str(tmp_path / "blobs"),
        metadata_db_path=str(tmp_path / "documents.db"),
        chromadb_persist_dir=str(tmp_path / "chromadb"),
        chunk_size=100,
        chunk_overlap=20,
        pipeline_batch_size=20,
        upsert_batch_size=40,
        upsert_fallback_batch_size=20,
        pipeline_time_budget_seconds=100.0,
        auto_resume_on_pause=False,
        vector_delete_batch_size=1000,
    )


@pytest_asyncio.fixture
async def metadata_store(tmp_path: Path) -> SQLiteMetadataStore:
    store = SQLiteMetadataStore(db_path=tmp_path / "documents.db")
    await store.initialize()
    return store


@pytest.fixture
def blob_store(tmp_path: Path) -> LocalBlobStore:
    return LocalBlobStore(root_dir=tmp_path / "blobs")


@pytest.fixture
def hundred_paragraph_text() -> str:
    """100 short paragraphs; at chunk_size=100 each becomes one fragment."""
    return "\n\n".join(
        f"Paragraph {i:03d} describes section {i} of the ingestion test document in plain words."
        for i in range(100)
    )


@pytest.fixture
def build_components(
    test_settings: Settings,
    fake_embedder: FakeEmbeddingProvider,
    fake_vector_store: FakeVectorStore,
    fake_clock: FakeClock,
) -> Callable[..., dict[str, Any]]:
    """Return a factory for a fully wired pipeline over the fakes."""
    from docingest.main import build_pipeline

    def _build(**overrides: Any) -> dict[str, Any]:
        settings = test_settings.model_copy(update=overrides)
        return build_pipeline(
            settings,
            embedding_provider=fake_embedder,
            vector_store=fake_vector_store,
            clock=fake_clock,
        )

    return _build
