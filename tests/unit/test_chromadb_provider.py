"""Unit tests for the ChromaDB vector store provider.

Runs against a real PersistentClient under tmp_path with tiny
pre-computed vectors; no embedding model is ever loaded.
"""

from __future__ import annotations

import pytest

from docingest.models.fragment import VectorRecord
from docingest.providers.vector_store.chromadb_provider import (
    ChromaDBProvider,
    _translate_filters,
    collection_name_for,
)


def _record(doc_id: str, order: int, vector: list[float]) -> VectorRecord:
    return VectorRecord(
        id=f"{doc_id}-{order}",
        vector=vector,
        metadata={
            "text": f"body {order}",
            "document_id": doc_id,
            "owner_id": "acme",
            "order": order,
            "title": None,
        },
    )


@pytest.fixture()
def provider(tmp_path) -> ChromaDBProvider:
    return ChromaDBProvider(persist_directory=str(tmp_path / "chroma"))


class TestCollectionNames:
    def test_valid_namespace_is_kept(self) -> None:
        assert collection_name_for("docingest", "acme") == "docingest_acme"

    def test_sanitized_names_get_a_digest_suffix(self) -> None:
        a = collection_name_for("docingest", "user@example.com")
        b = collection_name_for("docingest", "user#example.com")

        assert a != b
        assert a.startswith("docingest_user_example.com_")
        assert 3 <= len(a) <= 63

    def test_long_names_are_truncated(self) -> None:
        name = collection_name_for("docingest", "x" * 200)
        assert len(name) <= 63
        assert name[-1].isalnum()


class TestTranslateFilters:
    def test_single_and_multiple_keys(self) -> None:
        assert _translate_filters(None) is None
        assert _translate_filters({"document_id": "d"}) == {"document_id": "d"}
        assert _translate_filters({"document_id": "d", "order": 1}) == {
            "$and": [{"document_id": "d"}, {"order": 1}]
        }


class TestChromaDBProvider:
    def test_get_provider_name(self, provider) -> None:
        assert provider.get_provider_name() == "chromadb"

    @pytest.mark.asyncio
    async def test_upsert_is_idempotent(self, provider) -> None:
        records = [_record("doc-1", 0, [1.0, 0.0, 0.0]), _record("doc-1", 1, [0.0, 1.0, 0.0])]

        assert await provider.upsert("acme", records) == 2
        await provider.upsert("acme", records)

        assert sorted(await provider.list_ids("acme")) == ["doc-1-0", "doc-1-1"]

    @pytest.mark.asyncio
    async def test_query_returns_similarity(self, provider) -> None:
        await provider.upsert(
            "acme",
            [_record("doc-1", 0, [1.0, 0.0, 0.0]), _record("doc-1", 1, [0.0, 1.0, 0.0])],
        )

        matches = await provider.query("acme", [1.0, 0.0, 0.0], top_k=2)

        assert matches[0].id == "doc-1-0"
        assert matches[0].score == pytest.approx(1.0, abs=1e-4)
        assert matches[0].metadata["text"] == "body 0"
        assert "title" not in matches[0].metadata

    @pytest.mark.asyncio
    async def test_query_empty_namespace(self, provider) -> None:
        assert await provider.query("nobody", [1.0, 0.0, 0.0]) == []

    @pytest.mark.asyncio
    async def test_namespaces_are_isolated(self, provider) -> None:
        await provider.upsert("acme", [_record("doc-1", 0, [1.0, 0.0, 0.0])])
        await provider.upsert("globex", [_record("doc-9", 0, [1.0, 0.0, 0.0])])

        assert await provider.list_ids("acme") == ["doc-1-0"]
        assert await provider.list_ids("globex") == ["doc-9-0"]

    @pytest.mark.asyncio
    async def test_list_ids_filter_and_limit(self, provider) -> None:
        await provider.upsert(
            "acme",
            [_record("doc-1", i, [1.0, float(i), 0.0]) for i in range(5)]
            + [_record("doc-2", 0, [0.0, 0.0, 1.0])],
        )

        doc_1 = await provider.list_ids("acme", {"document_id": "doc-1"})
        limited = await provider.list_ids("acme", {"document_id": "doc-1"}, limit=2)

        assert len(doc_1) == 5
        assert all(i.startswith("doc-1-") for i in doc_1)
        assert len(limited) == 2

    @pytest.mark.asyncio
    async def test_delete_many(self, provider) -> None:
        await provider.upsert(
            "acme", [_record("doc-1", i, [1.0, float(i), 0.0]) for i in range(3)]
        )

        assert await provider.delete_many("acme", ["doc-1-0", "doc-1-2"]) == 2
        assert await provider.delete_many("acme", []) == 0
        assert await provider.list_ids("acme") == ["doc-1-1"]

    def test_clean_metadata_drops_none_and_stringifies(self) -> None:
        cleaned = ChromaDBProvider._clean_metadata(
            {"a": None, "b": 1, "c": "x", "d": [1, 2], "e": True}
        )
        assert cleaned == {"b": 1, "c": "x", "d": "[1, 2]", "e": True}
