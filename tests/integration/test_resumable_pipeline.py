"""Integration tests for the stage controller and resume trigger.

Real SQLite metadata store and local blob store under tmp_path; fake
embedding provider and vector store; a manual clock that the fake store
advances on every upsert so the time budget trips deterministically.

The document is 100 short paragraphs at chunk_size=100, which yields
exactly 100 fragments and 5 staged batches of 20.
"""

from __future__ import annotations

import pytest
import structlog

from docingest.main import initialize_pipeline
from docingest.models.document import Document, DocumentStatus, PipelineStage
from docingest.utils.errors import DocumentNotFoundError, PipelineError

_OWNER = "acme"
_DOC = "doc-1"


async def _pipeline(build_components, **overrides):
    components = build_components(**overrides)
    await initialize_pipeline(components)
    return components


async def _seed(components, text: str, doc_id: str = _DOC, **fields) -> Document:
    blob_path = f"{_OWNER}/{doc_id}/report.txt"
    await components["blob_store"].put(blob_path, text.encode("utf-8"))
    document = Document(
        id=doc_id,
        owner_id=_OWNER,
        title="Report",
        raw_blob_path=blob_path,
        content_type="text/plain",
        **fields,
    )
    return await components["metadata_store"].create(document)


def _first_ids(vector_store) -> list[str]:
    return [ids[0] for _, ids in vector_store.upsert_calls]


class TestSingleInvocation:
    @pytest.mark.asyncio
    async def test_runs_to_completion(
        self, build_components, fake_vector_store, hundred_paragraph_text
    ) -> None:
        components = await _pipeline(build_components)
        await _seed(components, hundred_paragraph_text)

        result = await components["stage_controller"].run(_DOC, _OWNER)

        assert result.status == DocumentStatus.COMPLETE
        assert result.batches_processed == 5
        document = await components["metadata_store"].get(_DOC)
        assert document.progress == 100
        assert document.vector_count == 100
        assert document.stage == PipelineStage.COMPLETE
        assert document.chunk_layout is None
        assert document.raw_blob_path is None
        assert len(fake_vector_store.ids(_OWNER)) == 100
        assert await components["metadata_store"].get_batch(_DOC, 0) is None

    @pytest.mark.asyncio
    async def test_vectors_carry_fragment_metadata(
        self, build_components, fake_vector_store, hundred_paragraph_text
    ) -> None:
        components = await _pipeline(build_components)
        await _seed(components, hundred_paragraph_text)

        await components["stage_controller"].run(_DOC, _OWNER)

        record = fake_vector_store.data[_OWNER]["doc-1-7"]
        assert record.metadata["text"].startswith("Paragraph 007")
        assert record.metadata["pre_context"]
        assert record.metadata["document_id"] == _DOC
        assert record.metadata["title"] == "Report"

    @pytest.mark.asyncio
    async def test_raw_blob_deleted_after_staging(
        self, build_components, hundred_paragraph_text
    ) -> None:
        components = await _pipeline(build_components)
        document = await _seed(components, hundred_paragraph_text)

        await components["stage_controller"].run(_DOC, _OWNER)

        assert not await components["blob_store"].exists(document.raw_blob_path)

    @pytest.mark.asyncio
    async def test_complete_document_is_a_no_op(
        self, build_components, fake_vector_store, hundred_paragraph_text
    ) -> None:
        components = await _pipeline(build_components)
        await _seed(components, hundred_paragraph_text)
        await components["stage_controller"].run(_DOC, _OWNER)
        calls = len(fake_vector_store.upsert_calls)

        result = await components["resume_trigger"].resume(_DOC, _OWNER)

        assert result.status == DocumentStatus.COMPLETE
        assert len(fake_vector_store.upsert_calls) == calls

    @pytest.mark.asyncio
    async def test_empty_document_fails_extraction(self, build_components) -> None:
        components = await _pipeline(build_components)
        await _seed(components, "   \n\n  ")

        result = await components["stage_controller"].run(_DOC, _OWNER)

        assert result.status == DocumentStatus.ERROR
        document = await components["metadata_store"].get(_DOC)
        assert document.status == DocumentStatus.ERROR
        assert "no text" in document.error_message
        # The blob is kept so a fixed re-extraction could still run.
        assert document.raw_blob_path is not None

    @pytest.mark.asyncio
    async def test_concurrent_invocation_is_skipped(
        self, build_components, fake_vector_store, hundred_paragraph_text
    ) -> None:
        components = await _pipeline(build_components)
        await _seed(components, hundred_paragraph_text)
        controller = components["stage_controller"]
        controller._active.add(_DOC)

        result = await controller.run(_DOC, _OWNER)
        resumed = await components["resume_trigger"].resume(_DOC, _OWNER)

        assert result.skipped is True
        assert resumed.skipped is True
        assert fake_vector_store.upsert_calls == []

    @pytest.mark.asyncio
    async def test_log_context_carries_document_and_owner(
        self, build_components, hundred_paragraph_text
    ) -> None:
        components = await _pipeline(build_components)
        await _seed(components, hundred_paragraph_text)
        checkpoints = components["checkpoints"]
        original_enter = checkpoints.enter_embedding
        seen: list[dict] = []

        async def _recording_enter(document_id):
            seen.append(structlog.contextvars.get_contextvars())
            await original_enter(document_id)

        checkpoints.enter_embedding = _recording_enter

        await components["stage_controller"].run(_DOC, _OWNER)

        assert seen[0]["document_id"] == _DOC
        assert seen[0]["owner_id"] == _OWNER
        assert "owner_id" not in structlog.contextvars.get_contextvars()

    @pytest.mark.asyncio
    async def test_other_owner_cannot_run(self, build_components, hundred_paragraph_text) -> None:
        components = await _pipeline(build_components)
        await _seed(components, hundred_paragraph_text)

        with pytest.raises(DocumentNotFoundError):
            await components["stage_controller"].run(_DOC, "mallory")
        with pytest.raises(DocumentNotFoundError):
            await components["resume_trigger"].resume(_DOC, "mallory")


class TestPauseAndResume:
    @pytest.mark.asyncio
    async def test_pauses_on_budget_then_resumes_from_cursor(
        self, build_components, fake_vector_store, hundred_paragraph_text
    ) -> None:
        components = await _pipeline(build_components, pipeline_time_budget_seconds=1.5)
        await _seed(components, hundred_paragraph_text)
        fake_vector_store.clock_step = 1.0

        first = await components["stage_controller"].run(_DOC, _OWNER)

        assert first.paused is True
        assert first.status == DocumentStatus.PAUSED
        assert first.current_batch == 2
        paused = await components["metadata_store"].get(_DOC)
        assert paused.status == DocumentStatus.PAUSED
        assert paused.current_batch == 2
        assert paused.batch_count == 5
        assert paused.progress == 53
        assert paused.raw_blob_path is None
        assert len(fake_vector_store.ids(_OWNER)) == 40

        # A fresh process: new stores and controller, cold embedding cache.
        fake_vector_store.clock_step = 0.0
        cold = await _pipeline(build_components, pipeline_time_budget_seconds=1.5)
        second = await cold["resume_trigger"].resume(_DOC, _OWNER)

        assert second.status == DocumentStatus.COMPLETE
        assert second.batches_processed == 3
        assert _first_ids(fake_vector_store) == [
            "doc-1-0",
            "doc-1-20",
            "doc-1-40",
            "doc-1-60",
            "doc-1-80",
        ]
        done = await cold["metadata_store"].get(_DOC)
        assert done.progress == 100
        assert done.vector_count == 100
        assert len(fake_vector_store.ids(_OWNER)) == 100

    @pytest.mark.asyncio
    async def test_persisted_cursor_beats_stale_start_batch(
        self, build_components, fake_vector_store, hundred_paragraph_text
    ) -> None:
        components = await _pipeline(build_components, pipeline_time_budget_seconds=1.5)
        await _seed(components, hundred_paragraph_text)
        fake_vector_store.clock_step = 1.0
        await components["stage_controller"].run(_DOC, _OWNER)
        fake_vector_store.clock_step = 0.0

        await components["stage_controller"].run(_DOC, _OWNER, start_batch=0)

        assert _first_ids(fake_vector_store)[2] == "doc-1-40"
        assert fake_vector_store.total_records_written() == 100

    @pytest.mark.asyncio
    async def test_progress_is_monotonic_across_invocations(
        self, build_components, fake_vector_store, hundred_paragraph_text
    ) -> None:
        components = await _pipeline(build_components, pipeline_time_budget_seconds=1.5)
        await _seed(components, hundred_paragraph_text)
        checkpoints = components["checkpoints"]
        store = components["metadata_store"]
        observed: list[int] = []
        original_advance = checkpoints.advance

        async def _recording_advance(document_id, batches_done, batch_count):
            progress = await original_advance(document_id, batches_done, batch_count)
            observed.append((await store.get(document_id)).progress)
            return progress

        checkpoints.advance = _recording_advance
        fake_vector_store.clock_step = 1.0

        result = await components["stage_controller"].run(_DOC, _OWNER)
        while result.paused:
            result = await components["resume_trigger"].resume(_DOC, _OWNER)

        assert observed == [39, 53, 67, 81, 95]
        assert (await store.get(_DOC)).progress == 100

        # A late write from a stale invocation cannot rewind anything.
        await store.advance_cursor(_DOC, 1, 39)
        final = await store.get(_DOC)
        assert final.progress == 100
        assert final.current_batch == 5

    @pytest.mark.asyncio
    async def test_exhausted_budget_still_embeds_one_batch_per_invocation(
        self, build_components, fake_vector_store, fake_clock, hundred_paragraph_text
    ) -> None:
        components = await _pipeline(build_components, pipeline_time_budget_seconds=0.5)
        await _seed(components, hundred_paragraph_text)
        checkpoints = components["checkpoints"]
        original_enter = checkpoints.enter_embedding

        async def _slow_enter(document_id):
            # Extraction and staging alone use up the whole budget.
            fake_clock.advance(5.0)
            await original_enter(document_id)

        checkpoints.enter_embedding = _slow_enter
        fake_vector_store.clock_step = 1.0

        result = await components["stage_controller"].run(_DOC, _OWNER)

        assert result.paused is True
        assert result.batches_processed == 1
        assert result.current_batch == 1
        document = await components["metadata_store"].get(_DOC)
        assert document.status == DocumentStatus.PAUSED
        assert document.progress == 39

        cursors = [result.current_batch]
        while result.paused:
            result = await components["resume_trigger"].resume(_DOC, _OWNER)
            assert result.batches_processed == 1
            cursors.append(result.current_batch)

        assert cursors == [1, 2, 3, 4, 5]
        assert result.status == DocumentStatus.COMPLETE
        assert fake_vector_store.total_records_written() == 100


class TestKillAndResume:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("kill_after", [1, 3, 5])
    async def test_kill_after_upsert_redoes_one_batch_without_duplicates(
        self,
        build_components,
        fake_vector_store,
        hundred_paragraph_text,
        simulated_kill,
        kill_after,
    ) -> None:
        components = await _pipeline(build_components)
        await _seed(components, hundred_paragraph_text)
        fake_vector_store.kill_after_upserts = kill_after

        with pytest.raises(simulated_kill):
            await components["stage_controller"].run(_DOC, _OWNER)

        killed = await components["metadata_store"].get(_DOC)
        # The batch was upserted but its checkpoint never written.
        assert killed.current_batch == kill_after - 1
        assert killed.status == DocumentStatus.EMBEDDING
        assert not components["stage_controller"].is_running(_DOC)

        result = await components["resume_trigger"].resume(_DOC, _OWNER)

        assert result.status == DocumentStatus.COMPLETE
        ids = fake_vector_store.ids(_OWNER)
        assert len(ids) == 100
        assert ids == {f"doc-1-{i}" for i in range(100)}
        assert fake_vector_store.total_records_written() == 120

    @pytest.mark.asyncio
    async def test_stale_extracting_document_restarts_extraction(
        self, build_components, fake_vector_store, hundred_paragraph_text
    ) -> None:
        components = await _pipeline(build_components)
        await _seed(
            components,
            hundred_paragraph_text,
            status=DocumentStatus.EXTRACTING,
            stage=PipelineStage.EXTRACTING,
            progress=5,
        )

        result = await components["resume_trigger"].resume(_DOC, _OWNER)

        assert result.status == DocumentStatus.COMPLETE
        assert len(fake_vector_store.ids(_OWNER)) == 100

    @pytest.mark.asyncio
    async def test_pre_staging_resume_without_blob_is_refused(self, build_components) -> None:
        components = await _pipeline(build_components)
        await components["metadata_store"].create(
            Document(
                id=_DOC,
                owner_id=_OWNER,
                title="Report",
                raw_blob_path=None,
                status=DocumentStatus.CHUNKING,
                stage=PipelineStage.CHUNKING,
            )
        )

        with pytest.raises(PipelineError, match="raw blob path is gone"):
            await components["resume_trigger"].resume(_DOC, _OWNER)


class TestErrorAndRecovery:
    @pytest.mark.asyncio
    async def test_error_keeps_cursor_and_resume_recovers(
        self, build_components, fake_vector_store, hundred_paragraph_text
    ) -> None:
        components = await _pipeline(build_components, pipeline_time_budget_seconds=1.5)
        await _seed(components, hundred_paragraph_text)
        fake_vector_store.clock_step = 1.0
        await components["stage_controller"].run(_DOC, _OWNER)

        fake_vector_store.clock_step = 0.0
        fake_vector_store.unreachable = True
        failed = await components["resume_trigger"].resume(_DOC, _OWNER)

        assert failed.status == DocumentStatus.ERROR
        assert "connection refused" in failed.error
        assert failed.current_batch == 2
        errored = await components["metadata_store"].get(_DOC)
        assert errored.status == DocumentStatus.ERROR
        assert errored.current_batch == 2
        assert errored.progress == 53

        fake_vector_store.unreachable = False
        recovered = await components["resume_trigger"].resume(_DOC, _OWNER)

        assert recovered.status == DocumentStatus.COMPLETE
        document = await components["metadata_store"].get(_DOC)
        assert document.error_message is None
        assert len(fake_vector_store.ids(_OWNER)) == 100

    @pytest.mark.asyncio
    async def test_persistent_rate_limit_is_recorded(
        self, build_components, fake_embedder, hundred_paragraph_text
    ) -> None:
        components = await _pipeline(build_components)
        await _seed(components, hundred_paragraph_text)
        fake_embedder.always_rate_limit = {20}

        result = await components["stage_controller"].run(_DOC, _OWNER)

        assert result.status == DocumentStatus.ERROR
        assert "429" in result.error
        assert result.current_batch == 0


class TestResumeSweep:
    @pytest.mark.asyncio
    async def test_resume_paused_sweeps_every_paused_document(
        self, build_components, fake_vector_store, hundred_paragraph_text
    ) -> None:
        components = await _pipeline(build_components, pipeline_time_budget_seconds=1.5)
        for doc_id in ("doc-a", "doc-b"):
            await _seed(components, hundred_paragraph_text, doc_id=doc_id)
        fake_vector_store.clock_step = 1.0
        for doc_id in ("doc-a", "doc-b"):
            await components["stage_controller"].run(doc_id, _OWNER)
        fake_vector_store.clock_step = 0.0

        results = await components["resume_trigger"].resume_paused()

        assert {r.document_id for r in results} == {"doc-a", "doc-b"}
        assert all(r.status == DocumentStatus.COMPLETE for r in results)
        assert len(fake_vector_store.ids(_OWNER)) == 200


class TestRacingInvocations:
    @pytest.mark.asyncio
    async def test_lagging_invocation_cannot_undo_completion(
        self, build_components, fake_vector_store, hundred_paragraph_text
    ) -> None:
        lagging = await _pipeline(build_components, pipeline_time_budget_seconds=1.5)
        winner = await _pipeline(build_components)
        await _seed(lagging, hundred_paragraph_text)
        fake_vector_store.clock_step = 1.0
        await lagging["stage_controller"].run(_DOC, _OWNER)
        fake_vector_store.clock_step = 0.0

        original_upsert = fake_vector_store.upsert
        raced: list[bool] = []
        winner_results = []

        async def _upsert_then_race(namespace, records):
            written = await original_upsert(namespace, records)
            if not raced:
                raced.append(True)
                # Another process finishes the document mid-batch.
                winner_results.append(await winner["resume_trigger"].resume(_DOC, _OWNER))
            return written

        fake_vector_store.upsert = _upsert_then_race

        result = await lagging["resume_trigger"].resume(_DOC, _OWNER)

        assert winner_results[0].status == DocumentStatus.COMPLETE
        assert result.status == DocumentStatus.COMPLETE
        assert result.error is None
        document = await lagging["metadata_store"].get(_DOC)
        assert document.status == DocumentStatus.COMPLETE
        assert document.stage == PipelineStage.COMPLETE
        assert document.progress == 100
        assert document.error_message is None
        assert len(fake_vector_store.ids(_OWNER)) == 100

        again = await lagging["resume_trigger"].resume(_DOC, _OWNER)
        assert again.status == DocumentStatus.COMPLETE

    @pytest.mark.asyncio
    async def test_resume_settles_row_stuck_after_completed_stage(
        self, build_components, fake_vector_store
    ) -> None:
        components = await _pipeline(build_components)
        await components["metadata_store"].create(
            Document(
                id=_DOC,
                owner_id=_OWNER,
                title="Report",
                raw_blob_path=None,
                status=DocumentStatus.ERROR,
                stage=PipelineStage.COMPLETE,
                progress=100,
                batch_count=5,
                current_batch=5,
                vector_count=100,
                error_message="Staged batch 3 missing for document doc-1",
            )
        )

        result = await components["resume_trigger"].resume(_DOC, _OWNER)

        assert result.status == DocumentStatus.COMPLETE
        document = await components["metadata_store"].get(_DOC)
        assert document.status == DocumentStatus.COMPLETE
        assert document.error_message is None
        assert fake_vector_store.upsert_calls == []
