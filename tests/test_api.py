"""Tests for the Tagger pipeline facade."""

import pytest

from tagger.api import Tagger
from tagger.document import is_tagged
from tagger.errors import (
    DocumentNotFound,
    EmptyVocabulary,
    NetworkError,
    NoModelSelected,
)
from tagger.state_store import MemoryStateStore
from tagger.types import (
    STATUS_EMPTY,
    STATUS_EXCLUDED,
    STATUS_FAILED,
    STATUS_SKIPPED,
    STATUS_STALE,
    STATUS_TAGGED,
    STATUS_UNCHANGED,
    STATUS_UNTAGGED,
    TaggerState,
    now_ms,
)

from tests.conftest import FakeLLM, MemoryDocumentStore


# ---------------------------------------------------------------------------
# tag_document
# ---------------------------------------------------------------------------


class TestTagDocument:

    @pytest.mark.asyncio
    async def test_tags_and_records(self, tagger, documents, state_store, llm):
        before = now_ms()
        result = await tagger.tag_document("notes/ml.md")

        assert result.status == STATUS_TAGGED
        content = documents.content("notes/ml.md")
        assert is_tagged(content)
        assert content.endswith("#ml I study ml today.")
        assert tagger.state.tagged_files["notes/ml.md"] >= before
        assert "notes/ml.md" in state_store.load().tagged_files
        assert len(llm.calls) == 1

    @pytest.mark.asyncio
    async def test_unmodified_document_is_skipped(self, tagger, llm):
        await tagger.tag_document("notes/ml.md")
        result = await tagger.tag_document("notes/ml.md")

        assert result.status == STATUS_SKIPPED
        assert len(llm.calls) == 1

    @pytest.mark.asyncio
    async def test_modified_document_is_reprocessed(self, tagger, documents):
        await tagger.tag_document("notes/ml.md")
        documents.put("notes/ml.md", "Rewritten ml notes.", mtime=now_ms() + 60_000)

        result = await tagger.tag_document("notes/ml.md")

        assert result.status == STATUS_TAGGED
        assert documents.content("notes/ml.md").endswith("#ml Rewritten ml notes.")

    @pytest.mark.asyncio
    async def test_already_tagged_content_unchanged(self, tagger, documents, llm):
        await tagger.tag_document("notes/ml.md")
        tagged = documents.content("notes/ml.md")
        tagger.state.tagged_files.clear()

        result = await tagger.tag_document("notes/ml.md")

        assert result.status == STATUS_UNCHANGED
        assert documents.content("notes/ml.md") == tagged
        assert len(llm.calls) == 1

    @pytest.mark.asyncio
    async def test_excluded(self, tagger, documents, llm):
        tagger.add_exclude_pattern("daily")
        result = await tagger.tag_document("daily.md")

        assert result.status == STATUS_EXCLUDED
        assert documents.writes == []
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_force_ignores_record_not_exclusion(self, tagger, documents):
        tagger.state.tagged_files["notes/cooking.md"] = now_ms()
        tagger.state.exclude_patterns.append("daily")

        forced = await tagger.tag_document("notes/cooking.md", force=True)
        excluded = await tagger.tag_document("daily.md", force=True)

        assert forced.status == STATUS_TAGGED
        assert excluded.status == STATUS_EXCLUDED

    @pytest.mark.asyncio
    async def test_concurrent_edit_aborts_write(self, documents, state_store, notices):
        llm = FakeLLM(on_generate=lambda model, prompt: documents.put("notes/ml.md", "B"))
        tagger = Tagger(documents, state_store, llm, notify=notices.append)

        result = await tagger.tag_document("notes/ml.md")

        assert result.status == STATUS_STALE
        assert documents.content("notes/ml.md") == "B"
        assert documents.writes == []
        assert "notes/ml.md" not in tagger.state.tagged_files

    @pytest.mark.asyncio
    async def test_empty_document(self, tagger, documents, llm):
        documents.put("empty.md", "   \n")
        result = await tagger.tag_document("empty.md")

        assert result.status == STATUS_EMPTY
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_no_model(self, tagger):
        tagger.state.selected_model = None
        with pytest.raises(NoModelSelected):
            await tagger.tag_document("notes/ml.md")

    @pytest.mark.asyncio
    async def test_empty_vocabulary(self, tagger):
        tagger.state.default_tags = []
        with pytest.raises(EmptyVocabulary):
            await tagger.tag_document("notes/ml.md")

    @pytest.mark.asyncio
    async def test_missing_document(self, tagger):
        with pytest.raises(DocumentNotFound):
            await tagger.tag_document("nope.md")

    @pytest.mark.asyncio
    async def test_network_error_leaves_document(self, documents, state_store):
        tagger = Tagger(documents, state_store, FakeLLM(error=NetworkError("down")))
        with pytest.raises(NetworkError):
            await tagger.tag_document("notes/ml.md")
        assert documents.content("notes/ml.md") == "I study ml today."
        assert tagger.state.tagged_files == {}

    @pytest.mark.asyncio
    async def test_explicit_vocabulary(self, tagger, documents, llm):
        await tagger.tag_document("notes/cooking.md", ["pasta"])

        assert "#pasta Pasta recipes" in documents.content("notes/cooking.md")
        assert "Available tags: pasta" in llm.calls[0][1]


# ---------------------------------------------------------------------------
# tag_all / tag_paths
# ---------------------------------------------------------------------------


def _fail_on(text):
    def hook(model, prompt):
        if text in prompt:
            raise NetworkError("model crashed")
    return hook


class TestTagAll:

    @pytest.mark.asyncio
    async def test_tags_every_document(self, tagger, documents):
        report = await tagger.tag_all()

        assert report.total == 3
        assert report.modified == 3
        assert all(is_tagged(documents.content(d.path)) for d in documents.list_documents())

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_batch(self, documents, state_store, notices):
        llm = FakeLLM(on_generate=_fail_on("Pasta"))
        tagger = Tagger(documents, state_store, llm, notify=notices.append)

        report = await tagger.tag_all()

        statuses = {r.path: r.status for r in report.results}
        assert statuses == {
            "daily.md": STATUS_TAGGED,
            "notes/cooking.md": STATUS_FAILED,
            "notes/ml.md": STATUS_TAGGED,
        }
        assert report.failed[0].error == "model crashed"
        assert any(n.startswith("Failed to process cooking") for n in notices)
        assert notices[-1] == "Completed! Tagged 2 of 3 files"

    @pytest.mark.asyncio
    async def test_second_sweep_skips_unmodified(self, tagger, llm):
        await tagger.tag_all()
        report = await tagger.tag_all()

        assert report.count(STATUS_SKIPPED) == 3
        assert len(llm.calls) == 3

    @pytest.mark.asyncio
    async def test_vocabulary_saved_as_default(self, tagger, state_store):
        await tagger.tag_all(["pasta", "milk"])
        assert state_store.load().default_tags == ["pasta", "milk"]

    @pytest.mark.asyncio
    async def test_no_model_fails_before_any_document(self, tagger, documents):
        tagger.state.selected_model = None
        with pytest.raises(NoModelSelected):
            await tagger.tag_all()
        assert documents.reads == 0

    @pytest.mark.asyncio
    async def test_progress_reported(self, tagger):
        seen = []
        await tagger.tag_all(progress=lambda i, n, p: seen.append((i, n, p)))
        assert seen == [(1, 3, "daily.md"), (2, 3, "notes/cooking.md"), (3, 3, "notes/ml.md")]

    @pytest.mark.asyncio
    async def test_tag_paths_forces_and_reports_missing(self, tagger):
        await tagger.tag_document("notes/ml.md")
        tagger.state.tagged_files.clear()

        report = await tagger.tag_paths(["notes/ml.md", "gone.md"])

        statuses = {r.path: r.status for r in report.results}
        assert statuses == {"notes/ml.md": STATUS_UNCHANGED, "gone.md": STATUS_FAILED}


# ---------------------------------------------------------------------------
# auto_tag
# ---------------------------------------------------------------------------


class TestAutoTag:

    @pytest.mark.asyncio
    async def test_off_by_default(self, tagger, llm):
        assert await tagger.auto_tag("notes/ml.md") is None
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_tags_and_notifies(self, tagger, notices):
        tagger.state.auto_add_tags = True
        result = await tagger.auto_tag("notes/ml.md")

        assert result.status == STATUS_TAGGED
        assert notices == ["Auto-tagged: ml"]

    @pytest.mark.asyncio
    async def test_failure_is_reported_not_raised(self, documents, notices):
        state = MemoryStateStore(TaggerState(
            selected_model="m", default_tags=["ml"], auto_add_tags=True,
        ))
        tagger = Tagger(documents, state, FakeLLM(error=NetworkError("down")), notify=notices.append)

        result = await tagger.auto_tag("notes/ml.md")

        assert result.status == STATUS_FAILED
        assert notices == ["Failed to auto-tag ml: down"]

    @pytest.mark.asyncio
    async def test_requires_model_and_tags(self, tagger, llm):
        tagger.state.auto_add_tags = True
        tagger.state.default_tags = []
        assert await tagger.auto_tag("notes/ml.md") is None
        assert llm.calls == []


# ---------------------------------------------------------------------------
# Untagging
# ---------------------------------------------------------------------------


class TestUntag:

    @pytest.mark.asyncio
    async def test_restores_and_clears_record(self, tagger, documents, state_store):
        await tagger.tag_document("notes/ml.md")

        result = await tagger.untag_document("notes/ml.md")

        assert result.status == STATUS_UNTAGGED
        assert documents.content("notes/ml.md") == "I study ml today."
        assert "notes/ml.md" not in state_store.load().tagged_files

    @pytest.mark.asyncio
    async def test_plain_document_unchanged(self, tagger, documents):
        result = await tagger.untag_document("notes/ml.md")

        assert result.status == STATUS_UNCHANGED
        assert documents.writes == []

    @pytest.mark.asyncio
    async def test_not_blocked_by_exclusion(self, tagger, documents):
        tagger.add_exclude_pattern("daily")
        documents.put("daily.md", "#ml Groceries")

        result = await tagger.untag_document("daily.md")

        assert result.status == STATUS_UNTAGGED
        assert documents.content("daily.md") == "Groceries"

    @pytest.mark.asyncio
    async def test_untag_all_isolates_failures(self, tagger, documents, notices):
        await tagger.tag_all()

        report = await tagger.untag_all(["notes/ml.md", "gone.md", "daily.md"])

        statuses = [r.status for r in report.results]
        assert statuses == [STATUS_UNTAGGED, STATUS_FAILED, STATUS_UNTAGGED]
        assert documents.content("daily.md") == "Groceries: ml of milk"
        assert notices[-1] == "Removed tags from 2 of 3 files"

    @pytest.mark.asyncio
    async def test_untag_all_documents(self, tagger, documents):
        await tagger.tag_all()
        report = await tagger.untag_all()

        assert report.modified == 3
        assert tagger.state.tagged_files == {}


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class TestSettings:

    def test_state_loaded_from_store(self, tagger):
        assert tagger.state.selected_model == "llama3.2"

    def test_set_model_persists(self, tagger, state_store):
        tagger.set_model("mistral")
        assert state_store.load().selected_model == "mistral"
        tagger.set_model("")
        assert state_store.load().selected_model is None

    def test_default_tags_trimmed(self, tagger, state_store):
        tagger.set_default_tags([" ml ", "", "ai"])
        assert state_store.load().default_tags == ["ml", "ai"]

    def test_exclude_patterns(self, tagger, state_store):
        assert tagger.add_exclude_pattern("templates/*")
        assert not tagger.add_exclude_pattern("templates/*")
        assert state_store.load().exclude_patterns == ["templates/*"]
        assert tagger.remove_exclude_pattern("templates/*")
        assert not tagger.remove_exclude_pattern("templates/*")
        assert state_store.load().exclude_patterns == []

    @pytest.mark.asyncio
    async def test_list_models(self, tagger):
        assert await tagger.list_models() == ["llama3.2:latest"]

    @pytest.mark.asyncio
    async def test_list_models_without_support(self, documents, state_store):
        class GenerateOnly:
            async def generate(self, model, prompt):
                return ""

        tagger = Tagger(documents, state_store, GenerateOnly())
        assert await tagger.list_models() == []
