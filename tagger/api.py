"""
Tagger: the tagging/untagging pipeline over a document store.

Combines the eligibility filter, tag synthesis, staleness guard and
untagging engine, and keeps the persisted state (settings + tagging
record) current.

Usage:
    tagger = Tagger(FilesystemDocumentStore(vault), JsonStateStore(path), OllamaClient())
    tagger.set_model("llama3.2")
    tagger.set_default_tags(["ml", "python"])
    report = await tagger.tag_all()
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from typing import TYPE_CHECKING, Optional

from .errors import (
    ConcurrentEditDetected,
    DocumentNotFound,
    EmptyContent,
    EmptyVocabulary,
    NoModelSelected,
    TaggerError,
)
from .exclusion import is_excluded, should_process
from .guard import guarded_update
from .synthesis import synthesize
from .types import (
    STATUS_EMPTY,
    STATUS_EXCLUDED,
    STATUS_FAILED,
    STATUS_SKIPPED,
    STATUS_STALE,
    STATUS_TAGGED,
    STATUS_UNCHANGED,
    STATUS_UNTAGGED,
    BatchReport,
    DocumentInfo,
    TaggerState,
    TagResult,
    now_ms,
)
from .untag import untag

if TYPE_CHECKING:
    from .document_store import DocumentStore
    from .scheduler import AutoTagScheduler
    from .state_store import StateStore
    from .synthesis import GenerateClient

logger = logging.getLogger(__name__)

# (current, total, path) -> None
ProgressCallback = Callable[[int, int, str], None]


def _log_notice(message: str) -> None:
    logger.info("%s", message)


class Tagger:
    """
    Tagging pipeline with injected store, state persistence and LLM client.

    Args:
        documents: Where documents are read and written
        state_store: Persistence for settings and the tagging record
        llm: Client with ``generate(model, prompt)`` (and optionally
            ``list_models()``)
        notify: User-visible notification channel; defaults to the log
    """

    def __init__(
        self,
        documents: DocumentStore,
        state_store: StateStore,
        llm: GenerateClient,
        *,
        notify: Optional[Callable[[str], None]] = None,
    ):
        self.documents = documents
        self.llm = llm
        self._state_store = state_store
        self._notify = notify or _log_notice
        self._scheduler: Optional[AutoTagScheduler] = None
        self.state: TaggerState = state_store.load()

    # -------------------------------------------------------------------------
    # State and settings
    # -------------------------------------------------------------------------

    def save_state(self) -> None:
        """Persist state and bring auto-tagging in line with the settings."""
        self._state_store.save(self.state)
        self._sync_scheduler()

    def attach_scheduler(self, scheduler: AutoTagScheduler) -> None:
        """Let settings changes enable or disable the given scheduler."""
        self._scheduler = scheduler
        self._sync_scheduler()

    def _sync_scheduler(self) -> None:
        if self._scheduler is None:
            return
        if self.state.auto_add_tags:
            self._scheduler.enable()
        else:
            self._scheduler.disable()

    def set_model(self, model: Optional[str]) -> None:
        self.state.selected_model = model or None
        self.save_state()

    def set_default_tags(self, tags: Iterable[str]) -> None:
        self.state.default_tags = [t.strip() for t in tags if t.strip()]
        self.save_state()

    def set_auto_add_tags(self, enabled: bool) -> None:
        self.state.auto_add_tags = enabled
        self.save_state()

    def add_exclude_pattern(self, pattern: str) -> bool:
        pattern = pattern.strip()
        if not pattern or pattern in self.state.exclude_patterns:
            return False
        self.state.exclude_patterns.append(pattern)
        self.save_state()
        return True

    def remove_exclude_pattern(self, pattern: str) -> bool:
        if pattern not in self.state.exclude_patterns:
            return False
        self.state.exclude_patterns.remove(pattern)
        self.save_state()
        return True

    async def list_models(self) -> list[str]:
        """Models offered by the LLM service; empty if it can't be reached."""
        list_models = getattr(self.llm, "list_models", None)
        if list_models is None:
            return []
        return await list_models()

    # -------------------------------------------------------------------------
    # Eligibility
    # -------------------------------------------------------------------------

    def is_excluded(self, path: str) -> bool:
        return is_excluded(path, self.state.exclude_patterns)

    def should_process(self, document: DocumentInfo) -> bool:
        return should_process(
            document, self.state.exclude_patterns, self.state.tagged_files,
        )

    def _vocabulary(self, vocabulary: Optional[Sequence[str]]) -> list[str]:
        tags = [t for t in (vocabulary or self.state.default_tags) if t.strip()]
        if not tags:
            raise EmptyVocabulary()
        return tags

    def _require_model(self) -> str:
        if not self.state.selected_model:
            raise NoModelSelected()
        return self.state.selected_model

    # -------------------------------------------------------------------------
    # Tagging
    # -------------------------------------------------------------------------

    async def tag_document(
        self,
        path: str,
        vocabulary: Optional[Sequence[str]] = None,
        *,
        force: bool = False,
    ) -> TagResult:
        """
        Tag one document if it is eligible.

        Args:
            path: Document path
            vocabulary: Tags to use (default: the configured default tags)
            force: Ignore the tagging record (exclusions still apply)

        Raises:
            DocumentNotFound, EmptyVocabulary, NoModelSelected, NetworkError
        """
        info = self.documents.get_info(path)
        if info is None:
            raise DocumentNotFound(f"No such document: {path}")
        if self.is_excluded(path):
            logger.debug("Skipping %s - excluded", path)
            return TagResult(path, STATUS_EXCLUDED)
        if not force and not self.should_process(info):
            logger.debug("Skipping %s - already tagged and not modified", path)
            return TagResult(path, STATUS_SKIPPED)

        tags = self._vocabulary(vocabulary)
        model = self._require_model()

        async def transform(content: str) -> str:
            return await synthesize(content, tags, model=model, llm=self.llm)

        try:
            written = await guarded_update(self.documents, path, transform)
        except EmptyContent:
            return TagResult(path, STATUS_EMPTY)
        except ConcurrentEditDetected as e:
            return TagResult(path, STATUS_STALE, str(e))

        if written is None:
            return TagResult(path, STATUS_UNCHANGED)

        self.state.tagged_files[path] = now_ms()
        self.save_state()
        logger.info("Tagged %s", path)
        return TagResult(path, STATUS_TAGGED)

    async def auto_tag(self, path: str) -> Optional[TagResult]:
        """
        Tag a document in response to an event.

        Does nothing unless auto-tagging is on and a model and vocabulary
        are configured. Failures are reported, never raised.
        """
        state = self.state
        if not state.auto_add_tags or not state.selected_model or not state.default_tags:
            return None

        name = DocumentInfo(path, 0).basename
        try:
            result = await self.tag_document(path)
        except TaggerError as e:
            logger.warning("Auto-tag failed for %s: %s", path, e)
            self._notify(f"Failed to auto-tag {name}: {e}")
            return TagResult(path, STATUS_FAILED, str(e))

        if result.status == STATUS_TAGGED:
            self._notify(f"Auto-tagged: {name}")
        return result

    async def _tag_batch(
        self,
        documents: Sequence[DocumentInfo],
        tags: list[str],
        *,
        force: bool,
        progress: Optional[ProgressCallback],
    ) -> BatchReport:
        report = BatchReport(total=len(documents))
        for i, doc in enumerate(documents, start=1):
            if progress is not None:
                progress(i, report.total, doc.path)
            try:
                result = await self.tag_document(doc.path, tags, force=force)
            except Exception as e:
                logger.warning("Error processing %s: %s", doc.path, e, exc_info=logger.isEnabledFor(logging.DEBUG))
                self._notify(f"Failed to process {doc.basename}: {e}")
                result = TagResult(doc.path, STATUS_FAILED, str(e))
            else:
                if result.status == STATUS_TAGGED:
                    self._notify(f"Tagged: {doc.basename}")
            report.results.append(result)

        self._notify(f"Completed! Tagged {report.modified} of {report.total} files")
        return report

    async def tag_all(
        self,
        vocabulary: Optional[Sequence[str]] = None,
        *,
        progress: Optional[ProgressCallback] = None,
    ) -> BatchReport:
        """
        Tag every eligible document.

        A vocabulary passed here becomes the new default. Each document is
        processed in isolation; one failure doesn't stop the sweep.

        Raises:
            EmptyVocabulary, NoModelSelected: before any document is touched
        """
        self._require_model()
        tags = self._vocabulary(vocabulary)
        if vocabulary is not None and tags != self.state.default_tags:
            self.set_default_tags(tags)

        return await self._tag_batch(
            self.documents.list_documents(), tags, force=False, progress=progress,
        )

    async def tag_paths(
        self,
        paths: Iterable[str],
        vocabulary: Optional[Sequence[str]] = None,
        *,
        progress: Optional[ProgressCallback] = None,
    ) -> BatchReport:
        """Tag the given documents regardless of the tagging record."""
        self._require_model()
        tags = self._vocabulary(vocabulary)
        docs = [
            self.documents.get_info(p) or DocumentInfo(p, 0) for p in paths
        ]
        return await self._tag_batch(docs, tags, force=True, progress=progress)

    # -------------------------------------------------------------------------
    # Untagging
    # -------------------------------------------------------------------------

    async def untag_document(self, path: str) -> TagResult:
        """
        Remove the tagged block and leading hashtags from one document.

        Not subject to exclusion patterns. Clears the document's tagging
        record entry after a successful write.
        """
        content = await self.documents.read(path)
        new_content, modified = untag(content)
        if not modified:
            return TagResult(path, STATUS_UNCHANGED)

        await self.documents.write(path, new_content)
        if self.state.tagged_files.pop(path, None) is not None:
            self.save_state()
        logger.info("Untagged %s", path)
        return TagResult(path, STATUS_UNTAGGED)

    async def untag_all(
        self,
        paths: Optional[Iterable[str]] = None,
        *,
        progress: Optional[ProgressCallback] = None,
    ) -> BatchReport:
        """Untag the given documents, or every document when none given."""
        if paths is None:
            targets = [d.path for d in self.documents.list_documents()]
        else:
            targets = list(paths)

        report = BatchReport(total=len(targets))
        for i, path in enumerate(targets, start=1):
            if progress is not None:
                progress(i, report.total, path)
            try:
                result = await self.untag_document(path)
            except Exception as e:
                logger.warning("Error untagging %s: %s", path, e)
                self._notify(f"Failed to untag {DocumentInfo(path, 0).basename}: {e}")
                result = TagResult(path, STATUS_FAILED, str(e))
            report.results.append(result)

        self._notify(f"Removed tags from {report.modified} of {report.total} files")
        return report
