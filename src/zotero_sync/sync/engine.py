"""Sync orchestrator that drives one cycle from Zotero to the notes folder.

The ``SyncOrchestrator`` ties together the baseline stores, change
detector, tag merger, renderer and document store.  A full cycle:

1. Validates the configured identity and warms per-cycle remote caches.
2. Lists items carrying the sync tag, only those changed since the stored
   library version when there is one.
3. Drops child records (attachments, notes, annotations).
4. For each remaining record, in server order, decides whether to skip it
   or (re)process it.
5. Processes a record: gathers children, annotations, collections,
   bibliography and images, reconciles tags, renders, writes the note
   (keeping the user's Comments zone), then advances the tag and version
   baselines.  A failed write leaves both baselines where they were.
6. Stores the new library version and returns a ``SyncOutcome``.

Error handling is per-record: a failure on one item is recorded in the
outcome and the cycle moves on.  Only configuration errors and failures
of the initial listing escape ``run_full_cycle()``.

Only one cycle runs at a time.  A trigger while a cycle is running is
answered immediately with ``SyncOutcome.already_running()``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Sequence

from ..config import Config, validate_identity
from ..errors import RecordProcessingError
from ..filenames import (
    ensure_unique_filename,
    extract_citekey,
    generate_filename,
)
from .assets import AnnotationImageCollector, resolve_cache_dir
from .comments import preserve_user_comments
from .detector import (
    ChangeDetector,
    LocalTagDrift,
    MissingAnnotationImages,
    SideCondition,
)
from .merger import FirstSyncPolicy, TagMerger
from .models import (
    RemoteRecord,
    RenderContext,
    SyncOutcome,
    SyncPhase,
)
from .ports import DocumentStore, ProgressSink, RemoteLibrary, Renderer
from .state import SyncState, TagBaselineStore, VersionBaselineStore
from .tags import parse_document_tags

logger = logging.getLogger(__name__)


class SyncOrchestrator:
    """Run sync cycles for one Zotero library.

    Args:
        config: Resolved configuration.
        state: Durable sync state, owned by the caller.
        save_state: Persists *state*; invoked after every baseline change.
        remote: Zotero library capability.
        renderer: Turns a record into note text.
        store: Where notes and images are written.
        side_conditions: Extra reasons to reprocess unchanged records.
            Defaults to local tag drift and missing annotation images.
        clock: Returns the sync timestamp passed to the renderer.
    """

    def __init__(
        self,
        config: Config,
        state: SyncState,
        save_state: Callable[[SyncState], None],
        remote: RemoteLibrary,
        renderer: Renderer,
        store: DocumentStore,
        side_conditions: Sequence[SideCondition] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.config = config
        self.state = state
        self.remote = remote
        self.renderer = renderer
        self.store = store
        self._save = lambda: save_state(self.state)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self.versions = VersionBaselineStore(state, self._save)
        self.tag_baselines = TagBaselineStore(state, self._save)
        self.merger = TagMerger(
            remote,
            self.tag_baselines,
            config.sync_tag,
            FirstSyncPolicy(config.first_sync_policy),
        )

        cache_dir = resolve_cache_dir(config.cache_dirs)
        self.images = AnnotationImageCollector(
            remote, store, config.image_output_folder, cache_dir
        )
        if side_conditions is None:
            side_conditions = [
                LocalTagDrift(self.tag_baselines),
                MissingAnnotationImages(cache_dir is not None),
            ]
        self.detector = ChangeDetector(side_conditions)

        self._phase = SyncPhase.IDLE
        self._progress: list[ProgressSink] = []

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    @property
    def phase(self) -> SyncPhase:
        return self._phase

    @property
    def is_running(self) -> bool:
        return self._phase == SyncPhase.RUNNING

    def _try_start(self) -> bool:
        """Move ``IDLE -> RUNNING``; False if a cycle is already running.

        No await happens between the check and the assignment, so two
        triggers on one event loop can never both get through.
        """
        if self._phase != SyncPhase.IDLE:
            logger.info("Sync already in progress, ignoring trigger")
            return False
        self._phase = SyncPhase.RUNNING
        return True

    def _finish(self) -> None:
        self._phase = SyncPhase.IDLE

    def subscribe_progress(self, callback: ProgressSink) -> None:
        """Register a ``(done, total)`` callback.

        Fired before each record with the number already handled, and once
        more with ``(total, total)`` when the cycle had any records.
        """
        self._progress.append(callback)

    def _notify_progress(self, done: int, total: int) -> None:
        for callback in self._progress:
            try:
                callback(done, total)
            except Exception as exc:
                logger.warning("Progress callback failed: %s", exc)

    # ------------------------------------------------------------------
    # Caller capabilities
    # ------------------------------------------------------------------

    async def run_full_cycle(self) -> SyncOutcome:
        """Synchronise every item carrying the sync tag.

        Raises:
            ConfigurationError: Identity settings are missing.
            ZoteroSyncError: The initial listing failed.
        """
        if not self._try_start():
            return SyncOutcome.already_running()
        try:
            return await self._full_cycle()
        finally:
            self._finish()

    async def run_single_record(self, key: str) -> SyncOutcome:
        """Process one item by key regardless of its version baseline.

        The library version is left untouched.  Errors while processing
        the item are reported in the outcome; configuration errors and a
        failed lookup raise as in ``run_full_cycle()``.
        """
        if not self._try_start():
            return SyncOutcome.already_running()
        outcome = SyncOutcome()
        try:
            validate_identity(self.config)
            await self.remote.prepare_cycle()
            record = await self.remote.fetch_record(key)
            if record is None:
                outcome.errors.append(f"Item {key} not found in Zotero.")
                return outcome
            try:
                await self._process_record(record, outcome)
            except Exception as exc:
                logger.error("Error processing item %s: %s", key, exc)
                outcome.errors.append(f"Error processing item {key}: {exc}")
        finally:
            self._finish()
        return outcome

    def clear_all_baselines(self) -> None:
        """Forget all version and tag baselines.

        The next cycle lists the whole library and reprocesses every item.
        Stored filenames are kept so existing notes are rewritten in place.
        """
        self.versions.clear()
        self.tag_baselines.clear()
        logger.info("Cleared all sync baselines")

    # ------------------------------------------------------------------
    # Full cycle
    # ------------------------------------------------------------------

    async def _full_cycle(self) -> SyncOutcome:
        outcome = SyncOutcome()
        validate_identity(self.config)
        await self.remote.prepare_cycle()

        since = self.versions.library_version
        changed = await self.remote.fetch_changed_records(
            self.config.sync_tag, since if since > 0 else None
        )
        outcome.library_version = since or None

        if since > 0 and (changed.not_modified or not changed.records):
            logger.info("No changes since library version %d", since)
            if changed.library_version > since:
                self.versions.set_library_version(changed.library_version)
                outcome.library_version = changed.library_version
            return outcome

        eligible = [r for r in changed.records if r.is_top_level]
        total = len(eligible)
        logger.info(
            "Sync cycle: %d candidates, %d eligible", len(changed.records), total
        )

        for done, record in enumerate(eligible):
            self._notify_progress(done, total)
            try:
                decision = await self.detector.decide(
                    record,
                    self.versions.get(record.key),
                    await self.store.exists(self._note_path(record)),
                    lambda r=record: self.store.read(self._note_path(r)),
                )
                if not decision.should_process:
                    logger.debug("Skipping %s: %s", record.key, decision.reason.value)
                    outcome.skipped += 1
                    continue
                logger.debug(
                    "Processing %s: %s", record.key, decision.reason.value
                )
                await self._process_record(record, outcome)
            except Exception as exc:
                logger.error("Error processing item %s: %s", record.key, exc)
                outcome.errors.append(
                    f"Error processing item {record.key}: {exc}"
                )

        if total:
            self._notify_progress(total, total)

        if changed.library_version > 0:
            self.versions.set_library_version(changed.library_version)
            outcome.library_version = changed.library_version

        logger.info(
            "Sync complete: %d created, %d updated, %d skipped, %d errors",
            outcome.created,
            outcome.updated,
            outcome.skipped,
            len(outcome.errors),
        )
        return outcome

    # ------------------------------------------------------------------
    # Per-record processing
    # ------------------------------------------------------------------

    def _filename(self, record: RemoteRecord) -> str:
        """Filename stored for *record*, choosing and storing one if new."""
        filename = self.state.item_filenames.get(record.key)
        if not filename:
            desired = generate_filename(
                record.key, record.data, self.config.file_name_template
            )
            filename = ensure_unique_filename(
                desired, set(self.state.item_filenames.values()), record.key
            )
            self.state.item_filenames[record.key] = filename
            self._save()
        return filename

    def _note_path(self, record: RemoteRecord) -> str:
        folder = self.config.output_folder.strip("/")
        filename = self._filename(record)
        return f"{folder}/{filename}.md" if folder else f"{filename}.md"

    async def _gather(
        self, record: RemoteRecord, filename: str
    ) -> tuple[list[RemoteRecord], dict]:
        """Fetch everything the renderer needs besides the tags."""
        children = await self.remote.fetch_children(record.key)

        annotations: list[RemoteRecord] = []
        for child in children:
            if (
                child.item_type == "attachment"
                and child.data.get("contentType") == "application/pdf"
            ):
                annotations.extend(await self.remote.fetch_annotations(child.key))

        citekey = extract_citekey(record.data) or filename
        images = await self.images.collect(citekey, annotations)

        extras = {
            "collection_names": tuple(self.remote.collection_names(record)),
            "bibliography": await self.remote.fetch_bibliography(record.key),
            "annotations": tuple(annotations),
            "annotation_images": images,
        }
        return children, extras

    def _document_tags(
        self, record: RemoteRecord, existing: str | None
    ) -> list[str] | None:
        if existing is None:
            return None
        parsed = parse_document_tags(existing)
        if parsed.ok:
            return list(parsed.tags)
        # Unreadable header: reconcile as if the note still had the baseline.
        logger.warning(
            "Unparseable tags in note for %s, using last synced tags",
            record.key,
        )
        return list(self.tag_baselines.get(record.key) or ())

    async def _process_record(
        self, record: RemoteRecord, outcome: SyncOutcome
    ) -> None:
        """Render and write one record, then advance its baselines.

        The note is read again right before the tag merge so edits made
        while children were being fetched are not lost.
        """
        if not record.data:
            raise RecordProcessingError(f"item {record.key} has no data payload")
        filename = self._filename(record)
        path = self._note_path(record)
        children, extras = await self._gather(record, filename)

        existing = await self.store.read(path)
        merge = await self.merger.reconcile(
            record, self._document_tags(record, existing)
        )

        context = RenderContext(
            citekey=filename,
            tags=merge.merged_tags,
            sync_tag=self.config.sync_tag,
            synced_at=self._clock().isoformat(timespec="seconds"),
            **extras,
        )
        content = self.renderer.render(record, children, context)

        if existing is not None and self.config.preserve_user_content:
            content = preserve_user_comments(existing, content)

        await self.store.write(path, content)
        self.merger.commit(record.key, merge)
        if existing is None:
            outcome.created += 1
            logger.info("Created %s for %s", path, record.key)
        else:
            outcome.updated += 1
            logger.info("Updated %s for %s", path, record.key)

        self.versions.set(record.key, record.version)
