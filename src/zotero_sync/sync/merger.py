"""Three-way tag reconciliation between a note and its Zotero item.

Both sides may edit tags between cycles.  The last reconciled tag set
(the *baseline*) tells the two kinds of difference apart:

* a tag in the baseline but no longer in Zotero was **deleted remotely**,
  and the deletion wins over the stale copy in the note;
* a tag in Zotero but not in the baseline was **added remotely** and is
  appended to the note's list;
* everything else in the note, including tags only the note has, is kept.

Without a baseline there is no evidence of intent, so the first
reconciliation only adds (``FirstSyncPolicy.ADDITIVE``), unless configured
to take Zotero's set as-is (``FirstSyncPolicy.REMOTE_WINS``).

All comparisons use ``normalize_tag()``; output tags use the note's
hyphenated spelling.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, Iterable, Sequence

from .models import RemoteRecord, TagMergeResult, TagPushStatus
from .tags import normalize_tag, normalized_set, to_document_tag, to_remote_tag

if TYPE_CHECKING:
    from .ports import RemoteLibrary
    from .state import TagBaselineStore

logger = logging.getLogger(__name__)


class FirstSyncPolicy(str, Enum):
    """How tags are reconciled when a record has no tag baseline yet."""

    ADDITIVE = "additive"
    REMOTE_WINS = "remote-wins"


def _dedupe(tags: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for tag in tags:
        norm = normalize_tag(tag)
        if norm and norm not in seen:
            seen.add(norm)
            out.append(tag)
    return out


def merge_tags(
    remote_tags: Sequence[str],
    document_tags: Sequence[str] | None,
    last_reconciled: Sequence[str] | None,
    policy: FirstSyncPolicy = FirstSyncPolicy.ADDITIVE,
) -> TagMergeResult:
    """Reconcile one record's tags.

    Args:
        remote_tags: Zotero tags, sync tag excluded.
        document_tags: Tags from the note's front matter, or ``None`` when
            the note does not exist yet.
        last_reconciled: Baseline from the previous reconciliation, or
            ``None`` if this record was never reconciled.
        policy: Rule for the first reconciliation.

    Returns:
        ``TagMergeResult`` with ``push_status`` unset.
    """
    remote_as_document = _dedupe(to_document_tag(t) for t in remote_tags)

    if document_tags is None:
        merged = remote_as_document
    elif last_reconciled is None:
        if policy == FirstSyncPolicy.REMOTE_WINS:
            merged = remote_as_document
        else:
            merged = _dedupe(document_tags)
            present = normalized_set(merged)
            for tag in remote_as_document:
                if normalize_tag(tag) not in present:
                    merged.append(tag)
                    present.add(normalize_tag(tag))
    else:
        remote_norm = normalized_set(remote_tags)
        baseline_norm = normalized_set(last_reconciled)
        removed_in_remote = baseline_norm - remote_norm

        merged = [
            t
            for t in _dedupe(document_tags)
            if normalize_tag(t) not in removed_in_remote
        ]
        present = normalized_set(merged)
        for tag in remote_as_document:
            norm = normalize_tag(tag)
            if norm not in baseline_norm and norm not in present:
                merged.append(tag)
                present.add(norm)

    return TagMergeResult(
        merged_tags=tuple(merged),
        push_to_remote=normalized_set(merged) != normalized_set(remote_tags),
    )


class TagMerger:
    """Reconcile tags, push the result to Zotero, and advance the baseline.

    ``reconcile()`` only reads the baseline.  The caller applies the merged
    tags to the note and then calls ``commit()``, so a note that was never
    written keeps its previous baseline.

    Args:
        remote: Remote library used to push tag changes.
        baselines: Tag baseline store, advanced by ``commit()``.
        sync_tag: Tag that keeps an item in scope; never appears in notes
            and is always included in pushes.
        policy: First-reconciliation rule.
    """

    def __init__(
        self,
        remote: RemoteLibrary,
        baselines: TagBaselineStore,
        sync_tag: str,
        policy: FirstSyncPolicy = FirstSyncPolicy.ADDITIVE,
    ) -> None:
        self.remote = remote
        self.baselines = baselines
        self.sync_tag = sync_tag
        self.policy = policy

    def _without_sync_tag(self, tags: Iterable[str]) -> list[str]:
        sync_norm = normalize_tag(self.sync_tag)
        return [t for t in tags if normalize_tag(t) != sync_norm]

    async def reconcile(
        self,
        record: RemoteRecord,
        document_tags: Sequence[str] | None,
    ) -> TagMergeResult:
        """Merge *record*'s tags with the note's and push if they differ.

        A rejected push (version conflict, missing write permission, other
        API error) is logged and otherwise ignored: the merged tags are
        still returned, and the next cycle pushes again because Zotero
        still disagrees.
        """
        remote_tags = self._without_sync_tag(record.tags)
        doc_tags = (
            None
            if document_tags is None
            else self._without_sync_tag(document_tags)
        )
        result = merge_tags(
            remote_tags,
            doc_tags,
            self.baselines.get(record.key),
            self.policy,
        )

        if result.push_to_remote:
            payload = [to_remote_tag(t) for t in result.merged_tags]
            payload.append(self.sync_tag)
            status = await self.remote.push_tags(
                record.key, payload, record.version
            )
            if status == TagPushStatus.CONFLICT:
                logger.warning(
                    "Version conflict pushing tags for %s, will retry next sync",
                    record.key,
                )
            elif status == TagPushStatus.FORBIDDEN:
                logger.warning(
                    "No write permission for %s, skipping tag push",
                    record.key,
                )
            elif status == TagPushStatus.ERROR:
                logger.error("Tag push failed for %s", record.key)
            else:
                logger.info(
                    "Pushed %d tags to Zotero for %s",
                    len(payload),
                    record.key,
                )
            result = result.model_copy(update={"push_status": status})

        return result

    def commit(self, key: str, result: TagMergeResult) -> None:
        """Record *result* as the last reconciled tag set for *key*."""
        self.baselines.set(key, result.merged_tags)
