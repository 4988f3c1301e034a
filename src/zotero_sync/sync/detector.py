"""Per-record change detection.

Rules, in priority order:

1. no version baseline                    -> process (first sight)
2. baseline older than the remote version -> process (remote changed)
3. note missing                           -> process (recreate)
4. any side condition holds               -> process
5. otherwise                              -> skip

Structural rules never need the note's content, so the note is only read
when every structural rule passed and a side condition has to be checked.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Awaitable, Callable, Sequence

from .assets import has_image_placeholder
from .models import ChangeDecision, Decision, DecisionReason, RemoteRecord
from .tags import parse_document_tags, tags_equal

if TYPE_CHECKING:
    from .state import TagBaselineStore

logger = logging.getLogger(__name__)


class SideCondition:
    """An out-of-band reason to reprocess a record whose version is unchanged.

    Subclasses implement ``check()`` against the note's current text.
    """

    name = "side_condition"

    def check(self, record: RemoteRecord, content: str) -> bool:
        raise NotImplementedError


class LocalTagDrift(SideCondition):
    """The note's front matter tags no longer match the tag baseline.

    Records without a baseline, or with unparseable front matter, never
    trigger this condition.
    """

    name = "local_tag_drift"

    def __init__(self, baselines: TagBaselineStore) -> None:
        self.baselines = baselines

    def check(self, record: RemoteRecord, content: str) -> bool:
        baseline = self.baselines.get(record.key)
        if baseline is None:
            return False
        parsed = parse_document_tags(content)
        if not parsed.ok:
            logger.warning(
                "Cannot check tag drift for %s: %s", record.key, parsed.error
            )
            return False
        return not tags_equal(parsed.tags, baseline)


class MissingAnnotationImages(SideCondition):
    """The note still shows an image placeholder and a local Zotero cache
    is configured for this machine, so the image can now be filled in.
    """

    name = "missing_annotation_images"

    def __init__(self, local_cache_available: bool) -> None:
        self.local_cache_available = local_cache_available

    def check(self, record: RemoteRecord, content: str) -> bool:
        return self.local_cache_available and has_image_placeholder(content)


class ChangeDetector:
    """Decide, per record, whether to skip or (re)process it.

    Args:
        side_conditions: Checked in order after the structural rules.
    """

    def __init__(self, side_conditions: Sequence[SideCondition] = ()) -> None:
        self.side_conditions = list(side_conditions)

    async def decide(
        self,
        record: RemoteRecord,
        baseline_version: int | None,
        document_exists: bool,
        read_document: Callable[[], Awaitable[str | None]],
    ) -> ChangeDecision:
        """Apply the rules to one record.

        Args:
            record: Current remote snapshot.
            baseline_version: Last synced version, ``None`` if never synced.
            document_exists: Whether the note is present in the store.
            read_document: Loads the note; only awaited when a side
                condition has to be evaluated.
        """
        if baseline_version is None:
            return ChangeDecision(
                decision=Decision.PROCESS, reason=DecisionReason.NEW
            )
        if baseline_version < record.version:
            return ChangeDecision(
                decision=Decision.PROCESS,
                reason=DecisionReason.REMOTE_CHANGED,
            )
        if not document_exists:
            return ChangeDecision(
                decision=Decision.PROCESS,
                reason=DecisionReason.DOCUMENT_MISSING,
            )

        if self.side_conditions:
            content = await read_document()
            if content is None:
                return ChangeDecision(
                    decision=Decision.PROCESS,
                    reason=DecisionReason.DOCUMENT_MISSING,
                )
            for condition in self.side_conditions:
                if condition.check(record, content):
                    logger.debug(
                        "Reprocessing %s: %s", record.key, condition.name
                    )
                    return ChangeDecision(
                        decision=Decision.PROCESS,
                        reason=DecisionReason.SIDE_CONDITION,
                        condition=condition.name,
                    )

        return ChangeDecision(
            decision=Decision.SKIP, reason=DecisionReason.UNCHANGED
        )
