"""Tests for sync/detector.py: per-record change detection."""

import pytest

from conftest import make_record
from zotero_sync.sync.detector import (
    ChangeDetector,
    LocalTagDrift,
    MissingAnnotationImages,
    SideCondition,
)
from zotero_sync.sync.models import Decision, DecisionReason
from zotero_sync.sync.state import SyncState, TagBaselineStore


class AlwaysTrue(SideCondition):
    name = "always"

    def check(self, record, content):
        return True


class Reader:
    """Counts how often the document is read."""

    def __init__(self, content="---\ntags: [a]\n---\n"):
        self.content = content
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        return self.content


@pytest.fixture
def baselines():
    return TagBaselineStore(SyncState(), lambda: None)


class TestStructuralRules:
    """Structural rules fire before any side condition."""

    async def test_no_baseline_is_new(self):
        reader = Reader()
        decision = await ChangeDetector([AlwaysTrue()]).decide(
            make_record("R1", 5), None, True, reader
        )
        assert decision.decision == Decision.PROCESS
        assert decision.reason == DecisionReason.NEW
        assert reader.calls == 0

    async def test_older_baseline_is_remote_change(self):
        reader = Reader()
        decision = await ChangeDetector([AlwaysTrue()]).decide(
            make_record("R1", 5), 4, True, reader
        )
        assert decision.reason == DecisionReason.REMOTE_CHANGED
        assert reader.calls == 0

    async def test_missing_document(self):
        reader = Reader()
        decision = await ChangeDetector([AlwaysTrue()]).decide(
            make_record("R1", 5), 5, False, reader
        )
        assert decision.reason == DecisionReason.DOCUMENT_MISSING
        assert reader.calls == 0

    async def test_unchanged_without_conditions_is_skipped(self):
        reader = Reader()
        decision = await ChangeDetector().decide(
            make_record("R1", 5), 5, True, reader
        )
        assert decision.decision == Decision.SKIP
        assert decision.reason == DecisionReason.UNCHANGED
        assert not decision.should_process
        assert reader.calls == 0

    async def test_newer_baseline_is_skipped(self):
        decision = await ChangeDetector().decide(
            make_record("R1", 5), 6, True, Reader()
        )
        assert decision.decision == Decision.SKIP


class TestSideConditions:
    async def test_side_condition_forces_process(self):
        reader = Reader()
        decision = await ChangeDetector([AlwaysTrue()]).decide(
            make_record("R1", 5), 5, True, reader
        )
        assert decision.should_process
        assert decision.reason == DecisionReason.SIDE_CONDITION
        assert decision.condition == "always"
        assert reader.calls == 1

    async def test_document_vanished_while_reading(self):
        reader = Reader(content=None)
        decision = await ChangeDetector([AlwaysTrue()]).decide(
            make_record("R1", 5), 5, True, reader
        )
        assert decision.reason == DecisionReason.DOCUMENT_MISSING

    async def test_tag_drift_detected(self, baselines):
        baselines.set("R1", ["a"])
        detector = ChangeDetector([LocalTagDrift(baselines)])
        decision = await detector.decide(
            make_record("R1", 5), 5, True, Reader("---\ntags: [a, b]\n---\n")
        )
        assert decision.condition == "local_tag_drift"

    async def test_tag_reformatting_is_not_drift(self, baselines):
        baselines.set("R1", ["machine-learning"])
        detector = ChangeDetector([LocalTagDrift(baselines)])
        decision = await detector.decide(
            make_record("R1", 5),
            5,
            True,
            Reader("---\ntags:\n- Machine Learning\n---\n"),
        )
        assert decision.decision == Decision.SKIP


class TestLocalTagDrift:
    def test_no_baseline_never_drifts(self, baselines):
        condition = LocalTagDrift(baselines)
        assert condition.check(make_record("R1", 1), "---\ntags: [z]\n---\n") is False

    def test_unparseable_header_never_drifts(self, baselines):
        baselines.set("R1", ["a"])
        condition = LocalTagDrift(baselines)
        assert condition.check(make_record("R1", 1), "---\ntags: [a\n---\n") is False

    def test_removed_header_is_drift(self, baselines):
        baselines.set("R1", ["a"])
        condition = LocalTagDrift(baselines)
        assert condition.check(make_record("R1", 1), "no header") is True


class TestMissingAnnotationImages:
    def test_placeholder_with_cache(self):
        condition = MissingAnnotationImages(True)
        assert condition.check(make_record("R1", 1), "x [Image - see PDF] y")

    def test_legacy_placeholder(self):
        condition = MissingAnnotationImages(True)
        assert condition.check(make_record("R1", 1), "[Area highlight p. 3]")

    def test_placeholder_without_cache(self):
        condition = MissingAnnotationImages(False)
        assert not condition.check(make_record("R1", 1), "[Image - see PDF]")

    def test_no_placeholder(self):
        condition = MissingAnnotationImages(True)
        assert not condition.check(make_record("R1", 1), "![[img.png]]")
