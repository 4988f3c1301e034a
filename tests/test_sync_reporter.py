"""Tests for sync/reporter.py: outcome formatting."""

from zotero_sync.sync.models import SyncOutcome
from zotero_sync.sync.reporter import (
    MAX_LISTED_ERRORS,
    format_sync_outcome,
    outcome_to_json,
)


class TestFormatSyncOutcome:
    """Tests for format_sync_outcome()."""

    def test_clean_cycle(self):
        text = format_sync_outcome(
            SyncOutcome(created=2, updated=1, skipped=5, library_version=88)
        )
        assert text == (
            "2 created, 1 updated, 5 skipped, 0 errors\nLibrary version: 88"
        )

    def test_first_error_leads(self):
        outcome = SyncOutcome(
            created=1,
            updated=2,
            errors=["Error processing item A: boom", "Error processing item B: bang"],
        )
        lines = format_sync_outcome(outcome).splitlines()
        assert lines[0] == "Sync finished with errors: Error processing item A: boom"
        assert "1 created, 2 updated, 0 skipped, 2 errors" in lines
        assert lines[-2:] == ["Other errors:", "  Error processing item B: bang"]

    def test_long_error_list_truncated(self):
        errors = [f"Error processing item K{i}: x" for i in range(15)]
        text = format_sync_outcome(SyncOutcome(errors=errors))
        assert f"  ... and {14 - MAX_LISTED_ERRORS} more" in text
        assert "K14" not in text

    def test_rejection(self):
        text = format_sync_outcome(SyncOutcome.already_running())
        assert text == "Sync already in progress. Try again when it finishes."

    def test_unknown_library_version_omitted(self):
        assert "Library version" not in format_sync_outcome(SyncOutcome())


class TestOutcomeToJson:
    def test_structure(self):
        data = outcome_to_json(
            SyncOutcome(created=1, skipped=2, errors=["e"], library_version=9)
        )
        assert data == {
            "rejected": False,
            "library_version": 9,
            "counts": {"created": 1, "updated": 0, "skipped": 2, "errors": 1},
            "errors": ["e"],
        }

    def test_rejected_flag(self):
        assert outcome_to_json(SyncOutcome.already_running())["rejected"] is True
