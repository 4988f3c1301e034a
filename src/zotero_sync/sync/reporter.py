"""Sync outcome formatting functions.

- ``format_sync_outcome`` -- human-readable post-sync summary.
- ``outcome_to_json`` -- structured dict for MCP tool output.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import SyncOutcome

# Errors listed after the first one before the rest are only counted.
MAX_LISTED_ERRORS = 10


def format_sync_outcome(outcome: SyncOutcome) -> str:
    """Format a sync outcome as human-readable text.

    The first error leads the summary; created and updated counts are
    always reported, even when records failed.

    Args:
        outcome: The finished (or rejected) cycle's outcome.

    Returns:
        Multi-line formatted string.
    """
    if outcome.was_rejected:
        return f"{outcome.first_error}. Try again when it finishes."

    lines: list[str] = []
    if outcome.errors:
        lines.append(f"Sync finished with errors: {outcome.first_error}")
        lines.append("")

    lines.append(
        f"{outcome.created} created, {outcome.updated} updated, "
        f"{outcome.skipped} skipped, {len(outcome.errors)} errors"
    )
    if outcome.library_version is not None:
        lines.append(f"Library version: {outcome.library_version}")

    remaining = outcome.errors[1:]
    if remaining:
        lines.append("")
        lines.append("Other errors:")
        for msg in remaining[:MAX_LISTED_ERRORS]:
            lines.append(f"  {msg}")
        if len(remaining) > MAX_LISTED_ERRORS:
            lines.append(f"  ... and {len(remaining) - MAX_LISTED_ERRORS} more")

    return "\n".join(lines)


def outcome_to_json(outcome: SyncOutcome) -> dict:
    """Convert a sync outcome to a structured dict for JSON serialisation.

    Suitable for MCP ``structuredContent`` output.
    """
    return {
        "rejected": outcome.was_rejected,
        "library_version": outcome.library_version,
        "counts": {
            "created": outcome.created,
            "updated": outcome.updated,
            "skipped": outcome.skipped,
            "errors": len(outcome.errors),
        },
        "errors": list(outcome.errors),
    }
