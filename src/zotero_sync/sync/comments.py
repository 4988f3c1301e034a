"""The user-editable zone of a note.

The block from ``%% begin Comments %%`` to ``%% end Comments %%`` (markers
included) is owned by the user and survives every re-render verbatim.
Notes written before the markers existed only have a ``## Comments``
heading; the text from that heading up to the next level-two heading is
treated as the zone and wrapped in markers the next time the note is
written.
"""

from __future__ import annotations

import logging
import re

logger = logging.getLogger(__name__)

BEGIN_MARKER = "%% begin Comments %%"
END_MARKER = "%% end Comments %%"

#: Empty zone emitted by renderers.
COMMENTS_SECTION = f"{BEGIN_MARKER}\n## Comments \n\n{END_MARKER}"

_COMMENTS_HEADING = re.compile(r"^## Comments\b", re.M)
_NEXT_HEADING = re.compile(r"^## ", re.M)


def find_comments_range(content: str) -> tuple[int, int] | None:
    """Locate the user zone in *content*.

    Marked zones win; otherwise the legacy ``## Comments`` section is
    used.  Returns ``(start, end)`` such that ``content[start:end]`` is the
    zone, or ``None`` when the note has neither.
    """
    begin = content.find(BEGIN_MARKER)
    if begin != -1:
        end = content.find(END_MARKER, begin)
        if end != -1:
            return begin, end + len(END_MARKER)
        logger.warning("Comments begin marker without end marker")

    heading = _COMMENTS_HEADING.search(content)
    if heading is None:
        return None
    line_end = content.find("\n", heading.start())
    if line_end == -1:
        return heading.start(), len(content)
    following = _NEXT_HEADING.search(content, line_end + 1)
    end = following.start() if following else len(content)
    return heading.start(), end


def preserve_user_comments(existing: str, rendered: str) -> str:
    """Carry the user zone of *existing* over into freshly *rendered* text.

    A legacy zone is wrapped in markers on the way.  When *existing* has
    no zone the rendered text is returned unchanged; when *rendered* has
    none the user text cannot be placed and is dropped with a warning.
    """
    old = find_comments_range(existing)
    if old is None:
        return rendered

    preserved = existing[old[0] : old[1]]
    if BEGIN_MARKER not in preserved:
        preserved = f"{BEGIN_MARKER}\n{preserved.rstrip()}\n{END_MARKER}"

    new = find_comments_range(rendered)
    if new is None:
        logger.warning(
            'Rendered note has no "## Comments" section, user comments '
            "cannot be preserved. Add one to the template."
        )
        return rendered

    return rendered[: new[0]] + preserved + rendered[new[1] :]
