"""Heading and section helpers for plan documents."""

import re
from typing import Optional

KEY_DECISIONS_HEADING = "Key Decisions"
NOTES_HEADING = "Notes"
BEADS_PHASE_ID_PATTERN = re.compile(r"<!--\s*beads-phase-id:\s*([^\s]+)\s*-->")
BEADS_PLACEHOLDER = "TBD"


def phase_title(phase: str) -> str:
    """Human-readable section title for a phase name, e.g. ``code_review`` -> ``Code Review``."""
    return " ".join(word.capitalize() for word in re.split(r"[_\-]+", phase) if word)


def _heading_re(title: str, level: int) -> re.Pattern:
    return re.compile(rf"^{'#' * level}\s+{re.escape(title)}\s*$", re.MULTILINE)


def list_headings(content: str, level: int = 2) -> list[str]:
    """Titles of all headings at exactly ``level``."""
    pattern = re.compile(rf"^{'#' * level}\s+(?!#)(.+?)\s*$", re.MULTILINE)
    return [m.group(1) for m in pattern.finditer(content)]


def has_heading(content: str, title: str, level: int = 2) -> bool:
    return _heading_re(title, level).search(content) is not None


def get_section(content: str, title: str, level: int = 2) -> Optional[str]:
    """
    Return the body of a section, up to the next heading of the same or
    higher level.

    Returns:
        Section body without its heading, or None if the heading is absent
    """
    match = _heading_re(title, level).search(content)
    if match is None:
        return None
    start = match.end()
    next_heading = re.compile(rf"^#{{1,{level}}}\s+(?!#)", re.MULTILINE).search(content, start)
    end = next_heading.start() if next_heading else len(content)
    return content[start:end]


def insert_section_before(content: str, section: str, before: str = KEY_DECISIONS_HEADING) -> str:
    """
    Insert a section directly before the ``## <before>`` heading.

    The section is appended at the end when that heading is missing.
    """
    if not section.endswith("\n"):
        section += "\n"
    match = _heading_re(before, 2).search(content)
    if match is None:
        separator = "" if content.endswith("\n\n") else ("\n" if content.endswith("\n") else "\n\n")
        return content + separator + section
    return content[: match.start()] + section + "\n" + content[match.start():]


def phase_task_id(content: str, phase: str) -> Optional[str]:
    """Tracker id recorded in a phase section, or None if absent or still a placeholder."""
    body = get_section(content, phase_title(phase))
    if body is None:
        return None
    match = BEADS_PHASE_ID_PATTERN.search(body)
    if match is None or match.group(1) == BEADS_PLACEHOLDER:
        return None
    return match.group(1)


def set_phase_task_id(content: str, phase: str, task_id: str) -> str:
    """Replace the placeholder id in a phase section with a real tracker id."""
    title = phase_title(phase)
    match = _heading_re(title, 2).search(content)
    if match is None:
        return content
    body = get_section(content, title) or ""
    start = match.end()
    updated = BEADS_PHASE_ID_PATTERN.sub(f"<!-- beads-phase-id: {task_id} -->", body, count=1)
    return content[:start] + updated + content[start + len(body):]
