"""Milestone extraction from free-text chat input.

Four independent patterns are run over the whole message and merged:

- bullet lists:     ``• Ship laptops - due 2025-11-01``
- numbered lists:   ``1. Ship laptops - 2025-11-01`` / ``2) Kickoff - due 2025-10-01``
- sentences:        ``Deliver 10 xboxes by 2025-10-15``
- indexed entries:  ``1: Kickoff meeting, Date : 2025-10-01``

Titles are deduplicated case-insensitively, keeping the entry from the earlier
pattern, and the result keeps the order in which milestones appear in the
text. Only when none of the patterns match does a last-resort pass pair
every bare date with the sentence or line around it.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterator
from datetime import date

from sourcing_agent.models.project import ProjectMilestone

logger = logging.getLogger(__name__)

_DATE = r"(\d{4}-\d{2}-\d{2})"
_SEPARATOR = r"[ \t]*[-–—][ \t]*(?:due[ \t]+)?"

_BULLET_RE = re.compile(
    rf"^[ \t]*[•\-\*][ \t]*(.+?){_SEPARATOR}{_DATE}", re.IGNORECASE | re.MULTILINE
)
_NUMBERED_RE = re.compile(
    rf"^[ \t]*\d+[.)][ \t]*(.+?){_SEPARATOR}{_DATE}", re.IGNORECASE | re.MULTILINE
)
_SENTENCE_RE = re.compile(rf"([^.!?\n]+?)\s+(?:by|due)\s+{_DATE}", re.IGNORECASE)
_INDEXED_RE = re.compile(
    rf"^[ \t]*\d+[ \t]*:[ \t]*(.+?)[ \t]*,[ \t]*Date[ \t]*:[ \t]*{_DATE}",
    re.IGNORECASE | re.MULTILINE,
)

_PATTERNS = (_BULLET_RE, _NUMBERED_RE, _SENTENCE_RE, _INDEXED_RE)

_BARE_DATE_RE = re.compile(r"\b\d{4}-\d{2}-\d{2}\b")
_SEGMENT_RE = re.compile(r"[^.!?;\n\r]+")

_LEADING_MARKER_RE = re.compile(r"^(?:[\s,;•\-\*–—]+|\d+[.):](?!\d)\s*)+")
_DATE_LABEL_RE = re.compile(r",?\s*\bdate\s*:\s*$", re.IGNORECASE)
_TRAILING_SEPARATOR_RE = re.compile(r"[\s\-–—:,]+$")

_MIN_FALLBACK_TITLE_LENGTH = 4


def _clean_title(raw: str) -> str:
    title = _LEADING_MARKER_RE.sub("", raw)
    title = _DATE_LABEL_RE.sub("", title.rstrip())
    title = _TRAILING_SEPARATOR_RE.sub("", title)
    # markdown emphasis and stray quotes, e.g. **Milestone 1**
    title = title.strip().strip("*_\"'").strip()
    return _TRAILING_SEPARATOR_RE.sub("", title)


def _parse_date(raw: str) -> date | None:
    try:
        return date.fromisoformat(raw)
    except ValueError:
        return None


def _fallback_candidates(text: str) -> Iterator[tuple[int, str, str]]:
    """Yield (position, title, date) by pairing each bare date with its segment.

    A date that sits alone in its segment (``Deliver prototypes. 2025-12-01``)
    borrows the preceding segment as its title, provided that segment does
    not carry a date of its own.
    """
    segments = [m for m in _SEGMENT_RE.finditer(text) if m.group(0).strip()]
    for date_match in _BARE_DATE_RE.finditer(text):
        index = next(
            (i for i, seg in enumerate(segments) if seg.start() <= date_match.start() < seg.end()),
            None,
        )
        if index is None:
            continue
        title = _clean_title(_BARE_DATE_RE.sub(" ", segments[index].group(0)))
        if len(title) < _MIN_FALLBACK_TITLE_LENGTH and index > 0:
            previous = segments[index - 1].group(0)
            if not _BARE_DATE_RE.search(previous):
                title = _clean_title(previous)
        if len(title) >= _MIN_FALLBACK_TITLE_LENGTH:
            yield date_match.start(), title, date_match.group(0)


def extract_milestones(text: str) -> list[ProjectMilestone]:
    """Extract an ordered, deduplicated list of milestones from *text*."""
    text = text or ""
    found: list[tuple[int, ProjectMilestone]] = []
    seen: set[str] = set()

    def _add(position: int, raw_title: str, raw_date: str) -> None:
        title = _clean_title(raw_title)
        key = title.lower()
        if not title or key in seen:
            return
        delivery = _parse_date(raw_date)
        if delivery is None:
            return
        seen.add(key)
        found.append((position, ProjectMilestone(title=title, delivery_date=delivery)))

    for pattern in _PATTERNS:
        for match in pattern.finditer(text):
            _add(match.start(), match.group(1), match.group(2))

    if not found:
        for position, title, raw_date in _fallback_candidates(text):
            _add(position, title, raw_date)

    found.sort(key=lambda item: item[0])
    return [milestone for _, milestone in found]


def milestones_to_json(milestones: list[ProjectMilestone]) -> str:
    return json.dumps([m.model_dump(mode="json") for m in milestones])


def milestones_from_json(raw: str) -> list[ProjectMilestone]:
    """Decode the stored milestones blob; a malformed blob yields an empty list."""
    if not raw:
        return []
    try:
        data = json.loads(raw)
        if not isinstance(data, list):
            raise ValueError(f"expected a list, got {type(data).__name__}")
        return [ProjectMilestone.model_validate(item) for item in data]
    except ValueError as exc:
        logger.warning("Ignoring malformed milestones JSON: %s", exc)
        return []
