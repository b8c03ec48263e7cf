"""Project-detail extraction from chat input.

Input arrives either as a JSON object (from a form or a planner that
serialized its arguments) or as free text such as::

    Create a project called 'Widget Sourcing' with description
    'Find widget suppliers', email a@b.com, budget 5000

Each field has an ordered chain of matchers and the first one that returns a
value wins. Extraction never raises: missing fields come back empty and the
calling action decides what is required.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

from sourcing_agent.models.project import ProjectDetails

logger = logging.getLogger(__name__)

Matcher = Callable[[str], str | None]

_EMAIL_RE = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
_EMAIL_FIELD_RE = re.compile(
    r"email\s*[:\s]+[\"']?([A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,})[\"']?",
    re.IGNORECASE,
)
_CALLED_RE = re.compile(r"\b(?:called|named)\s+[\"']([^\"']+)[\"']", re.IGNORECASE)

_AMOUNT = r"(\d+(?:,\d{3})*(?:\.\d{1,2})?)"
_BUDGET_RE = re.compile(
    rf"approx\s*total\s*budget\s*[:\s]+{_AMOUNT}|budget\s*[:\s]+\$?{_AMOUNT}",
    re.IGNORECASE,
)

_ISO_TIMESTAMP_RE = re.compile(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d{3})?Z?")
_BARE_DATE_RE = re.compile(r"\b\d{4}-\d{2}-\d{2}\b")

# Long-form key first; it wins when both are present.
_JSON_KEYS = {
    "title": ("projectTitle", "title"),
    "description": ("projectDescription", "description"),
    "email": ("emailId", "email"),
    "budget": ("approxTotalBudget", "budget"),
    "start_date": ("engagementStartDate", "startDate"),
    "end_date": ("engagementEndDate", "endDate"),
}


def _labeled(label: str) -> re.Pattern[str]:
    """``[project] <label>`` + colon or whitespace + a quoted value, or a bare value up to a comma, newline or end.

    Bare values may contain apostrophes (``team's laptops``); quoted values end at the closing quote.
    """
    return re.compile(
        rf"\b(?:project\s*)?{label}\s*[:\s]+"
        rf"(?:[\"']([^\"'\n\r]+)[\"']|([^\"',\n\r][^\",\n\r]*?))\s*(?:[,\n\r]|$)",
        re.IGNORECASE,
    )


def _quoted_after(label: str) -> re.Pattern[str]:
    # "titled 'X'" still matches; "subtitle" and "entitled" do not
    return re.compile(rf"\b{label}[^\"']*?[\"']([^\"']+)[\"']", re.IGNORECASE)


def _search(pattern: re.Pattern[str], group: int | None = None) -> Matcher:
    """Matcher returning *group*, or the first group that took part in the match."""

    def matcher(text: str) -> str | None:
        match = pattern.search(text)
        if not match:
            return None
        raw = match.group(group) if group is not None else next((g for g in match.groups() if g), "")
        value = raw.strip().strip("\"'").strip()
        return value or None

    return matcher


_EMAIL_MATCHERS: tuple[Matcher, ...] = (_search(_EMAIL_RE, group=0), _search(_EMAIL_FIELD_RE))
_TITLE_MATCHERS: tuple[Matcher, ...] = (
    _search(_labeled("title")),
    _search(_quoted_after("title")),
    _search(_CALLED_RE),
)
_DESCRIPTION_MATCHERS: tuple[Matcher, ...] = (
    _search(_labeled("description")),
    _search(_quoted_after("description")),
)


def _first_match(text: str, matchers: tuple[Matcher, ...]) -> str:
    for matcher in matchers:
        value = matcher(text)
        if value:
            return value
    return ""


def _parse_datetime(value: Any) -> datetime | None:
    """Parse an ISO date or datetime into an aware UTC datetime."""
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _to_decimal(value: Any) -> Decimal | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, Decimal)):
        amount = Decimal(value)
    elif isinstance(value, float):
        amount = Decimal(str(value))
    elif isinstance(value, str):
        try:
            amount = Decimal(value.strip().lstrip("$").replace(",", ""))
        except InvalidOperation:
            return None
    else:
        return None
    if not amount.is_finite() or amount < 0:
        return None
    return amount


# ---------------------------------------------------------------------------
# JSON input
# ---------------------------------------------------------------------------


def _json_value(payload: dict[str, Any], field: str) -> Any:
    for key in _JSON_KEYS[field]:
        if payload.get(key) is not None:
            return payload[key]
    return None


def _json_text(payload: dict[str, Any], field: str) -> str:
    value = _json_value(payload, field)
    return value.strip() if isinstance(value, str) else ""


def _from_json(text: str) -> ProjectDetails | None:
    try:
        payload = json.loads(text, parse_float=Decimal)
    except ValueError:
        logger.debug("Input looked like JSON but did not parse, using text patterns")
        return None
    if not isinstance(payload, dict):
        return None

    return ProjectDetails(
        title=_json_text(payload, "title"),
        description=_json_text(payload, "description"),
        email=_json_text(payload, "email"),
        budget=_to_decimal(_json_value(payload, "budget")) or Decimal(0),
        start_date=_parse_datetime(_json_value(payload, "start_date")),
        end_date=_parse_datetime(_json_value(payload, "end_date")),
    )


# ---------------------------------------------------------------------------
# Free-text input
# ---------------------------------------------------------------------------


def _extract_budget(text: str) -> Decimal:
    match = _BUDGET_RE.search(text)
    if not match:
        return Decimal(0)
    raw = next(group for group in match.groups() if group)
    return _to_decimal(raw) or Decimal(0)


def _extract_dates(text: str) -> tuple[datetime | None, datetime | None]:
    timestamps = _ISO_TIMESTAMP_RE.findall(text)
    start = _parse_datetime(timestamps[0]) if len(timestamps) >= 1 else None
    end = _parse_datetime(timestamps[1]) if len(timestamps) >= 2 else None

    if start is None or end is None:
        bare = _BARE_DATE_RE.findall(text)
        if start is None and len(bare) >= 1:
            start = _parse_datetime(bare[0])
        if end is None and len(bare) >= 2:
            end = _parse_datetime(bare[1])
    return start, end


def _from_text(text: str) -> ProjectDetails:
    start, end = _extract_dates(text)
    return ProjectDetails(
        title=_first_match(text, _TITLE_MATCHERS),
        description=_first_match(text, _DESCRIPTION_MATCHERS),
        email=_first_match(text, _EMAIL_MATCHERS),
        budget=_extract_budget(text),
        start_date=start,
        end_date=end,
    )


def extract_project_details(text: str) -> ProjectDetails:
    """Extract project details from a JSON object or free text.

    Fields that cannot be found are left empty (``""``, ``Decimal(0)`` or
    ``None``). Required-field checks belong to the caller.
    """
    stripped = (text or "").strip()
    if stripped.startswith("{") and stripped.endswith("}"):
        details = _from_json(stripped)
        if details is not None:
            return details
    return _from_text(stripped)
