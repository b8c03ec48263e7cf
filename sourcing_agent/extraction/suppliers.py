"""Supplier search results and the user's selection from them."""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from sourcing_agent.models.project import SelectedSupplier, SupplierResult

logger = logging.getLogger(__name__)

_HASH_RE = re.compile(r"#(\d+)")
_SUPPLIER_RE = re.compile(r"supplier\s*#?(\d+)", re.IGNORECASE)
_NUMBER_RE = re.compile(r"\b(\d+)\b")


def extract_order_ids(text: str) -> list[int]:
    """Collect the order ids a user referenced, e.g. ``select supplier #1 and 3``.

    Returns positive ids only, deduplicated and sorted ascending.
    """
    text = text or ""
    ids: set[int] = set()
    for pattern in (_HASH_RE, _SUPPLIER_RE, _NUMBER_RE):
        ids.update(int(match.group(1)) for match in pattern.finditer(text))
    return sorted(i for i in ids if i > 0)


def _as_str(value: Any) -> str:
    return str(value).strip() if value is not None else ""


def _as_rating(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_supplier_results(
    payload: dict[str, Any], default_company_code: str = ""
) -> list[SupplierResult]:
    """Turn a recommendation response into display rows.

    Rows keep the backend's ``currentOrder`` when it is set, otherwise they
    are numbered by position starting at 1.
    """
    rows = payload.get("results") if isinstance(payload, dict) else None
    if not isinstance(rows, list):
        return []

    results: list[SupplierResult] = []
    for position, row in enumerate(rows, start=1):
        if not isinstance(row, dict):
            continue
        order = row.get("currentOrder")
        if not isinstance(order, int) or isinstance(order, bool) or order <= 0:
            order = position
        results.append(
            SupplierResult(
                order_id=order,
                vendor_number=_as_str(row.get("vendorNumber")),
                vendor_name=_as_str(row.get("vendorName")),
                company_code=_as_str(row.get("companyCode")) or default_company_code,
                vendor_location=_as_str(row.get("vendorLocation")),
                feedback_rating=_as_rating(row.get("feedbackRating")),
                experience_level=_as_str(row.get("experienceLevel")),
                cost_rating=_as_str(row.get("costRating")),
                is_active=bool(row.get("isActive", True)),
            )
        )
    return results


def load_supplier_results(suppliers_json: str, default_company_code: str = "") -> list[SupplierResult]:
    if not suppliers_json:
        return []
    try:
        payload = json.loads(suppliers_json)
    except ValueError as exc:
        logger.warning("Stored supplier results are not valid JSON: %s", exc)
        return []
    if not isinstance(payload, dict) or "results" not in payload:
        logger.warning("Stored supplier results have no 'results' list")
        return []
    return parse_supplier_results(payload, default_company_code)


def match_selected_suppliers(
    order_ids: list[int], suppliers_json: str, default_company_code: str = ""
) -> list[SelectedSupplier]:
    """Join the referenced order ids against the stored search results."""
    wanted = set(order_ids)
    if not wanted:
        return []

    selected: list[SelectedSupplier] = []
    for result in load_supplier_results(suppliers_json, default_company_code):
        if result.order_id not in wanted:
            continue
        if not result.vendor_number:
            logger.debug("Skipping supplier #%s without a vendor number", result.order_id)
            continue
        selected.append(
            SelectedSupplier(
                order_id=result.order_id,
                vendor_number=result.vendor_number,
                company_code=result.company_code,
                vendor_name=result.vendor_name,
            )
        )
    return sorted(selected, key=lambda s: s.order_id)
