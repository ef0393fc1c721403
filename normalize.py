"""
normalize.py - Key derivation and per-report indexing.

Two core normalizers:
    normalize_for_compare(text) -> trimmed, lower-cased, whitespace-collapsed
    match_key(item)             -> join key for a line item or extra

Two indexers:
    index_line_items(report) -> ReportIndex keyed by item_id (name fallback)
    index_extras(report)     -> ReportIndex keyed by normalized name

Design principles:
    - SAME normalization on BOTH reports
    - Pure transformations; indices are built per call and thrown away
    - Collisions never fail: last write wins, the key is recorded and logged
"""

from __future__ import annotations

import re
from typing import Any, Generic, Iterator, Optional, TypeVar

from logging_config import get_logger
from models import ExtraItem, InspectionReport, ObservedLineItem

logger = get_logger(__name__)

WHITESPACE_RUN = re.compile(r"\s+")

T = TypeVar("T")


def normalize_for_compare(text: Any) -> str:
    """Trim, lower-case and collapse internal whitespace runs to one space."""
    if text is None:
        return ""
    return WHITESPACE_RUN.sub(" ", str(text).strip().lower())


def match_key(item: Any) -> str:
    """Derive the cross-report join key for an item.

    1. A non-blank item_id wins: trimmed and lower-cased.
    2. Otherwise the normalized name.

    Extras have no item_id attribute and always take the name path.
    Returns "" when neither yields anything usable.
    """
    raw_id = getattr(item, "item_id", None)
    if raw_id is not None:
        item_key = str(raw_id).strip().lower()
        if item_key:
            return item_key
    return normalize_for_compare(getattr(item, "name", ""))


class ReportIndex(Generic[T]):
    """Insertion-ordered key -> item map for one report.

    Keys keep the order in which items first appeared; a later duplicate
    replaces the stored item but not its position.
    """

    def __init__(self, kind: str) -> None:
        self.kind = kind
        self.items: dict[str, T] = {}
        self.duplicate_keys: list[str] = []
        self.skipped = 0

    def add(self, key: str, item: T) -> None:
        if not key:
            self.skipped += 1
            return
        if key in self.items:
            self.duplicate_keys.append(key)
        self.items[key] = item

    def get(self, key: str) -> Optional[T]:
        return self.items.get(key)

    def __contains__(self, key: object) -> bool:
        return key in self.items

    def __iter__(self) -> Iterator[str]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)


def _report_label(report: Optional[InspectionReport]) -> str:
    if report is None:
        return "none"
    return report.checkpoint_id or "unlabelled"


def _log_index_quality(index: ReportIndex[Any], report: Optional[InspectionReport]) -> None:
    for key in index.duplicate_keys:
        logger.warning(
            "index_duplicate_key | kind=%s | checkpoint=%s | key=%r | resolution=last_write_wins",
            index.kind,
            _report_label(report),
            key,
        )
    if index.skipped:
        logger.warning(
            "index_keyless_items | kind=%s | checkpoint=%s | skipped=%s | reason='no item_id and no name'",
            index.kind,
            _report_label(report),
            index.skipped,
        )


def index_line_items(report: Optional[InspectionReport]) -> ReportIndex[ObservedLineItem]:
    """Index a report's line items by match_key()."""
    index: ReportIndex[ObservedLineItem] = ReportIndex("line_item")
    for item in (report.line_items if report is not None else []):
        index.add(match_key(item), item)
    _log_index_quality(index, report)
    logger.debug(
        "index_built | kind=line_item | checkpoint=%s | keys=%s",
        _report_label(report),
        len(index),
    )
    return index


def index_extras(report: Optional[InspectionReport]) -> ReportIndex[ExtraItem]:
    """Index a report's extra items by normalized name."""
    index: ReportIndex[ExtraItem] = ReportIndex("extra")
    for extra in (report.extra if report is not None else []):
        index.add(normalize_for_compare(extra.name), extra)
    _log_index_quality(index, report)
    logger.debug(
        "index_built | kind=extra | checkpoint=%s | keys=%s",
        _report_label(report),
        len(index),
    )
    return index
