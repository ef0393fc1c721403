"""
explain.py - Human-readable and JSON-ready delta formatting.

This module produces:
- the rule-based `summary` sentence list of a DeltaReport
- the templated narrative `ai_summary`
- terminal-friendly text output for CLI usage
- machine-friendly dictionary output for APIs/logging/storage

All text is deterministic: the same inputs always give the same strings.
"""

from __future__ import annotations

from typing import Optional

from logging_config import get_logger
from models import AISummary, Confidence, DeltaReport, SemanticStatus, Severity

logger = get_logger(__name__)

NO_CHANGES_SUMMARY = "No changes between checkpoints."

STATUS_HEADERS: dict[SemanticStatus, str] = {
    SemanticStatus.NO_RISK: "No Risk - Load Unchanged",
    SemanticStatus.MINOR_UPDATES: "Minor Updates - Notes Only",
    SemanticStatus.DISCREPANCIES: "Discrepancies Found",
}

SEVERITY_MARKERS: dict[Severity, str] = {
    Severity.HIGH: "[HIGH]",
    Severity.MEDIUM: "[MED] ",
    Severity.LOW: "[LOW] ",
}

OUTPUT_WIDTH = 56
SEPARATOR = "=" * OUTPUT_WIDTH
MAX_ENTRIES_DISPLAY = 8


def build_delta_summary(
    missing: int,
    added: int,
    resolved_extras: int,
    new_extras: int,
    condition_damage: int,
    extra_condition_damage: int,
    informational: int,
    extra_informational: int,
) -> str:
    """Rule-based summary enumerating every non-zero change category."""
    parts: list[str] = []
    if missing:
        parts.append(f"{missing} item(s) missing since earlier checkpoint")
    if added:
        parts.append(f"{added} item(s) added since earlier checkpoint")
    if condition_damage:
        parts.append(f"{condition_damage} item(s) with condition damage")
    if extra_condition_damage:
        parts.append(f"{extra_condition_damage} extra item(s) with condition damage")
    if new_extras:
        parts.append(f"{new_extras} new extra item(s) not on list")
    if resolved_extras:
        parts.append(f"{resolved_extras} extra item(s) resolved (no longer present)")
    if informational or extra_informational:
        parts.append(
            f"{informational + extra_informational} item(s) with minor/no-op condition note updates"
        )

    if not parts:
        return NO_CHANGES_SUMMARY
    return ". ".join(parts) + "."


def build_ai_summary(
    items_reviewed: int,
    missing: int,
    added: int,
    damaged: int,
    new_extras: int,
    semantic_status: SemanticStatus,
    confidence: Optional[Confidence],
) -> AISummary:
    """Templated narrative summary keyed off the semantic status."""
    confidence = confidence or Confidence.MEDIUM
    lines: list[str] = []

    if items_reviewed > 0:
        lines.append(f"{items_reviewed} expected item(s) accounted for.")

    clean = missing == 0 and added == 0 and damaged == 0 and new_extras == 0
    if semantic_status == SemanticStatus.NO_RISK and clean:
        lines.append("No condition changes detected.")
        lines.append("No discrepancies found.")
    elif semantic_status == SemanticStatus.MINOR_UPDATES:
        lines.append("Minor condition note updates only. No damage or discrepancies.")
    else:
        if missing > 0:
            lines.append(f"{missing} item(s) missing.")
        if added > 0:
            lines.append(f"{added} item(s) added.")
        if damaged > 0:
            lines.append(f"{damaged} item(s) with condition damage.")
        if new_extras > 0:
            lines.append(f"{new_extras} new extra item(s) not on list.")

    lines.append(f"Confidence: {confidence.value}")
    return AISummary(
        text=" ".join(lines),
        confidence=confidence,
        semantic_status=semantic_status,
    )


def _display_name(name: str, item_id: Optional[str] = None) -> str:
    label = name or "(unnamed item)"
    return f"{label} [{item_id}]" if item_id else label


def _append_section(lines: list[str], title: str, rows: list[str]) -> None:
    if not rows:
        return
    lines.append("")
    lines.append(f"  {title} ({len(rows)}):")
    if len(rows) <= MAX_ENTRIES_DISPLAY:
        shown = rows
    else:
        shown = rows[: MAX_ENTRIES_DISPLAY - 1]
    for row in shown:
        lines.append(f"    • {row}")
    if len(rows) > len(shown):
        lines.append(f"    • ... and {len(rows) - len(shown)} more")


def format_delta_report(delta: DeltaReport | None) -> str:
    """Format a DeltaReport into a clean, human-readable text block."""
    if delta is None:
        logger.error("explain_input_error | delta_none=True | fallback=error_block")
        return "\n" + SEPARATOR + "\n" + "  ERROR: No delta data available\n" + SEPARATOR + "\n"

    from_name = delta.from_label or delta.from_checkpoint_type
    to_name = delta.to_label or delta.to_checkpoint_type

    lines: list[str] = [""]
    lines.append(SEPARATOR)
    lines.append(f"  {STATUS_HEADERS.get(delta.semantic_status, delta.semantic_status.value)}")
    lines.append(SEPARATOR)
    lines.append("")
    lines.append(f"  From:         {delta.from_checkpoint} ({from_name})")
    lines.append(f"  To:           {delta.to_checkpoint} ({to_name})")

    totals = delta.totals
    lines.append("")
    lines.append(
        f"  Reviewed: {totals.items_reviewed}  |  Unchanged: {totals.unchanged}  |  "
        f"Damaged: {totals.damaged}"
    )
    lines.append(
        f"  Missing: {totals.missing}  |  Added: {totals.added}  |  New extras: {totals.new_extras}"
    )

    _append_section(
        lines,
        "Condition changes",
        [
            f"{SEVERITY_MARKERS[entry.severity]} {_display_name(entry.name, entry.item_id)}: "
            f"{entry.from_condition.value} -> {entry.to_condition.value}"
            for entry in delta.condition_changes
        ],
    )
    _append_section(
        lines,
        "Extra item condition changes",
        [
            f"{SEVERITY_MARKERS[entry.severity]} {_display_name(entry.name)}: "
            f"{entry.from_condition.value} -> {entry.to_condition.value}"
            for entry in delta.extra_condition_changes
        ],
    )
    _append_section(
        lines,
        "Missing since earlier checkpoint",
        [
            f"{_display_name(entry.name, entry.item_id)} (was {entry.observed_at_from}, "
            f"{entry.from_condition.value})"
            for entry in delta.missing_since
        ],
    )
    _append_section(
        lines,
        "Added since earlier checkpoint",
        [
            f"{_display_name(entry.name, entry.item_id)}"
            + (" - not on manifest" if entry.is_extra else "")
            for entry in delta.added_since
        ],
    )
    _append_section(
        lines,
        "New extra items",
        [_display_name(entry.name) for entry in delta.new_extras],
    )
    _append_section(
        lines,
        "Resolved extra items",
        [_display_name(entry.name) for entry in delta.resolved_extras],
    )
    _append_section(
        lines,
        "Note updates",
        [
            f"{_display_name(entry.name, entry.item_id)}: {entry.to_condition_notes or entry.to_condition.value}"
            for entry in delta.informational_condition_changes
        ]
        + [
            f"{_display_name(entry.name)}: {entry.to_condition_notes or entry.to_condition.value}"
            for entry in delta.extra_informational_changes
        ],
    )

    lines.append("")
    lines.append(f"  Summary: {delta.summary}")
    lines.append(f"  {delta.ai_summary.text}")

    if delta.duplicate_keys:
        lines.append("")
        lines.append(
            f"  WARNING: {len(delta.duplicate_keys)} duplicate item key(s) in source reports"
        )
        lines.append("    Later entries replaced earlier ones. Review the reports manually.")

    lines.append("")
    lines.append(SEPARATOR)
    lines.append("")
    return "\n".join(lines)


def format_delta_json(delta: DeltaReport | None) -> dict:
    """Format a DeltaReport as a structured JSON-compatible dictionary."""
    if delta is None:
        logger.error("explain_json_input_error | delta_none=True | fallback=error_payload")
        return {"error": "No delta data available"}
    return delta.to_payload()
