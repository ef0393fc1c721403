"""
delta.py - Checkpoint delta engine.

Compares two inspection reports for the same shipment - `from` (earlier)
and `to` (later) - and folds every difference into one DeltaReport.

Matching strategy (see normalize.match_key):
1. Primary key: item_id (stable, comes from the manifest)
2. Fallback: normalized name (extras, or line items without an id)

Semantic states, in strict priority order:
- Discrepancies: missing items, added items, worsened conditions, or new extras
- MinorUpdates: only non-worsening condition changes or note updates
- NoRisk: nothing changed

The engine is a pure function: no I/O, no shared state, and it never
raises on structurally incomplete reports - absent collections are empty.
"""

from __future__ import annotations

from typing import Any, Optional, Union

from pydantic import ValidationError

from classify import TransitionOutcome, classify_transition
from explain import build_ai_summary, build_delta_summary
from logging_config import get_logger
from models import (
    AddedSinceEntry,
    ConditionChangeEntry,
    DeltaReport,
    DeltaStatus,
    DeltaTotals,
    ExtraConditionChangeEntry,
    ExtraItem,
    InspectionReport,
    MissingSinceEntry,
    NewExtraEntry,
    ObservedLineItem,
    ResolvedExtraEntry,
    SemanticStatus,
    UnchangedItemEntry,
    is_failing,
)
from normalize import index_extras, index_line_items

logger = get_logger(__name__)

ReportInput = Union[InspectionReport, dict, None]

PRESENT_MARKER = "present"


def coerce_report(report: ReportInput, side: str = "report") -> InspectionReport:
    """Accept a report model, a raw JSON dict, or None."""
    if isinstance(report, InspectionReport):
        return report
    if report is None:
        logger.warning("delta_input_warning | side=%s | report_none=True | fallback=empty_report", side)
        return InspectionReport()
    if not isinstance(report, dict):
        logger.error(
            "delta_input_error | side=%s | expected_type=dict | got_type=%s | fallback=empty_report",
            side,
            type(report).__name__,
        )
        return InspectionReport()
    try:
        return InspectionReport.model_validate(report)
    except ValidationError as exc:
        logger.error(
            "delta_input_error | side=%s | error_count=%s | error=%s | fallback=empty_report",
            side,
            exc.error_count(),
            exc,
        )
        return InspectionReport(checkpoint_id=str(report.get("checkpoint_id") or "") or None)


def _notes_or_none(notes: str) -> Optional[str]:
    return notes or None


def _checkpoint_type(report: InspectionReport, label: Optional[str], fallback: str) -> str:
    if label:
        return label
    if report.inputs is not None and report.inputs.photos is not None:
        return "checkpoint"
    return fallback


def _line_item_change(
    from_item: ObservedLineItem,
    to_item: ObservedLineItem,
) -> tuple[TransitionOutcome, ConditionChangeEntry]:
    transition = classify_transition(
        from_item.condition,
        to_item.condition,
        from_item.condition_notes,
        to_item.condition_notes,
    )
    if to_item.condition_changed is not None:
        condition_changed = to_item.condition_changed
    else:
        condition_changed = transition.condition_differs

    entry = ConditionChangeEntry(
        item_id=from_item.item_id,
        name=from_item.name,
        from_condition=transition.from_condition,
        to_condition=transition.to_condition,
        from_condition_notes=_notes_or_none(from_item.condition_notes),
        to_condition_notes=_notes_or_none(to_item.condition_notes),
        from_condition_result=from_item.condition_result,
        to_condition_result=to_item.condition_result,
        condition_changed=condition_changed,
        severity=transition.severity,
        evidence_from=list(from_item.evidence),
        evidence_to=list(to_item.evidence),
    )
    return transition.outcome, entry


def _extra_change(
    from_extra: ExtraItem,
    to_extra: ExtraItem,
) -> tuple[TransitionOutcome, ExtraConditionChangeEntry]:
    transition = classify_transition(
        from_extra.condition,
        to_extra.condition,
        from_extra.condition_notes,
        to_extra.condition_notes,
    )
    entry = ExtraConditionChangeEntry(
        name=from_extra.name,
        from_condition=transition.from_condition,
        to_condition=transition.to_condition,
        from_condition_notes=_notes_or_none(from_extra.condition_notes),
        to_condition_notes=_notes_or_none(to_extra.condition_notes),
        severity=transition.severity,
    )
    return transition.outcome, entry


def compute_delta(
    from_report: ReportInput,
    to_report: ReportInput,
    from_label: Optional[str] = None,
    to_label: Optional[str] = None,
) -> DeltaReport:
    """Compute the delta from an earlier checkpoint report to a later one.

    Args:
        from_report: Report of the earlier checkpoint.
        to_report: Report of the later checkpoint.
        from_label: Optional display label (e.g. "start") for the earlier
            checkpoint. Overrides the inferred checkpoint type.
        to_label: Optional display label for the later checkpoint.
    """
    source = coerce_report(from_report, side="from")
    target = coerce_report(to_report, side="to")

    from_items = index_line_items(source)
    to_items = index_line_items(target)
    from_extras = index_extras(source)
    to_extras = index_extras(target)

    missing_since: list[MissingSinceEntry] = []
    added_since: list[AddedSinceEntry] = []
    condition_changes: list[ConditionChangeEntry] = []
    informational_changes: list[ConditionChangeEntry] = []
    unchanged_items: list[UnchangedItemEntry] = []

    # -- Walk earlier line items: missing or classified --
    for key, from_item in from_items.items.items():
        to_item = to_items.get(key)
        if to_item is None:
            missing_since.append(
                MissingSinceEntry(
                    item_id=from_item.item_id,
                    name=from_item.name,
                    expected_qty=from_item.expected_qty,
                    observed_at_from=(
                        from_item.observed_qty if from_item.observed_qty is not None else PRESENT_MARKER
                    ),
                    from_condition=from_item.condition,
                    from_condition_notes=_notes_or_none(from_item.condition_notes),
                    observed_at_to=None,
                    evidence_from=list(from_item.evidence),
                )
            )
            continue

        outcome, entry = _line_item_change(from_item, to_item)
        if outcome == TransitionOutcome.ANOMALY:
            condition_changes.append(entry)
        elif outcome == TransitionOutcome.INFORMATIONAL:
            informational_changes.append(entry)
        else:
            unchanged_items.append(
                UnchangedItemEntry(
                    item_id=from_item.item_id,
                    name=from_item.name,
                    condition=to_item.condition,
                    condition_notes=_notes_or_none(to_item.condition_notes),
                )
            )

    # -- Later line items with no earlier counterpart --
    for key, to_item in to_items.items.items():
        if key in from_items:
            continue
        added_since.append(
            AddedSinceEntry(
                item_id=to_item.item_id,
                name=to_item.name,
                expected_qty=to_item.expected_qty,
                observed_at_from=None,
                observed_at_to=to_item.observed_qty if to_item.observed_qty is not None else PRESENT_MARKER,
                condition=to_item.condition,
                condition_notes=_notes_or_none(to_item.condition_notes),
                evidence_to=list(to_item.evidence),
                is_extra=key in to_extras,
            )
        )

    # -- Extras: resolved, classified, new --
    resolved_extras: list[ResolvedExtraEntry] = []
    new_extras: list[NewExtraEntry] = []
    extra_condition_changes: list[ExtraConditionChangeEntry] = []
    extra_informational_changes: list[ExtraConditionChangeEntry] = []
    unchanged_extras = 0

    for key, from_extra in from_extras.items.items():
        to_extra = to_extras.get(key)
        if to_extra is None:
            resolved_extras.append(
                ResolvedExtraEntry(
                    name=from_extra.name,
                    observed_qty=from_extra.observed_qty,
                    condition=from_extra.condition,
                    condition_notes=_notes_or_none(from_extra.condition_notes),
                )
            )
            continue

        outcome, extra_entry = _extra_change(from_extra, to_extra)
        if outcome == TransitionOutcome.ANOMALY:
            extra_condition_changes.append(extra_entry)
        elif outcome == TransitionOutcome.INFORMATIONAL:
            extra_informational_changes.append(extra_entry)
        else:
            unchanged_extras += 1

    for key, to_extra in to_extras.items.items():
        if key in from_extras:
            continue
        new_extras.append(
            NewExtraEntry(
                name=to_extra.name,
                observed_qty=to_extra.observed_qty,
                condition=to_extra.condition,
                condition_notes=_notes_or_none(to_extra.condition_notes),
                evidence=list(to_extra.evidence),
            )
        )

    # -- Semantic status: only real anomalies drive Discrepancies --
    has_discrepancies = bool(
        missing_since or added_since or condition_changes or extra_condition_changes or new_extras
    )
    has_minor_updates = not has_discrepancies and bool(
        informational_changes or extra_informational_changes
    )

    if has_discrepancies:
        semantic_status = SemanticStatus.DISCREPANCIES
    elif has_minor_updates:
        semantic_status = SemanticStatus.MINOR_UPDATES
    else:
        semantic_status = SemanticStatus.NO_RISK

    items_reviewed = len(unchanged_items) + len(condition_changes) + len(informational_changes)
    damaged = sum(1 for entry in condition_changes if is_failing(entry.to_condition))

    totals = DeltaTotals(
        items_reviewed=items_reviewed,
        missing=len(missing_since),
        added=len(added_since),
        damaged=damaged,
        new_extras=len(new_extras),
        unchanged=len(unchanged_items),
    )

    summary = build_delta_summary(
        missing=len(missing_since),
        added=len(added_since),
        resolved_extras=len(resolved_extras),
        new_extras=len(new_extras),
        condition_damage=len(condition_changes),
        extra_condition_damage=len(extra_condition_changes),
        informational=len(informational_changes),
        extra_informational=len(extra_informational_changes),
    )
    ai_summary = build_ai_summary(
        items_reviewed=items_reviewed,
        missing=totals.missing,
        added=totals.added,
        damaged=damaged,
        new_extras=totals.new_extras,
        semantic_status=semantic_status,
        confidence=target.confidence,
    )

    duplicate_keys = [
        *from_items.duplicate_keys,
        *to_items.duplicate_keys,
        *from_extras.duplicate_keys,
        *to_extras.duplicate_keys,
    ]

    delta = DeltaReport(
        from_checkpoint=source.checkpoint_id or "from",
        to_checkpoint=target.checkpoint_id or "to",
        from_checkpoint_type=_checkpoint_type(source, from_label, "from"),
        to_checkpoint_type=_checkpoint_type(target, to_label, "to"),
        from_label=from_label,
        to_label=to_label,
        semantic_status=semantic_status,
        status=DeltaStatus.MISMATCH if has_discrepancies else DeltaStatus.NO_CHANGE,
        summary=summary,
        totals=totals,
        ai_summary=ai_summary,
        missing_since=missing_since,
        added_since=added_since,
        condition_changes=condition_changes,
        extra_condition_changes=extra_condition_changes,
        informational_condition_changes=informational_changes,
        extra_informational_changes=extra_informational_changes,
        unchanged_items=unchanged_items,
        resolved_extras=resolved_extras,
        new_extras=new_extras,
        to_report_confidence=target.confidence,
        duplicate_keys=duplicate_keys,
    )

    if duplicate_keys:
        logger.warning(
            "delta_duplicate_keys | from=%s | to=%s | count=%s | keys=%s",
            delta.from_checkpoint,
            delta.to_checkpoint,
            len(duplicate_keys),
            duplicate_keys,
        )

    logger.info(
        "delta_complete | from=%s | to=%s | semantic_status=%s | items_reviewed=%s | missing=%s | added=%s | damaged=%s | new_extras=%s | resolved_extras=%s | informational=%s | unchanged_extras=%s",
        delta.from_checkpoint,
        delta.to_checkpoint,
        semantic_status.value,
        items_reviewed,
        totals.missing,
        totals.added,
        damaged,
        totals.new_extras,
        len(resolved_extras),
        len(informational_changes) + len(extra_informational_changes),
        unchanged_extras,
    )
    return delta


def summarize_delta(delta: DeltaReport) -> dict[str, Any]:
    """Compact JSON-ready view of a delta, logged by the project store."""
    return {
        "from_checkpoint": delta.from_checkpoint,
        "to_checkpoint": delta.to_checkpoint,
        "semantic_status": delta.semantic_status.value,
        "status": delta.status.value,
        "totals": delta.totals.model_dump(),
        "summary": delta.summary,
    }
