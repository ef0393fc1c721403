"""
verification.py - Inspection report normalization boundary.

The upstream checkpoint-verification service (a vision model looking at the
manifest and the checkpoint photos) returns loosely structured JSON. This
module is where that output becomes a trusted `InspectionReport`:

- `parse_verifier_output()`  raw model text -> dict (strips markdown fences)
- `normalize_report()`       dict -> InspectionReport with defaults applied
- `derive_condition_issues()` failing items -> report-level condition issues
- `build_previous_report_summary()` prior report -> text context for the
  next verification request

Downstream modules (delta.py, project_store.py) only ever see the
normalized report.
"""

from __future__ import annotations

import json
import re
from typing import Any, Optional, Union

from logging_config import get_logger
from models import (
    Condition,
    ConditionIssue,
    Confidence,
    InspectionReport,
    ReportStatus,
    Severity,
    is_failing,
)

logger = get_logger(__name__)

DEFAULT_SUMMARY = "Verification completed."
DEFAULT_MANIFEST_NAME = "manifest"
EXTRA_SUFFIX = " (extra)"

HIGH_SEVERITY_CONDITIONS = frozenset({Condition.BROKEN_DAMAGED, Condition.CRUSHED})

LIST_FIELDS = ("line_items", "missing", "extra", "recommendations")

CODE_FENCE_OPEN = re.compile(r"^```(?:json)?\n?")
CODE_FENCE_CLOSE = re.compile(r"\n?```$")


def parse_verifier_output(text: Optional[str]) -> dict[str, Any]:
    """Parse the verifier's JSON reply, tolerating a ```json fenced block."""
    if text is None or not str(text).strip():
        raise ValueError("Verifier returned an empty response")

    cleaned = str(text).strip()
    if cleaned.startswith("```"):
        cleaned = CODE_FENCE_CLOSE.sub("", CODE_FENCE_OPEN.sub("", cleaned))

    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Verifier returned invalid JSON: {str(text)[:200]}") from exc

    if not isinstance(parsed, dict):
        raise ValueError("Verifier response must be a JSON object")
    return parsed


def _severity_for(condition: Condition) -> Severity:
    return Severity.HIGH if condition in HIGH_SEVERITY_CONDITIONS else Severity.MEDIUM


def derive_condition_issues(report: InspectionReport) -> list[ConditionIssue]:
    """Union of failing line items, failing extras, and upstream issues.

    Entries are keyed by (item_id or name, condition); extras use
    ("extra", name, condition). The first entry for a key wins, so derived
    issues take precedence over the ones the verifier listed itself.
    """
    issues: dict[tuple[str, ...], ConditionIssue] = {}

    for item in report.failing_line_items:
        key = (item.item_id or item.name, item.condition.value)
        if key in issues:
            continue
        issues[key] = ConditionIssue(
            item_id=item.item_id or None,
            name=item.name,
            condition=item.condition,
            condition_notes=item.condition_notes or None,
            severity=_severity_for(item.condition),
            condition_changed=bool(item.condition_changed),
            previous_condition=item.previous_condition or None,
        )

    for extra in report.extra:
        if not is_failing(extra.condition):
            continue
        key = ("extra", extra.name, extra.condition.value)
        if key in issues:
            continue
        issues[key] = ConditionIssue(
            item_id=None,
            name=f"{extra.name}{EXTRA_SUFFIX}",
            condition=extra.condition,
            condition_notes=extra.condition_notes or None,
            severity=_severity_for(extra.condition),
        )

    for upstream in report.condition_issues:
        if upstream.item_id is None and upstream.name.endswith(EXTRA_SUFFIX):
            # Previously derived extra issue.
            key = ("extra", upstream.name[: -len(EXTRA_SUFFIX)], upstream.condition.value)
        else:
            key = (upstream.item_id or upstream.name, upstream.condition.value)
        if key in issues:
            continue
        issues[key] = upstream

    return list(issues.values())


def normalize_report(
    raw: Union[dict[str, Any], InspectionReport],
    manifest_name: Optional[str] = DEFAULT_MANIFEST_NAME,
    photo_names: Optional[list[str]] = None,
    previous_report: Optional[InspectionReport] = None,
) -> InspectionReport:
    """Apply defaults to a verifier report and derive its condition issues.

    Args:
        raw: Verifier output (dict) or an already-parsed report.
        manifest_name: Manifest filename recorded under `inputs.manifest`.
        photo_names: Photo filenames recorded under `inputs.photos`.
        previous_report: The prior checkpoint's report, if the verifier was
            given one as context.
    """
    if isinstance(raw, InspectionReport):
        data = raw.model_dump(mode="json")
    elif isinstance(raw, dict):
        data = dict(raw)
    else:
        raise ValueError("Report must be a JSON object")

    status = data.get("status")
    if status not in {member.value for member in ReportStatus}:
        if status is not None:
            logger.warning(
                "report_status_invalid | raw=%r | fallback=%s",
                status,
                ReportStatus.NEEDS_REVIEW.value,
            )
        data["status"] = ReportStatus.NEEDS_REVIEW.value

    if data.get("confidence") not in {member.value for member in Confidence}:
        data["confidence"] = Confidence.MEDIUM.value

    for field in LIST_FIELDS:
        if not isinstance(data.get(field), list):
            data[field] = []

    if not isinstance(data.get("summary"), str):
        data["summary"] = DEFAULT_SUMMARY

    data["inputs"] = {
        "manifest": manifest_name or DEFAULT_MANIFEST_NAME,
        "photos": [str(name) for name in (photo_names or [])],
    }
    data["has_previous_checkpoint"] = previous_report is not None

    report = InspectionReport.model_validate(data)
    issues = derive_condition_issues(report)
    report = report.model_copy(update={"condition_issues": issues})

    logger.info(
        "report_normalized | status=%s | confidence=%s | line_items=%s | extras=%s | missing=%s | condition_issues=%s | has_previous=%s",
        report.status.value if report.status else None,
        report.confidence.value if report.confidence else None,
        len(report.line_items),
        len(report.extra),
        len(report.missing),
        len(issues),
        report.has_previous_checkpoint,
    )
    return report


def build_previous_report_summary(report: InspectionReport) -> str:
    """Concise text digest of a prior report, handed to the verifier as context."""
    status = report.status.value if report.status else "unknown"
    confidence = report.confidence.value if report.confidence else "unknown"

    lines = [
        f"Previous status: {status} (confidence: {confidence})",
        f"Previous summary: {report.summary}",
        "",
        "Previous item observations:",
    ]
    for item in report.line_items:
        qty = item.observed_qty if item.observed_qty is not None else "unknown"
        parts = [
            f"  - item_id: {item.item_id}",
            f'name: "{item.name}"',
            f"qty: {qty}",
            f"condition: {item.condition.value}",
        ]
        if item.condition_notes:
            parts.append(f'notes: "{item.condition_notes}"')
        lines.append(", ".join(parts))

    if report.extra:
        lines.append("")
        lines.append("Previous extra items (not on list):")
        for extra in report.extra:
            notes = extra.condition_notes or "none"
            lines.append(f'  - "{extra.name}", condition: {extra.condition.value}, notes: "{notes}"')

    if report.missing:
        lines.append("")
        lines.append("Previously missing items:")
        for missing in report.missing:
            item_id = missing.item_id or "?"
            lines.append(f'  - item_id: {item_id}, "{missing.name}", expected_qty: {missing.expected_qty}')

    return "\n".join(lines)
