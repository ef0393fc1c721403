"""
test_explain.py - Delta explanation tests

Validates:
- build_delta_summary (rule-based summary phrasing and order)
- build_ai_summary (templated narrative)
- format_delta_report (terminal text output)
- format_delta_json (structured API output)

Usage: python test_explain.py
"""

from __future__ import annotations

import json
import os
import sys

# Ensure imports resolve from project root.
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from delta import compute_delta
from explain import (
    MAX_ENTRIES_DISPLAY,
    NO_CHANGES_SUMMARY,
    build_ai_summary,
    build_delta_summary,
    format_delta_json,
    format_delta_report,
)
from models import Confidence, SemanticStatus


def _configure_output_symbols() -> tuple[str, str, str]:
    try:
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
    except Exception:
        pass

    try:
        "✓✗═".encode(sys.stdout.encoding or "utf-8")
        return "✓", "✗", "═"
    except Exception:
        return "[OK]", "[FAIL]", "="


PASS, FAIL, LINE = _configure_output_symbols()


def _summary(**counts: int) -> str:
    base = {
        "missing": 0,
        "added": 0,
        "resolved_extras": 0,
        "new_extras": 0,
        "condition_damage": 0,
        "extra_condition_damage": 0,
        "informational": 0,
        "extra_informational": 0,
    }
    base.update(counts)
    return build_delta_summary(**base)


def _line(item_id: str, name: str, condition: str = "as_loaded_ok", notes: str = "") -> dict:
    return {"item_id": item_id, "name": name, "condition": condition, "condition_notes": notes, "observed_qty": 2}


def main() -> int:
    passed = 0
    failed = 0

    def check(name: str, condition: bool) -> None:
        nonlocal passed, failed
        if condition:
            print(f"    {PASS} {name}")
            passed += 1
        else:
            print(f"    {FAIL} {name}")
            failed += 1

    print(LINE * 50)
    print("  Delta Explanation Tests")
    print(LINE * 50)

    # Category 1: Rule-based summary
    print("\n  build_delta_summary:")
    check("nothing changed", _summary() == NO_CHANGES_SUMMARY)
    check("single part ends with a period", _summary(missing=2) == "2 item(s) missing since earlier checkpoint.")
    check(
        "every category in fixed order",
        _summary(
            missing=1,
            added=2,
            resolved_extras=3,
            new_extras=4,
            condition_damage=5,
            extra_condition_damage=6,
            informational=7,
            extra_informational=1,
        )
        == (
            "1 item(s) missing since earlier checkpoint. "
            "2 item(s) added since earlier checkpoint. "
            "5 item(s) with condition damage. "
            "6 extra item(s) with condition damage. "
            "4 new extra item(s) not on list. "
            "3 extra item(s) resolved (no longer present). "
            "8 item(s) with minor/no-op condition note updates."
        ),
    )
    check(
        "extra informational alone is reported",
        _summary(extra_informational=2) == "2 item(s) with minor/no-op condition note updates.",
    )

    # Category 2: Narrative summary
    print("\n  build_ai_summary:")
    clean = build_ai_summary(4, 0, 0, 0, 0, SemanticStatus.NO_RISK, Confidence.HIGH)
    check(
        "clean narrative",
        clean.text == "4 expected item(s) accounted for. No condition changes detected. No discrepancies found. Confidence: High",
    )
    check("narrative echoes semantic status", clean.semantic_status == SemanticStatus.NO_RISK)
    minor = build_ai_summary(3, 0, 0, 0, 0, SemanticStatus.MINOR_UPDATES, Confidence.LOW)
    check(
        "minor narrative",
        minor.text == "3 expected item(s) accounted for. Minor condition note updates only. No damage or discrepancies. Confidence: Low",
    )
    discrepancies = build_ai_summary(2, 1, 2, 3, 4, SemanticStatus.DISCREPANCIES, None)
    check(
        "discrepancy narrative lists every non-zero count",
        discrepancies.text
        == (
            "2 expected item(s) accounted for. 1 item(s) missing. 2 item(s) added. "
            "3 item(s) with condition damage. 4 new extra item(s) not on list. Confidence: Medium"
        ),
    )
    check("missing confidence defaults to Medium", discrepancies.confidence == Confidence.MEDIUM)
    nothing_reviewed = build_ai_summary(0, 1, 0, 0, 0, SemanticStatus.DISCREPANCIES, Confidence.HIGH)
    check(
        "zero reviewed omits the accounted sentence",
        nothing_reviewed.text == "1 item(s) missing. Confidence: High",
    )

    # Category 3: Terminal text
    print("\n  format_delta_report:")
    start = {
        "checkpoint_id": "cp-start",
        "confidence": "High",
        "line_items": [
            _line("a", "Pallet of water"),
            _line("b", "Boxed microwave", notes="packaging intact"),
            _line("c", "Tile crate"),
        ],
        "extra": [_extra_dict("Ladder")],
    }
    end = {
        "checkpoint_id": "cp-end",
        "confidence": "Medium",
        "line_items": [
            _line("a", "Pallet of water", condition="crushed", notes="top row crushed"),
            _line("b", "Boxed microwave", notes="small dent on side"),
        ],
        "extra": [_extra_dict("Blue tarp")],
    }
    delta = compute_delta(start, end, from_label="start", to_label="end")
    text = format_delta_report(delta)
    check("header names the verdict", "Discrepancies Found" in text)
    check("from line uses label", "cp-start (start)" in text)
    check("to line uses label", "cp-end (end)" in text)
    check("condition change with severity marker", "[HIGH] Pallet of water [a]: as_loaded_ok -> crushed" in text)
    check("missing section", "Missing since earlier checkpoint (1):" in text and "Tile crate [c]" in text)
    check("new extra section", "New extra items (1):" in text and "Blue tarp" in text)
    check("resolved extra section", "Resolved extra items (1):" in text and "Ladder" in text)
    check("note update section", "Note updates (1):" in text and "small dent on side" in text)
    check("rule-based summary included", f"Summary: {delta.summary}" in text)
    check("narrative included", delta.ai_summary.text in text)
    check("no duplicate warning on clean keys", "WARNING" not in text)

    clean_text = format_delta_report(compute_delta(start, start))
    check("clean header", "No Risk - Load Unchanged" in clean_text)
    check("clean report has no sections", "Condition changes" not in clean_text)

    many_before = {"line_items": [_line(f"id-{n}", f"Carton {n}") for n in range(10)]}
    many = format_delta_report(compute_delta(many_before, {"line_items": []}))
    check("long sections truncated", f"... and {10 - (MAX_ENTRIES_DISPLAY - 1)} more" in many)

    dup = compute_delta({"line_items": [_line("a", "A"), _line("a", "A again")]}, {"line_items": [_line("a", "A")]})
    check("duplicate key warning shown", "WARNING: 1 duplicate item key(s)" in format_delta_report(dup))

    check("None delta -> error block", "ERROR: No delta data available" in format_delta_report(None))

    # Category 4: JSON output
    print("\n  format_delta_json:")
    payload = format_delta_json(delta)
    check("payload is a dict", isinstance(payload, dict))
    check("payload is JSON serializable", isinstance(json.dumps(payload), str))
    required_keys = {
        "from_checkpoint",
        "to_checkpoint",
        "from_checkpoint_type",
        "to_checkpoint_type",
        "semantic_status",
        "status",
        "summary",
        "totals",
        "ai_summary",
        "missing_since",
        "added_since",
        "condition_changes",
        "extra_condition_changes",
        "informational_condition_changes",
        "extra_informational_changes",
        "unchanged_items",
        "resolved_extras",
        "new_extras",
        "to_report_confidence",
    }
    check("all output fields present", required_keys.issubset(payload.keys()))
    check(
        "totals shape",
        set(payload["totals"]) == {"items_reviewed", "missing", "added", "damaged", "new_extras", "unchanged"},
    )
    check("ai_summary shape", set(payload["ai_summary"]) == {"text", "confidence", "semantic_status"})
    check("condition values are taxonomy strings", payload["condition_changes"][0]["to_condition"] == "crushed")
    check("None delta -> error payload", format_delta_json(None) == {"error": "No delta data available"})

    print(f"\n{LINE * 50}")
    print(f"  Results: {passed}/{passed + failed} passed")
    if failed == 0:
        print(f"  Explanation: COMPLETE {PASS}")
    else:
        print(f"  Explanation: {failed} FAILED - fix before proceeding")
    print(f"{LINE * 50}")
    return failed


def _extra_dict(name: str, condition: str = "as_loaded_ok") -> dict:
    return {"name": name, "condition": condition, "observed_qty": 1}


def test_all_checks_pass() -> None:
    assert main() == 0


if __name__ == "__main__":
    raise SystemExit(1 if main() else 0)
