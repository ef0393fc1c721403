"""
test_hardening.py - Hardening Regression Tests.

Regression suite for:
- defensive input handling in the delta engine
- quantity / condition coercion edge cases
- unicode and whitespace in item keys
- structured logging sanity
- environment-driven settings

Usage:
    python test_hardening.py
"""

from __future__ import annotations

import json
import logging
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from config import DEFAULT_MAX_MANIFEST_BYTES, get_settings
from delta import compute_delta
from explain import NO_CHANGES_SUMMARY, format_delta_json, format_delta_report
from logging_config import get_logger, resolve_log_level, setup_logging
from models import (
    Condition,
    ExtraItem,
    ObservedLineItem,
    SemanticStatus,
    coerce_condition,
    parse_observed_quantity,
    parse_quantity,
)

ENV_KEYS = ("HOST", "PORT", "PROJECTS_FILE", "LOG_LEVEL", "LOG_JSON", "MAX_MANIFEST_BYTES", "CORS_ORIGINS", "DEBUG")


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

    print(LINE * 62)
    print("  Hardening Regression Tests")
    print(LINE * 62)

    saved_env = {key: os.environ.pop(key, None) for key in ENV_KEYS}
    try:
        # ----------------------------------------------------------
        # Category 1: Input validation - None and empty inputs
        # ----------------------------------------------------------
        print("\n  Input Validation - None/Empty:")
        empty = compute_delta(None, None)
        check("None reports -> NoRisk", empty.semantic_status == SemanticStatus.NO_RISK)
        check("None reports -> no-change summary", empty.summary == NO_CHANGES_SUMMARY)
        check("None reports -> zero totals", empty.totals.items_reviewed == 0 and empty.totals.unchanged == 0)
        check("None reports -> default checkpoint ids", (empty.from_checkpoint, empty.to_checkpoint) == ("from", "to"))
        check("empty dicts -> NoRisk", compute_delta({}, {}).semantic_status == SemanticStatus.NO_RISK)
        check("text block for None delta", "ERROR: No delta data available" in format_delta_report(None))
        check("JSON error for None delta", format_delta_json(None) == {"error": "No delta data available"})

        # ----------------------------------------------------------
        # Category 2: Input validation - bad types
        # ----------------------------------------------------------
        print("\n  Input Validation - Bad Types:")
        check("non-dict reports -> empty", compute_delta("garbage", 42).semantic_status == SemanticStatus.NO_RISK)
        mixed = compute_delta(
            {"line_items": "not a list", "extra": None},
            {"line_items": [1, "a", None, {"name": "Tarp", "condition": "as_loaded_ok"}]},
        )
        check("non-object entries dropped", [entry.name for entry in mixed.added_since] == ["Tarp"])
        check("added item -> Discrepancies", mixed.semantic_status == SemanticStatus.DISCREPANCIES)
        keyless = compute_delta({"line_items": [{"item_id": "   ", "name": ""}]}, {})
        check("keyless item skipped", keyless.missing_since == [] and keyless.semantic_status == SemanticStatus.NO_RISK)
        numeric_id = compute_delta(
            {"line_items": [{"item_id": 7, "name": "Crate"}]},
            {"line_items": [{"item_id": "7", "name": "Crate"}]},
        )
        check("numeric item_id matches its string form", numeric_id.totals.unchanged == 1)
        check("payload still JSON-serializable", json.loads(json.dumps(mixed.to_payload())) == mixed.to_payload())

        # ----------------------------------------------------------
        # Category 3: Quantity and condition coercion
        # ----------------------------------------------------------
        print("\n  Coercion:")
        check("'12 pcs' -> 12", parse_quantity("12 pcs") == 12)
        check("2.9 -> 2", parse_quantity(2.9) == 2)
        check("-3 -> 0", parse_quantity(-3) == 0)
        check("-3 kept when negatives allowed", parse_quantity(-3, allow_negative=True) == -3)
        check("bool -> None", parse_quantity(True) is None)
        check("NaN -> None", parse_quantity(float("nan")) is None)
        check("'n/a' -> None", parse_quantity("n/a") is None)
        check("'1e5' -> 100000", parse_quantity("1e5") == 100000)
        check("'1,200 units' -> 1200", parse_quantity("1,200 units") == 1200)
        check("negative observed count -> None", parse_observed_quantity(-2) is None)
        check("'-2 boxes' observed -> None", parse_observed_quantity("-2 boxes") is None)
        check("observed '3 pcs' -> 3", parse_observed_quantity("3 pcs") == 3)
        negative_item = ObservedLineItem.model_validate({"name": "Crate", "observed_qty": -4, "expected_qty": -1})
        check("line item negative observed_qty -> None", negative_item.observed_qty is None)
        check("line item negative expected_qty still clamps to 0", negative_item.expected_qty == 0)
        check("extra negative observed_qty -> None", ExtraItem.model_validate({"name": "Tarp", "observed_qty": "-1"}).observed_qty is None)
        check("line item '1e5' observed_qty", ObservedLineItem.model_validate({"name": "Bolts", "observed_qty": "1e5"}).observed_qty == 100000)
        check("' Crushed ' -> crushed", coerce_condition(" Crushed ") == Condition.CRUSHED)
        check("'smashed' -> unknown", coerce_condition("smashed") == Condition.UNKNOWN)
        check("None -> unknown", coerce_condition(None) == Condition.UNKNOWN)

        # ----------------------------------------------------------
        # Category 4: Unicode and whitespace in keys
        # ----------------------------------------------------------
        print("\n  Unicode Handling:")
        unicode_delta = compute_delta(
            {"extra": [{"name": "Café  crate", "condition": "as_loaded_ok"}]},
            {"extra": [{"name": "  CAFÉ crate ", "condition": "as_loaded_ok"}]},
        )
        check("unicode extra names match across case/whitespace", unicode_delta.new_extras == [] and unicode_delta.resolved_extras == [])
        check("unicode names survive text output", "Café" in format_delta_report(compute_delta({"line_items": [{"name": "Café crate"}]}, {})))

        duplicated = compute_delta(
            {
                "line_items": [
                    {"item_id": "csv:row:2", "name": "Water", "condition": "as_loaded_ok"},
                    {"item_id": "CSV:ROW:2", "name": "Water again", "condition": "as_loaded_ok"},
                ]
            },
            {"line_items": [{"item_id": "csv:row:2", "name": "Water", "condition": "as_loaded_ok"}]},
        )
        check("case-insensitive ids collide", "csv:row:2" in duplicated.duplicate_keys)
        check("duplicate keys not serialized", "duplicate_keys" not in duplicated.to_payload())
        check("duplicate warning in text output", "duplicate item key(s)" in format_delta_report(duplicated))

        # ----------------------------------------------------------
        # Category 5: Logging module
        # ----------------------------------------------------------
        print("\n  Logging Module:")
        setup_ok = True
        try:
            setup_logging(level=logging.DEBUG)
            setup_logging(level=logging.INFO, json_format=True)
            setup_logging(level=logging.INFO, json_format=False)
        except Exception:
            setup_ok = False
        check("setup_logging works", setup_ok)
        check("setup_logging installs one handler", len(logging.getLogger().handlers) == 1)

        logger = get_logger("test-hardening")
        logger_ok = isinstance(logger, logging.Logger)
        try:
            logger.info("test message | k=%s", "v")
        except Exception:
            logger_ok = False
        check("get_logger returns valid logger", logger_ok)
        check("level name resolved", resolve_log_level("debug") == logging.DEBUG)
        check("WARN alias resolved", resolve_log_level("WARN") == logging.WARNING)
        check("numeric level resolved", resolve_log_level("15") == 15)
        check("unknown level -> INFO", resolve_log_level("chatty") == logging.INFO)

        # ----------------------------------------------------------
        # Category 6: Settings
        # ----------------------------------------------------------
        print("\n  Settings:")
        defaults = get_settings()
        check("default port 8000", defaults.port == 8000)
        check("default projects file in-memory", defaults.projects_file is None)
        check("default CORS allows all", defaults.cors_origins == ["*"])
        check("default upload limit", defaults.max_manifest_bytes == DEFAULT_MAX_MANIFEST_BYTES)

        os.environ.update(
            {
                "PORT": "not-a-port",
                "PROJECTS_FILE": "   ",
                "LOG_LEVEL": "warning",
                "LOG_JSON": "yes",
                "CORS_ORIGINS": "http://localhost:3000, http://127.0.0.1:5173,",
                "DEBUG": "1",
            }
        )
        custom = get_settings()
        check("bad PORT falls back to 8000", custom.port == 8000)
        check("blank PROJECTS_FILE -> None", custom.projects_file is None)
        check("LOG_LEVEL parsed", custom.log_level == logging.WARNING)
        check("LOG_JSON flag parsed", custom.log_json is True)
        check("CORS origins split", custom.cors_origins == ["http://localhost:3000", "http://127.0.0.1:5173"])
        check("DEBUG flag parsed", custom.debug is True)
    finally:
        for key, value in saved_env.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value
        setup_logging(level=logging.INFO, json_format=False)

    print(f"\n{LINE * 62}")
    print(f"  Results: {passed}/{passed + failed} passed")
    if failed == 0:
        print(f"  Hardening: COMPLETE {PASS}")
    else:
        print(f"  Hardening: {failed} FAILED - fix before proceeding")
    print(f"{LINE * 62}")
    return failed


def test_all_checks_pass() -> None:
    assert main() == 0


if __name__ == "__main__":
    raise SystemExit(1 if main() else 0)
