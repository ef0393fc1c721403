"""
main.py - CLI orchestration for the checkpoint delta service.

This module is orchestration-only:
1. load two checkpoint reports (JSON files)
2. compute the delta
3. explain (text block or JSON payload)

`--manifest` instead prints the expected items extracted from a manifest.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import time
from pathlib import Path
from typing import Any, Optional

from delta import compute_delta
from explain import format_delta_json, format_delta_report
from logging_config import get_logger, setup_logging
from manifest import load_manifest_file
from models import DeltaReport, InspectionReport

logger = get_logger("proofload")


def _configure_output_symbols() -> tuple[str, str]:
    """Configure stdout encoding and return safe line/fail symbols."""
    try:
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
    except Exception:
        pass

    try:
        "═✗".encode(sys.stdout.encoding or "utf-8")
        return "═", "✗"
    except Exception:
        return "=", "X"


BOX_CHAR, FAIL_CHAR = _configure_output_symbols()


def load_report(report_path: str) -> dict[str, Any]:
    """Load one inspection report from a JSON file."""
    if report_path is None:
        raise ValueError("report_path cannot be None")

    report_path = str(report_path).strip()
    if not report_path:
        raise ValueError("report_path cannot be empty")

    if not os.path.exists(report_path):
        raise FileNotFoundError(
            f"Report not found: {report_path}\n"
            "Provide a valid JSON report path with --from / --to"
        )

    try:
        raw = json.loads(Path(report_path).read_text(encoding="utf-8-sig"))
    except UnicodeDecodeError:
        logger.warning(
            "report_encoding_warning | path=%s | reason='utf-8 decode failed' | fallback=latin-1",
            report_path,
        )
        raw = json.loads(Path(report_path).read_text(encoding="latin-1"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Report '{report_path}' is not valid JSON: {exc}") from exc

    # Accept both a bare report and the {"report": {...}} checkpoint envelope.
    if isinstance(raw, dict) and isinstance(raw.get("report"), dict):
        raw = raw["report"]
    if not isinstance(raw, dict):
        raise ValueError(f"Report '{report_path}' must contain a JSON object")

    logger.info(
        "report_loaded | path=%s | checkpoint_id=%s | line_items=%s | extras=%s",
        report_path,
        raw.get("checkpoint_id"),
        len(raw.get("line_items") or []),
        len(raw.get("extra") or []),
    )
    return raw


def run_comparison(
    from_path: str,
    to_path: str,
    from_label: Optional[str] = None,
    to_label: Optional[str] = None,
) -> DeltaReport:
    """Load both reports and compute their delta."""
    pipeline_start = time.time()

    logger.info("%s", "─" * 50)
    logger.info(
        "pipeline_start | from_file=%s | to_file=%s",
        os.path.basename(str(from_path)),
        os.path.basename(str(to_path)),
    )
    logger.info("%s", "─" * 50)

    stage_start = time.time()
    logger.info("pipeline_stage | stage=1/2 | name=load | status=start")
    from_report = InspectionReport.model_validate(load_report(from_path))
    to_report = InspectionReport.model_validate(load_report(to_path))
    load_time = time.time() - stage_start
    logger.info(
        "pipeline_stage | stage=1/2 | name=load | status=complete | duration_s=%.2f",
        load_time,
    )

    stage_start = time.time()
    logger.info("pipeline_stage | stage=2/2 | name=delta | status=start")
    delta = compute_delta(from_report, to_report, from_label=from_label, to_label=to_label)
    delta_time = time.time() - stage_start
    logger.info(
        "pipeline_stage | stage=2/2 | name=delta | status=complete | semantic_status=%s | duration_s=%.2f",
        delta.semantic_status.value,
        delta_time,
    )

    logger.info(
        "pipeline_complete | total_duration_s=%.2f | load_s=%.2f | delta_s=%.2f",
        time.time() - pipeline_start,
        load_time,
        delta_time,
    )
    return delta


def _print_manifest(path: str, as_json: bool) -> None:
    extraction = load_manifest_file(path)
    if as_json:
        print(json.dumps(extraction.model_dump(mode="json"), indent=2))
        return

    print(f"\n{BOX_CHAR * 56}")
    print(f"  Manifest: {os.path.basename(path)}")
    print(f"{BOX_CHAR * 56}")
    print()
    print(f"  {'Item id':<16} {'Name':<28} {'Qty':>6}")
    print(f"  {'─' * 16} {'─' * 28} {'─' * 6}")
    for item in extraction.expected_items:
        short_name = item.name[:26] + ".." if len(item.name) > 28 else item.name
        qty = "?" if item.expected_qty is None else str(item.expected_qty)
        print(f"  {item.item_id:<16} {short_name:<28} {qty:>6}")
    print()
    for warning in extraction.extraction_warnings:
        print(f"  {FAIL_CHAR} {warning}")
    print(f"  Extraction confidence: {extraction.extraction_confidence.value}")
    print(f"{BOX_CHAR * 56}")


def main(argv: Optional[list[str]] = None) -> None:
    """CLI entry point for ProofLoad."""
    parser = argparse.ArgumentParser(
        prog="proofload",
        description=(
            "ProofLoad Checkpoint Delta\n"
            "Explains WHAT changed in a shipment between two inspection "
            "checkpoints."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  %(prog)s --from test_data/reports/start_clean.json --to test_data/reports/end_damaged.json\n"
            "  %(prog)s --from start.json --to end.json --json\n"
            "  %(prog)s --manifest test_data/manifest.csv\n"
        ),
    )
    parser.add_argument(
        "--from",
        "-f",
        dest="from_path",
        type=str,
        help="Path to the earlier checkpoint report (JSON)",
    )
    parser.add_argument(
        "--to",
        "-t",
        dest="to_path",
        type=str,
        help="Path to the later checkpoint report (JSON)",
    )
    parser.add_argument("--from-label", type=str, help="Display label for the earlier checkpoint (e.g. start)")
    parser.add_argument("--to-label", type=str, help="Display label for the later checkpoint (e.g. end)")
    parser.add_argument(
        "--manifest",
        "-m",
        type=str,
        help="Extract and print the expected items of a CSV/XLSX manifest",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose (DEBUG-level) logging",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output results as JSON instead of formatted text",
    )
    parser.add_argument(
        "--log-json",
        action="store_true",
        help="Output logs as JSON lines (for production/log aggregation)",
    )

    args = parser.parse_args(argv)
    setup_logging(
        level=logging.DEBUG if args.verbose else None,
        json_format=True if args.log_json else None,
    )

    if not args.manifest and not (args.from_path and args.to_path):
        parser.error("Provide --from PATH and --to PATH, or --manifest PATH")
    if args.manifest and (args.from_path or args.to_path):
        parser.error("Use --manifest OR --from/--to, not both")

    try:
        if args.manifest:
            logger.info("cli_mode | mode=manifest | manifest=%s", args.manifest)
            _print_manifest(args.manifest, args.json)
            return

        logger.info("cli_mode | mode=delta | from=%s | to=%s", args.from_path, args.to_path)
        delta = run_comparison(args.from_path, args.to_path, args.from_label, args.to_label)
        if args.json:
            print(json.dumps(format_delta_json(delta), indent=2))
        else:
            print(format_delta_report(delta))
    except FileNotFoundError as exc:
        logger.error("cli_error | type=FileNotFoundError | error=%s", exc)
        print(f"\nError: {exc}")
        raise SystemExit(1) from exc
    except ValueError as exc:
        logger.error("cli_error | type=ValueError | error=%s", exc)
        print(f"\nError: {exc}")
        raise SystemExit(1) from exc
    except KeyboardInterrupt:
        print("\nInterrupted.")
        raise SystemExit(130)
    except Exception as exc:
        logger.error(
            "cli_error | type=%s | error=%s",
            type(exc).__name__,
            exc,
            exc_info=True,
        )
        print(f"\nUnexpected error: {exc}")
        print("Run with --verbose for full traceback.")
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
