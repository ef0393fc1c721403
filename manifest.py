"""
manifest.py - Manifest extraction boundary.

Turns an uploaded manifest file (.csv, .xlsx, .xls) into a
`ManifestExtraction`: the list of expected items plus extraction warnings
and a coarse confidence.

Design notes:
- Tabular manifests are read with pandas; every cell is read as text and
  quantities go through models.parse_quantity so "12 pcs" reads as 12.
- Item ids are derived from the spreadsheet row ("csv:row:2" is the first
  data row under the header) and stay stable for the project's lifetime.
- PDF and image manifests need the vision extraction service, which is not
  part of this package. They are rejected with UnsupportedManifestError.
"""

from __future__ import annotations

import io
import os
from pathlib import Path
from typing import Any, Optional

import pandas as pd

from logging_config import get_logger
from models import Confidence, ExpectedItem, ManifestExtraction, parse_quantity

logger = get_logger(__name__)

# -- Column detection --
# Header match is a case-insensitive substring test, first keyword wins.
NAME_KEYWORDS = ("name", "item", "product", "description", "item name")
DESCRIPTION_KEYWORDS = ("description", "desc", "details")
QTY_KEYWORDS = ("qty", "quantity", "count", "amount")

CSV_MIME_TYPES = {"text/csv", "application/csv"}
SPREADSHEET_MIME_TYPES = {
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}
IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".webp"}

EMPTY_SHEET_WARNING = "Sheet is empty or has no data rows"


class UnsupportedManifestError(ValueError):
    """Raised for manifest formats this service cannot read."""


def detect_manifest_kind(mime_type: Optional[str], filename: Optional[str] = "") -> Optional[str]:
    """Classify an upload as 'csv', 'xlsx', 'pdf', 'image', or None."""
    mime = str(mime_type or "").strip().lower()
    suffix = Path(str(filename or "")).suffix.lower()

    if mime in CSV_MIME_TYPES or suffix == ".csv":
        return "csv"
    if mime in SPREADSHEET_MIME_TYPES or "spreadsheet" in mime or "excel" in mime or suffix in {".xlsx", ".xls"}:
        return "xlsx"
    if mime == "application/pdf" or suffix == ".pdf":
        return "pdf"
    if mime.startswith("image/") or suffix in IMAGE_EXTENSIONS:
        return "image"
    return None


def is_manifest_type_supported(mime_type: Optional[str], filename: Optional[str] = "") -> bool:
    """Whether an upload can be turned into expected items by this service."""
    return detect_manifest_kind(mime_type, filename) in {"csv", "xlsx"}


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    try:
        if pd.isna(value):
            return ""
    except (TypeError, ValueError):
        pass
    return str(value).strip()


def _first_matching_columns(columns: list[str], keywords: tuple[str, ...]) -> list[str]:
    """Columns in keyword priority order (first column matching each keyword)."""
    ordered: list[str] = []
    lowered = [(column, column.lower()) for column in columns]
    for keyword in keywords:
        for column, low in lowered:
            if keyword in low:
                if column not in ordered:
                    ordered.append(column)
                break
    return ordered


def _description_columns(columns: list[str]) -> list[str]:
    candidates = _first_matching_columns(columns, DESCRIPTION_KEYWORDS)
    return [
        column
        for column in candidates
        if not any(keyword in column.lower() for keyword in NAME_KEYWORDS)
    ]


def _read_frame(data: bytes, kind: str, filename: str) -> pd.DataFrame:
    if kind == "csv":
        try:
            return pd.read_csv(
                io.BytesIO(data),
                dtype=str,
                keep_default_na=False,
                skip_blank_lines=True,
                skipinitialspace=True,
                encoding="utf-8-sig",
            )
        except UnicodeDecodeError:
            logger.warning(
                "manifest_encoding_warning | filename=%s | reason='utf-8 decode failed' | fallback=latin-1",
                filename,
            )
            return pd.read_csv(
                io.BytesIO(data),
                dtype=str,
                keep_default_na=False,
                skip_blank_lines=True,
                skipinitialspace=True,
                encoding="latin-1",
            )
    return pd.read_excel(io.BytesIO(data), sheet_name=0, dtype=str)


def _extraction_confidence(item_count: int, warning_count: int) -> Confidence:
    if item_count == 0:
        return Confidence.LOW
    if warning_count > item_count / 2:
        return Confidence.MEDIUM
    return Confidence.HIGH


def _extract_rows(df: pd.DataFrame, id_prefix: str) -> ManifestExtraction:
    df.columns = [str(column).strip() for column in df.columns]
    columns = list(df.columns)
    if not columns:
        return ManifestExtraction(
            expected_items=[],
            extraction_warnings=[EMPTY_SHEET_WARNING],
            extraction_confidence=Confidence.LOW,
        )

    name_columns = _first_matching_columns(columns, NAME_KEYWORDS)
    description_columns = _description_columns(columns)
    qty_columns = _first_matching_columns(columns, QTY_KEYWORDS)

    items: list[ExpectedItem] = []
    warnings: list[str] = []

    for position, (_, row) in enumerate(df.iterrows()):
        # Header is spreadsheet row 1.
        row_number = position + 2

        name = ""
        name_column: Optional[str] = None
        for column in name_columns:
            text = _cell_text(row[column])
            if text:
                name, name_column = text, column
                break
        if not name:
            name, name_column = _cell_text(row[columns[0]]), columns[0]
        if not name:
            continue

        description = ""
        for column in description_columns:
            if column == name_column:
                continue
            text = _cell_text(row[column])
            if text:
                description = text
                break

        qty: Optional[int] = None
        for column in qty_columns:
            raw = row[column]
            if raw is None or (not isinstance(raw, str) and pd.isna(raw)):
                continue
            qty = parse_quantity(raw)
            break

        items.append(
            ExpectedItem(
                item_id=f"{id_prefix}:row:{row_number}",
                name=name,
                description=description or None,
                expected_qty=qty,
            )
        )
        if qty is None:
            warnings.append(f'Row {row_number}: qty missing or unreadable for "{name}"')

    return ManifestExtraction(
        expected_items=items,
        extraction_warnings=warnings,
        extraction_confidence=_extraction_confidence(len(items), len(warnings)),
    )


def extract_manifest(
    data: bytes,
    filename: Optional[str] = "manifest",
    mime_type: Optional[str] = "",
) -> ManifestExtraction:
    """Extract expected items from the raw bytes of a manifest upload.

    Raises:
        ValueError: When data is empty or the file cannot be parsed.
        UnsupportedManifestError: For PDF, image, or unknown formats.
    """
    if data is None:
        raise ValueError("Manifest data cannot be None")
    if len(data) == 0:
        raise ValueError(f"Manifest file is empty (0 bytes): {filename}")

    display_name = str(filename or "manifest")
    kind = detect_manifest_kind(mime_type, display_name)

    if kind in {"pdf", "image"}:
        raise UnsupportedManifestError(
            f"{kind.upper()} manifests require the vision extraction service. "
            "Upload the manifest as CSV or XLSX."
        )
    if kind is None:
        raise UnsupportedManifestError(
            f"Unsupported manifest format: {mime_type or 'unknown'}. Use CSV or XLSX."
        )

    try:
        df = _read_frame(data, kind, display_name)
    except pd.errors.EmptyDataError:
        logger.warning("manifest_empty | filename=%s | kind=%s", display_name, kind)
        return ManifestExtraction(
            expected_items=[],
            extraction_warnings=[EMPTY_SHEET_WARNING],
            extraction_confidence=Confidence.LOW,
        )
    except Exception as exc:
        raise ValueError(f"Failed to read manifest '{display_name}': {exc}") from exc

    result = _extract_rows(df, id_prefix=kind)

    logger.info(
        "manifest_extracted | filename=%s | kind=%s | rows=%s | items=%s | warnings=%s | confidence=%s",
        display_name,
        kind,
        len(df),
        len(result.expected_items),
        len(result.extraction_warnings),
        result.extraction_confidence.value,
    )
    return result


def load_manifest_file(path: str) -> ManifestExtraction:
    """Read a manifest from disk and extract its expected items."""
    if path is None:
        raise ValueError("path cannot be None")

    path = str(path).strip()
    if not path:
        raise ValueError("path cannot be empty")

    if not os.path.exists(path):
        raise FileNotFoundError(
            f"Manifest not found: {path}\n"
            "Provide a valid CSV or XLSX path with --manifest"
        )

    return extract_manifest(Path(path).read_bytes(), filename=Path(path).name)
