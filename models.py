"""
models.py - Data Models for the Checkpoint Delta Pipeline

This file defines ALL data structures used across the service.
Every module communicates exclusively through these models:

    manifest.py     ->  ManifestExtraction (list[ExpectedItem])
    verification.py ->  InspectionReport
    delta.py        ->  DeltaReport (built from two InspectionReports)
    explain.py      ->  str / dict (uses DeltaReport as input)

Design principles:
1. Reports are parsed tolerantly: missing arrays become empty lists,
   unreadable quantities become None (never 0), and condition strings
   outside the taxonomy collapse to `unknown`.
2. Inputs to the delta engine are frozen models - the engine reads them
   and never mutates them.
3. Field names match the JSON boundary exactly so existing consumers keep
   working (`line_items`, `extra`, `missing_since`, ...).

Schema relationships:
    Condition          --used by--> ObservedLineItem / ExtraItem / delta entries
    ObservedLineItem   --used by--> InspectionReport.line_items
    ExtraItem          --used by--> InspectionReport.extra
    InspectionReport x2 --input to--> DeltaReport
"""

from __future__ import annotations

import math
import re
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from logging_config import get_logger

logger = get_logger(__name__)


class Condition(str, Enum):
    """Physical-condition taxonomy shared by every inspection report."""

    # Good condition: no visible damage, scratches, dents, or issues.
    AS_LOADED_OK = "as_loaded_ok"

    # Visibly broken or damaged: cracks, holes, torn packaging.
    BROKEN_DAMAGED = "broken_damaged"

    # Crushed or severely deformed.
    CRUSHED = "crushed"

    # Wet, stained, or contaminated.
    WET_CONTAMINATED = "wet_contaminated"

    # Open package or partially empty.
    OPEN_PARTIAL = "open_partial"

    # Wrong label or label doesn't match the expected item.
    LABEL_MISMATCH = "label_mismatch"

    # Inspector (or vision model) could not determine the condition.
    UNKNOWN = "unknown"


FAILING_CONDITIONS: frozenset[Condition] = frozenset(
    {
        Condition.BROKEN_DAMAGED,
        Condition.CRUSHED,
        Condition.WET_CONTAMINATED,
        Condition.OPEN_PARTIAL,
        Condition.LABEL_MISMATCH,
    }
)


def is_failing(condition: Condition | str | None) -> bool:
    """Whether a condition belongs to the failing subset of the taxonomy."""
    if condition is None:
        return False
    try:
        return Condition(condition) in FAILING_CONDITIONS
    except ValueError:
        return False


class ReportStatus(str, Enum):
    VERIFIED = "Verified"
    MISMATCH = "Mismatch"
    NEEDS_REVIEW = "NeedsReview"


class Confidence(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class QtyResult(str, Enum):
    MATCH = "Match"
    MISSING_QTY = "MissingQty"
    EXTRA_QTY = "ExtraQty"
    UNKNOWN_QTY = "UnknownQty"


class ConditionResult(str, Enum):
    PASS = "Pass"
    FAIL = "Fail"
    UNKNOWN = "Unknown"


class Severity(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class SemanticStatus(str, Enum):
    """Headline verdict of a checkpoint comparison, in priority order."""

    NO_RISK = "NoRisk"
    MINOR_UPDATES = "MinorUpdates"
    DISCREPANCIES = "Discrepancies"


class DeltaStatus(str, Enum):
    """Legacy two-state verdict kept for older consumers."""

    MISMATCH = "Mismatch"
    NO_CHANGE = "NoChange"


# -- Tolerant coercion helpers --


QUANTITY_TOKEN = re.compile(r"[-+]?\d+(?:\.\d+)?(?:[eE][-+]?\d+)?")


def parse_quantity(value: Any, allow_negative: bool = False) -> Optional[int]:
    """Coerce a quantity-like value to an int, or None when it is unreadable.

    Strings use their first number token ("12 pcs" -> 12, "1e3" -> 1000).
    Fractions are floored. Unknown quantities stay None rather than 0.
    Negatives clamp to 0 unless allow_negative is set.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        number = float(value)
    else:
        match = QUANTITY_TOKEN.search(str(value).replace(",", ""))
        if match is None:
            return None
        try:
            number = float(match.group())
        except ValueError:
            return None

    if math.isnan(number) or math.isinf(number):
        return None
    if number < 0 and not allow_negative:
        return 0
    return int(math.floor(number))


def parse_observed_quantity(value: Any) -> Optional[int]:
    """Counted quantity from a report; negative counts are unreadable, not 0."""
    number = parse_quantity(value, allow_negative=True)
    if number is not None and number < 0:
        return None
    return number


def coerce_condition(value: Any) -> Condition:
    """Map a raw condition value onto the taxonomy; anything else is `unknown`."""
    if isinstance(value, Condition):
        return value
    text = str(value or "").strip().lower()
    if not text:
        return Condition.UNKNOWN
    try:
        return Condition(text)
    except ValueError:
        logger.warning(
            "condition_coerced | raw=%r | fallback=%s",
            value,
            Condition.UNKNOWN.value,
        )
        return Condition.UNKNOWN


def _coerce_enum(enum_cls: type[Enum], value: Any, fallback: Any = None) -> Any:
    if isinstance(value, enum_cls):
        return value
    text = str(value or "").strip()
    for member in enum_cls:
        if member.value == text:
            return member
    return fallback


def _as_list(value: Any) -> list[Any]:
    return list(value) if isinstance(value, (list, tuple)) else []


def _object_list(value: Any) -> list[Any]:
    """Keep only entries that can become models (dicts or model instances)."""
    return [entry for entry in _as_list(value) if isinstance(entry, (dict, BaseModel))]


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


def _optional_id(value: Any) -> Optional[str]:
    if value is None or isinstance(value, bool):
        return None
    return str(value)


class EvidenceRef(BaseModel):
    """A photo reference supporting an observation."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    photo: str = Field(
        default="",
        description="Photo filename (or other reference) the observation was read from.",
    )
    note: Optional[str] = Field(
        default=None,
        description="What the photo shows about this item, e.g. 'dent visible on top-left'.",
    )

    @field_validator("photo", mode="before")
    @classmethod
    def _photo_text(cls, value: Any) -> str:
        return _text(value)

    @field_validator("note", mode="before")
    @classmethod
    def _note_text(cls, value: Any) -> Optional[str]:
        return _optional_text(value)


def _evidence_list(value: Any) -> list[Any]:
    result: list[Any] = []
    for entry in _as_list(value):
        if isinstance(entry, str):
            result.append({"photo": entry})
        elif isinstance(entry, (dict, EvidenceRef)):
            result.append(entry)
    return result


class ExpectedItem(BaseModel):
    """One manifest entry: what the shipment is supposed to contain.

    Created once by manifest extraction and never modified afterward. The
    item_id is stable for the lifetime of a project and is the primary join
    key between the manifest and every checkpoint report.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    item_id: str = Field(
        ...,
        description=(
            "Stable manifest-derived identifier, unique within a manifest. "
            "Tabular manifests use the source row, e.g. 'csv:row:2'."
        ),
    )
    name: str = Field(..., description="Item name as written on the manifest.")
    description: Optional[str] = Field(
        default=None,
        description="Optional free-text description column from the manifest.",
    )
    expected_qty: Optional[int] = Field(
        default=None,
        ge=0,
        description="Expected quantity. None when the manifest had no readable quantity.",
    )

    @field_validator("expected_qty", mode="before")
    @classmethod
    def _parse_expected_qty(cls, value: Any) -> Optional[int]:
        return parse_quantity(value)


class ObservedLineItem(BaseModel):
    """Observation of one expected item at one checkpoint.

    The item_id must equal the corresponding ExpectedItem.item_id; the delta
    engine joins on it. When item_id is missing (malformed upstream output)
    the engine falls back to the normalized name.

    condition_changed and previous_condition are only present when the
    report itself was produced with knowledge of an earlier checkpoint.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    item_id: Optional[str] = Field(default=None, description="Manifest item id this observation refers to.")
    name: str = Field(default="", description="Item name as reported.")
    description: Optional[str] = None
    expected_qty: Optional[int] = Field(default=None, description="Expected quantity copied from the manifest.")
    observed_qty: Optional[int] = Field(
        default=None,
        description="Counted quantity. None when the item could not be counted.",
    )
    qty_result: Optional[QtyResult] = None
    qty_delta: Optional[int] = Field(default=None, description="observed_qty - expected_qty when both are known.")
    condition: Condition = Field(default=Condition.UNKNOWN, description="Condition from the fixed taxonomy.")
    condition_notes: str = Field(
        default="",
        description=(
            "Free-text physical description, e.g. 'torn packaging along right edge' or "
            "'condition unchanged from previous checkpoint: still intact'."
        ),
    )
    condition_result: ConditionResult = ConditionResult.UNKNOWN
    evidence: list[EvidenceRef] = Field(default_factory=list)
    notes: Optional[str] = None
    condition_changed: Optional[bool] = Field(
        default=None,
        description="Set by the upstream verifier when it compared against an earlier checkpoint.",
    )
    previous_condition: Optional[str] = None

    @field_validator("item_id", mode="before")
    @classmethod
    def _item_id_text(cls, value: Any) -> Optional[str]:
        return _optional_id(value)

    @field_validator("name", "condition_notes", mode="before")
    @classmethod
    def _plain_text(cls, value: Any) -> str:
        return _text(value)

    @field_validator("description", "notes", "previous_condition", mode="before")
    @classmethod
    def _optional_texts(cls, value: Any) -> Optional[str]:
        return _optional_text(value)

    @field_validator("expected_qty", mode="before")
    @classmethod
    def _parse_expected_qty(cls, value: Any) -> Optional[int]:
        return parse_quantity(value)

    @field_validator("observed_qty", mode="before")
    @classmethod
    def _parse_observed_qty(cls, value: Any) -> Optional[int]:
        return parse_observed_quantity(value)

    @field_validator("qty_delta", mode="before")
    @classmethod
    def _parse_qty_delta(cls, value: Any) -> Optional[int]:
        return parse_quantity(value, allow_negative=True)

    @field_validator("qty_result", mode="before")
    @classmethod
    def _qty_result(cls, value: Any) -> Optional[QtyResult]:
        return _coerce_enum(QtyResult, value)

    @field_validator("condition", mode="before")
    @classmethod
    def _condition(cls, value: Any) -> Condition:
        return coerce_condition(value)

    @field_validator("condition_result", mode="before")
    @classmethod
    def _condition_result(cls, value: Any) -> ConditionResult:
        return _coerce_enum(ConditionResult, value, ConditionResult.UNKNOWN)

    @field_validator("evidence", mode="before")
    @classmethod
    def _evidence(cls, value: Any) -> list[Any]:
        return _evidence_list(value)

    @field_validator("condition_changed", mode="before")
    @classmethod
    def _condition_changed(cls, value: Any) -> Optional[bool]:
        return value if isinstance(value, bool) else None

    @property
    def is_failing(self) -> bool:
        """Whether the observed condition is in the failing subset."""
        return is_failing(self.condition)


class ExtraItem(BaseModel):
    """Something observed in the load that is not on the manifest.

    Extras carry no stable id; the delta engine matches them across
    checkpoints by normalized name.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str = Field(default="", description="Best-effort identification of the unmanifested item.")
    observed_qty: Optional[int] = None
    condition: Condition = Condition.UNKNOWN
    condition_notes: str = ""
    evidence: list[EvidenceRef] = Field(default_factory=list)

    @field_validator("name", "condition_notes", mode="before")
    @classmethod
    def _plain_text(cls, value: Any) -> str:
        return _text(value)

    @field_validator("observed_qty", mode="before")
    @classmethod
    def _parse_qty(cls, value: Any) -> Optional[int]:
        return parse_observed_quantity(value)

    @field_validator("condition", mode="before")
    @classmethod
    def _condition(cls, value: Any) -> Condition:
        return coerce_condition(value)

    @field_validator("evidence", mode="before")
    @classmethod
    def _evidence(cls, value: Any) -> list[Any]:
        return _evidence_list(value)


class MissingItem(BaseModel):
    """Expected item that the checkpoint did not observe at all."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    item_id: Optional[str] = None
    name: str = ""
    expected_qty: Optional[int] = None

    @field_validator("item_id", mode="before")
    @classmethod
    def _item_id_text(cls, value: Any) -> Optional[str]:
        return _optional_id(value)

    @field_validator("name", mode="before")
    @classmethod
    def _plain_text(cls, value: Any) -> str:
        return _text(value)

    @field_validator("expected_qty", mode="before")
    @classmethod
    def _parse_qty(cls, value: Any) -> Optional[int]:
        return parse_quantity(value)


class ConditionIssue(BaseModel):
    """Failing-condition finding surfaced at report level."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    item_id: Optional[str] = None
    name: str = ""
    condition: Condition = Condition.UNKNOWN
    condition_notes: Optional[str] = None
    severity: Severity = Severity.MEDIUM
    condition_changed: bool = False
    previous_condition: Optional[str] = None

    @field_validator("item_id", mode="before")
    @classmethod
    def _item_id_text(cls, value: Any) -> Optional[str]:
        return _optional_id(value)

    @field_validator("name", mode="before")
    @classmethod
    def _plain_text(cls, value: Any) -> str:
        return _text(value)

    @field_validator("condition_notes", "previous_condition", mode="before")
    @classmethod
    def _optional_texts(cls, value: Any) -> Optional[str]:
        return _optional_text(value)

    @field_validator("condition", mode="before")
    @classmethod
    def _condition(cls, value: Any) -> Condition:
        return coerce_condition(value)

    @field_validator("severity", mode="before")
    @classmethod
    def _severity(cls, value: Any) -> Severity:
        return _coerce_enum(Severity, value, Severity.MEDIUM)

    @field_validator("condition_changed", mode="before")
    @classmethod
    def _condition_changed(cls, value: Any) -> bool:
        return value if isinstance(value, bool) else False


class ReportInputs(BaseModel):
    """What the verifier was given: manifest name and photo filenames."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    manifest: Optional[str] = None
    photos: Optional[list[str]] = None

    @field_validator("manifest", mode="before")
    @classmethod
    def _manifest_name(cls, value: Any) -> Optional[str]:
        return _optional_text(value)

    @field_validator("photos", mode="before")
    @classmethod
    def _photo_names(cls, value: Any) -> Optional[list[str]]:
        if value is None:
            return None
        return [str(photo) for photo in _as_list(value)]


class InspectionReport(BaseModel):
    """One checkpoint's inspection result - the unit the delta engine compares.

    Produced upstream by the checkpoint-verification service and normalized
    by verification.py. Frozen: once materialized, a report is only ever
    read. Every collection tolerates being absent or null in the raw JSON.

    Invariant: line-item item_id values are unique within one report when
    present. Violations are tolerated by the delta engine (last write wins)
    and logged as a data-quality warning.
    """

    status: Optional[ReportStatus] = Field(
        default=None,
        description="Verifier verdict: Verified, Mismatch, or NeedsReview.",
    )
    confidence: Optional[Confidence] = Field(
        default=None,
        description="Verifier confidence based on photo clarity and matching certainty.",
    )
    summary: str = Field(default="", description="Short operational summary (1-2 sentences).")
    line_items: list[ObservedLineItem] = Field(default_factory=list)
    extra: list[ExtraItem] = Field(default_factory=list)
    missing: list[MissingItem] = Field(default_factory=list)
    condition_issues: list[ConditionIssue] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    checkpoint_id: Optional[str] = Field(
        default=None,
        description="Id of the checkpoint this report belongs to; stamped by the project store.",
    )
    inputs: Optional[ReportInputs] = None
    has_previous_checkpoint: bool = False

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, value: Any) -> Optional[ReportStatus]:
        return _coerce_enum(ReportStatus, value)

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence(cls, value: Any) -> Optional[Confidence]:
        return _coerce_enum(Confidence, value)

    @field_validator("summary", mode="before")
    @classmethod
    def _summary(cls, value: Any) -> str:
        return value if isinstance(value, str) else ""

    @field_validator("line_items", "extra", "missing", "condition_issues", mode="before")
    @classmethod
    def _object_lists(cls, value: Any) -> list[Any]:
        return _object_list(value)

    @field_validator("recommendations", mode="before")
    @classmethod
    def _recommendations(cls, value: Any) -> list[str]:
        return [str(entry) for entry in _as_list(value) if entry is not None]

    @field_validator("checkpoint_id", mode="before")
    @classmethod
    def _checkpoint_id(cls, value: Any) -> Optional[str]:
        return _optional_id(value)

    @field_validator("inputs", mode="before")
    @classmethod
    def _inputs(cls, value: Any) -> Any:
        return value if isinstance(value, (dict, ReportInputs)) else None

    @field_validator("has_previous_checkpoint", mode="before")
    @classmethod
    def _has_previous(cls, value: Any) -> bool:
        return bool(value)

    @property
    def failing_line_items(self) -> list[ObservedLineItem]:
        return [item for item in self.line_items if item.is_failing]

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        json_schema_extra={
            "examples": [
                {
                    "status": "Verified",
                    "confidence": "High",
                    "summary": "All 2 manifest items observed in good condition.",
                    "line_items": [
                        {
                            "item_id": "csv:row:2",
                            "name": "Pallet of bottled water",
                            "expected_qty": 4,
                            "observed_qty": 4,
                            "qty_result": "Match",
                            "condition": "as_loaded_ok",
                            "condition_notes": "no visible damage, shrink wrap intact",
                            "condition_result": "Pass",
                            "evidence": [{"photo": "dock_01.jpg", "note": "left bay"}],
                        }
                    ],
                    "extra": [],
                    "missing": [],
                    "checkpoint_id": "cp-start",
                    "inputs": {"manifest": "manifest.csv", "photos": ["dock_01.jpg"]},
                }
            ]
        },
    )


class ManifestExtraction(BaseModel):
    """Result of turning a manifest file into expected items."""

    expected_items: list[ExpectedItem] = Field(default_factory=list)
    extraction_warnings: list[str] = Field(default_factory=list)
    extraction_confidence: Confidence = Confidence.MEDIUM


# -- Delta output --


class MissingSinceEntry(BaseModel):
    """Line item seen at the earlier checkpoint but not at the later one."""

    model_config = ConfigDict(frozen=True)

    item_id: Optional[str] = None
    name: str = ""
    expected_qty: Optional[int] = None
    observed_at_from: Optional[Union[int, str]] = Field(
        default="present",
        description="Prior observed quantity, or the literal 'present' when no count was tracked.",
    )
    from_condition: Condition = Condition.UNKNOWN
    from_condition_notes: Optional[str] = None
    observed_at_to: Optional[int] = None
    evidence_from: list[EvidenceRef] = Field(default_factory=list)


class AddedSinceEntry(BaseModel):
    """Line item seen at the later checkpoint but not at the earlier one."""

    model_config = ConfigDict(frozen=True)

    item_id: Optional[str] = None
    name: str = ""
    expected_qty: Optional[int] = None
    observed_at_from: Optional[int] = None
    observed_at_to: Optional[Union[int, str]] = "present"
    condition: Condition = Condition.UNKNOWN
    condition_notes: Optional[str] = None
    evidence_to: list[EvidenceRef] = Field(default_factory=list)
    is_extra: bool = Field(
        default=False,
        description="True when the same key is also reported as an unmanifested extra.",
    )


class ConditionChangeEntry(BaseModel):
    """Line item matched in both reports, with its condition transition."""

    model_config = ConfigDict(frozen=True)

    item_id: Optional[str] = None
    name: str = ""
    from_condition: Condition
    to_condition: Condition
    from_condition_notes: Optional[str] = None
    to_condition_notes: Optional[str] = None
    from_condition_result: ConditionResult = ConditionResult.UNKNOWN
    to_condition_result: ConditionResult = ConditionResult.UNKNOWN
    condition_changed: bool = False
    severity: Severity = Severity.LOW
    evidence_from: list[EvidenceRef] = Field(default_factory=list)
    evidence_to: list[EvidenceRef] = Field(default_factory=list)


class ExtraConditionChangeEntry(BaseModel):
    """Extra item matched in both reports, with its condition transition."""

    model_config = ConfigDict(frozen=True)

    name: str = ""
    from_condition: Condition
    to_condition: Condition
    from_condition_notes: Optional[str] = None
    to_condition_notes: Optional[str] = None
    severity: Severity = Severity.LOW


class UnchangedItemEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    item_id: Optional[str] = None
    name: str = ""
    condition: Condition = Condition.UNKNOWN
    condition_notes: Optional[str] = None


class ResolvedExtraEntry(BaseModel):
    """Extra item no longer observed at the later checkpoint."""

    model_config = ConfigDict(frozen=True)

    name: str = ""
    observed_qty: Optional[int] = None
    condition: Condition = Condition.UNKNOWN
    condition_notes: Optional[str] = None


class NewExtraEntry(BaseModel):
    """Extra item first observed at the later checkpoint."""

    model_config = ConfigDict(frozen=True)

    name: str = ""
    observed_qty: Optional[int] = None
    condition: Condition = Condition.UNKNOWN
    condition_notes: Optional[str] = None
    evidence: list[EvidenceRef] = Field(default_factory=list)


class DeltaTotals(BaseModel):
    model_config = ConfigDict(frozen=True)

    items_reviewed: int = Field(default=0, ge=0)
    missing: int = Field(default=0, ge=0)
    added: int = Field(default=0, ge=0)
    damaged: int = Field(default=0, ge=0)
    new_extras: int = Field(default=0, ge=0)
    unchanged: int = Field(default=0, ge=0)


class AISummary(BaseModel):
    """Templated narrative summary keyed off semantic status and confidence."""

    model_config = ConfigDict(frozen=True)

    text: str
    confidence: Confidence = Confidence.MEDIUM
    semantic_status: SemanticStatus


class DeltaReport(BaseModel):
    """Comparison of two checkpoint reports for the same shipment.

    Built by delta.compute_delta() for an ordered pair (from, to) where
    `from` is the earlier checkpoint. Purely derived: never mutated after
    construction and never persisted by the engine.

    Key fields:

    - semantic_status is the headline verdict. Discrepancies (missing,
      added, worsened, or new extras) always dominate; MinorUpdates only
      surfaces on an otherwise clean comparison.

    - status is the legacy two-state field: Mismatch exactly when
      semantic_status is Discrepancies.

    - duplicate_keys lists normalized keys that collided inside either
      input report. It is a data-quality signal for the host and is not
      part of the serialized payload.

    Usage:
        delta = compute_delta(start_report, end_report)
        payload = delta.to_payload()                 # JSON boundary
        print(format_delta_report(delta))            # terminal output
    """

    model_config = ConfigDict(frozen=True)

    from_checkpoint: str = "from"
    to_checkpoint: str = "to"
    from_checkpoint_type: str = "from"
    to_checkpoint_type: str = "to"
    from_label: Optional[str] = None
    to_label: Optional[str] = None
    semantic_status: SemanticStatus = SemanticStatus.NO_RISK
    status: DeltaStatus = DeltaStatus.NO_CHANGE
    summary: str = ""
    totals: DeltaTotals = Field(default_factory=DeltaTotals)
    ai_summary: AISummary
    missing_since: list[MissingSinceEntry] = Field(default_factory=list)
    added_since: list[AddedSinceEntry] = Field(default_factory=list)
    condition_changes: list[ConditionChangeEntry] = Field(default_factory=list)
    extra_condition_changes: list[ExtraConditionChangeEntry] = Field(default_factory=list)
    informational_condition_changes: list[ConditionChangeEntry] = Field(default_factory=list)
    extra_informational_changes: list[ExtraConditionChangeEntry] = Field(default_factory=list)
    unchanged_items: list[UnchangedItemEntry] = Field(default_factory=list)
    resolved_extras: list[ResolvedExtraEntry] = Field(default_factory=list)
    new_extras: list[NewExtraEntry] = Field(default_factory=list)
    to_report_confidence: Optional[Confidence] = None
    duplicate_keys: list[str] = Field(default_factory=list, exclude=True)

    @property
    def has_discrepancies(self) -> bool:
        return self.semantic_status == SemanticStatus.DISCREPANCIES

    @property
    def is_clean(self) -> bool:
        """Whether nothing at all changed between the two checkpoints."""
        return self.semantic_status == SemanticStatus.NO_RISK

    def to_payload(self) -> dict[str, Any]:
        """JSON-ready dict with the exact field names consumers expect.

        from_label / to_label are only included when a caller supplied them.
        """
        payload = self.model_dump(mode="json")
        for optional_key in ("from_label", "to_label"):
            if payload.get(optional_key) is None:
                payload.pop(optional_key, None)
        return payload
