"""
project_store.py - Project and checkpoint storage.

A project is one shipment: its manifest (expected items) plus an ordered
list of checkpoints, each holding at most one inspection report.

State lives in memory behind a lock. When a path is configured
(PROJECTS_FILE), every mutation is also written to one local JSON file
using temp-file + replace so a crash never leaves a half-written file.
No auth, no multi-user state, no background workers.
"""

from __future__ import annotations

import json
import os
import tempfile
import threading
import uuid
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from dateutil import parser as date_parser
from pydantic import BaseModel, ConfigDict, Field, field_validator

from delta import compute_delta, summarize_delta
from logging_config import get_logger
from models import Confidence, DeltaReport, ExpectedItem, InspectionReport, ManifestExtraction

logger = get_logger(__name__)


class CheckpointType(str, Enum):
    START = "start"
    CHECKPOINT = "checkpoint"
    END = "end"


class ProjectNotFoundError(LookupError):
    """Raised when a project id is unknown."""


class CheckpointNotFoundError(LookupError):
    """Raised when a checkpoint is unknown or has no report to compare."""


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_timestamp(value: Any) -> str:
    """Parse a caller-supplied timestamp and render it as ISO-8601 UTC.

    Naive timestamps are taken to be UTC already.
    """
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value or "").strip()
        if not text:
            raise ValueError("Timestamp cannot be empty")
        try:
            parsed = date_parser.isoparse(text)
        except ValueError:
            try:
                parsed = date_parser.parse(text)
            except (ValueError, OverflowError) as exc:
                raise ValueError(f"Invalid timestamp: {text}") from exc

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc).isoformat()


class Checkpoint(BaseModel):
    """One inspection event within a project."""

    model_config = ConfigDict(extra="ignore")

    id: str
    type: CheckpointType = CheckpointType.CHECKPOINT
    created_at: str = Field(default_factory=_utc_now)
    photo_filenames: list[str] = Field(default_factory=list)
    report: Optional[InspectionReport] = None
    flagged: Optional[bool] = None
    flagged_at: Optional[str] = None
    approved: Optional[bool] = None
    approved_at: Optional[str] = None

    @field_validator("photo_filenames", mode="before")
    @classmethod
    def _photo_names(cls, value: Any) -> list[str]:
        if not isinstance(value, (list, tuple)):
            return []
        return [str(name) for name in value if name is not None]


class Project(BaseModel):
    """A shipment: manifest plus checkpoints in the order they were recorded."""

    model_config = ConfigDict(extra="ignore")

    id: str
    created_at: str = Field(default_factory=_utc_now)
    expected_list_filename: str = "manifest"
    expected_items: list[ExpectedItem] = Field(default_factory=list)
    extraction_warnings: list[str] = Field(default_factory=list)
    extraction_confidence: Confidence = Confidence.MEDIUM
    checkpoints: list[Checkpoint] = Field(default_factory=list)

    def find_checkpoint(self, checkpoint_id: str) -> Optional[Checkpoint]:
        for checkpoint in self.checkpoints:
            if checkpoint.id == checkpoint_id:
                return checkpoint
        return None

    def summary(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "created_at": self.created_at,
            "expected_list_filename": self.expected_list_filename,
            "expected_items_count": len(self.expected_items),
            "checkpoints_count": len(self.checkpoints),
        }


def parse_checkpoint_type(value: Any) -> CheckpointType:
    """Validate a checkpoint type, defaulting to 'checkpoint' when absent."""
    if isinstance(value, CheckpointType):
        return value
    text = str(value or "").strip().lower() or CheckpointType.CHECKPOINT.value
    try:
        return CheckpointType(text)
    except ValueError as exc:
        raise ValueError("Invalid checkpoint type. Use start, checkpoint, or end.") from exc


class ProjectStore:
    """Thread-safe project store, optionally persisted to one JSON file."""

    def __init__(self, path: Optional[str] = None) -> None:
        self.path = Path(path).resolve() if path else None
        self._lock = threading.RLock()
        self._projects: dict[str, Project] = {}
        if self.path is not None:
            self._projects = self._load()

    # -- persistence --

    def _load(self) -> dict[str, Project]:
        """Load projects from disk, returning an empty store if missing/unreadable."""
        if self.path is None or not self.path.exists():
            return {}

        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            projects = [Project.model_validate(entry) for entry in raw.get("projects", [])]
        except Exception as exc:
            logger.warning(
                "projects_load_warning | path=%s | error_type=%s | error=%s | fallback='empty'",
                self.path,
                type(exc).__name__,
                exc,
            )
            return {}

        logger.info("projects_loaded | path=%s | projects=%s", self.path, len(projects))
        return {project.id: project for project in projects}

    def _persist(self, projects: dict[str, Project]) -> None:
        """Write `projects` atomically via temp-file + replace."""
        if self.path is None:
            return

        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "updated_at": _utc_now(),
            "projects": [project.model_dump(mode="json") for project in projects.values()],
        }
        with tempfile.NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            dir=str(self.path.parent),
            delete=False,
            suffix=".tmp",
            prefix="projects-",
        ) as tmp_file:
            json.dump(payload, tmp_file, ensure_ascii=False, indent=2)
            tmp_file.flush()
            os.fsync(tmp_file.fileno())
            tmp_path = Path(tmp_file.name)

        try:
            os.replace(tmp_path, self.path)
        except OSError:
            tmp_path.unlink(missing_ok=True)
            raise

    def _commit(self, project: Project) -> None:
        """Persist the store with `project` swapped in.

        The in-memory map is only replaced once the write succeeded, so a
        failed save leaves the store exactly as it was.
        """
        candidate = dict(self._projects)
        candidate[project.id] = project
        try:
            self._persist(candidate)
        except Exception as exc:
            logger.error(
                "projects_save_error | project_id=%s | error_type=%s | error=%s | rollback=True",
                project.id,
                type(exc).__name__,
                exc,
            )
            raise
        self._projects = candidate

    # -- lookups (callers always receive copies) --

    def _project(self, project_id: str) -> Project:
        project = self._projects.get(project_id)
        if project is None:
            raise ProjectNotFoundError(f"Project not found: {project_id}")
        return project

    def _checkpoint(self, project: Project, checkpoint_id: str) -> Checkpoint:
        checkpoint = project.find_checkpoint(checkpoint_id)
        if checkpoint is None:
            raise CheckpointNotFoundError(f"Checkpoint not found: {checkpoint_id}")
        return checkpoint

    def get_project(self, project_id: str) -> Project:
        with self._lock:
            return self._project(project_id).model_copy(deep=True)

    def list_projects(self) -> list[dict[str, Any]]:
        with self._lock:
            return [project.summary() for project in self._projects.values()]

    def latest_report(self, project_id: str) -> Optional[InspectionReport]:
        """Report of the most recent checkpoint that has one."""
        with self._lock:
            project = self._project(project_id)
            for checkpoint in reversed(project.checkpoints):
                if checkpoint.report is not None:
                    return checkpoint.report.model_copy(deep=True)
        return None

    # -- mutations --

    def create_project(
        self,
        extraction: ManifestExtraction,
        expected_list_filename: Optional[str] = "manifest",
    ) -> Project:
        project = Project(
            id=str(uuid.uuid4()),
            expected_list_filename=expected_list_filename or "manifest",
            expected_items=list(extraction.expected_items),
            extraction_warnings=list(extraction.extraction_warnings),
            extraction_confidence=extraction.extraction_confidence,
        )
        with self._lock:
            self._commit(project)
            snapshot = project.model_copy(deep=True)

        logger.info(
            "project_created | project_id=%s | manifest=%s | expected_items=%s | confidence=%s",
            project.id,
            project.expected_list_filename,
            len(project.expected_items),
            project.extraction_confidence.value,
        )
        return snapshot

    def add_checkpoint(
        self,
        project_id: str,
        checkpoint_type: Any = CheckpointType.CHECKPOINT,
        photo_filenames: Optional[list[str]] = None,
        report: Optional[InspectionReport] = None,
    ) -> Checkpoint:
        """Append a checkpoint; a supplied report is stamped with its id."""
        parsed_type = parse_checkpoint_type(checkpoint_type)
        checkpoint_id = str(uuid.uuid4())
        stamped = report.model_copy(update={"checkpoint_id": checkpoint_id}) if report is not None else None
        checkpoint = Checkpoint(
            id=checkpoint_id,
            type=parsed_type,
            photo_filenames=list(photo_filenames or []),
            report=stamped,
        )

        with self._lock:
            project = self._project(project_id).model_copy(deep=True)
            project.checkpoints.append(checkpoint)
            self._commit(project)
            snapshot = checkpoint.model_copy(deep=True)

        logger.info(
            "checkpoint_added | project_id=%s | checkpoint_id=%s | type=%s | photos=%s | has_report=%s",
            project_id,
            checkpoint_id,
            parsed_type.value,
            len(checkpoint.photo_filenames),
            stamped is not None,
        )
        return snapshot

    def set_checkpoint_report(self, project_id: str, checkpoint_id: str, report: InspectionReport) -> Checkpoint:
        with self._lock:
            project = self._project(project_id).model_copy(deep=True)
            checkpoint = self._checkpoint(project, checkpoint_id)
            checkpoint.report = report.model_copy(update={"checkpoint_id": checkpoint_id})
            self._commit(project)
            return checkpoint.model_copy(deep=True)

    def update_checkpoint_metadata(
        self,
        project_id: str,
        checkpoint_id: str,
        flagged: Optional[bool] = None,
        approved: Optional[bool] = None,
        flagged_at: Any = None,
        approved_at: Any = None,
    ) -> Checkpoint:
        """Set or clear the flagged / approved marks on a checkpoint.

        Setting a mark records a timestamp (the supplied one, else now);
        clearing it clears the timestamp.
        """
        if flagged is None and approved is None:
            raise ValueError("Provide flagged and/or approved")

        with self._lock:
            project = self._project(project_id).model_copy(deep=True)
            checkpoint = self._checkpoint(project, checkpoint_id)
            if flagged is not None:
                checkpoint.flagged = flagged
                checkpoint.flagged_at = (
                    (normalize_timestamp(flagged_at) if flagged_at else _utc_now()) if flagged else None
                )
            if approved is not None:
                checkpoint.approved = approved
                checkpoint.approved_at = (
                    (normalize_timestamp(approved_at) if approved_at else _utc_now()) if approved else None
                )
            self._commit(project)
            snapshot = checkpoint.model_copy(deep=True)

        logger.info(
            "checkpoint_metadata_updated | project_id=%s | checkpoint_id=%s | flagged=%s | approved=%s",
            project_id,
            checkpoint_id,
            snapshot.flagged,
            snapshot.approved,
        )
        return snapshot

    def compare_checkpoints(self, project_id: str, from_id: str, to_id: str) -> DeltaReport:
        """Run the delta engine over two checkpoints of the same project."""
        with self._lock:
            project = self._project(project_id)
            from_cp = project.find_checkpoint(from_id)
            to_cp = project.find_checkpoint(to_id)
            if from_cp is None or to_cp is None or from_cp.report is None or to_cp.report is None:
                raise CheckpointNotFoundError("One or both checkpoints not found or have no report")
            from_report = from_cp.report.model_copy(deep=True)
            to_report = to_cp.report.model_copy(deep=True)
            from_label = from_cp.type.value
            to_label = to_cp.type.value

        delta = compute_delta(from_report, to_report, from_label=from_label, to_label=to_label)
        logger.info(
            "checkpoints_compared | project_id=%s | delta=%s",
            project_id,
            json.dumps(summarize_delta(delta)),
        )
        return delta

    def reset(self) -> None:
        """Drop every project and remove the persisted file if present."""
        with self._lock:
            self._projects = {}
            if self.path is None:
                return
            try:
                if self.path.exists():
                    self.path.unlink()
            except OSError as exc:
                logger.warning(
                    "projects_reset_warning | path=%s | error_type=%s | error=%s",
                    self.path,
                    type(exc).__name__,
                    exc,
                )
