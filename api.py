"""
api.py - FastAPI HTTP layer for the checkpoint delta service.

Endpoints:
  - GET   /api/health
  - GET   /api/projects
  - POST  /api/projects                            (multipart manifest upload)
  - GET   /api/projects/{project_id}
  - POST  /api/projects/{project_id}/checkpoints   (JSON report)
  - PATCH /api/projects/{project_id}/checkpoints/{checkpoint_id}
  - GET   /api/projects/{project_id}/delta?from=&to=
  - POST  /api/delta                               (stateless comparison)

No comparison logic lives here; everything is delegated to
project_store.py, verification.py, manifest.py and delta.py.
"""

from __future__ import annotations

from typing import Any, Optional

import uvicorn
from fastapi import Body, FastAPI, File, HTTPException, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from config import get_settings
from delta import compute_delta
from logging_config import get_logger, setup_logging
from manifest import UnsupportedManifestError, extract_manifest, is_manifest_type_supported
from project_store import (
    CheckpointNotFoundError,
    ProjectNotFoundError,
    ProjectStore,
    parse_checkpoint_type,
)
from verification import normalize_report

logger = get_logger("proofload-api")

settings = get_settings()

app = FastAPI(
    title="ProofLoad Checkpoint Delta API",
    version="1.0.0",
)

# Allows local UI use from file:// or another local host/port.
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

project_store = ProjectStore(settings.projects_file)


class CheckpointRequest(BaseModel):
    """Body of POST /api/projects/{project_id}/checkpoints."""

    model_config = ConfigDict(extra="ignore")

    type: Optional[str] = Field(default="checkpoint", description="start, checkpoint, or end.")
    photo_filenames: list[str] = Field(default_factory=list)
    report: Optional[dict[str, Any]] = Field(
        default=None,
        description="Raw inspection report produced by the verification service.",
    )


class CheckpointUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    flagged: Optional[bool] = None
    approved: Optional[bool] = None
    flagged_at: Optional[str] = None
    approved_at: Optional[str] = None


class DeltaRequest(BaseModel):
    """Body of POST /api/delta."""

    model_config = ConfigDict(extra="ignore")

    from_report: dict[str, Any]
    to_report: dict[str, Any]
    from_label: Optional[str] = None
    to_label: Optional[str] = None


async def _read_upload(upload: UploadFile, max_bytes: int) -> bytes:
    """Read an UploadFile into memory, refusing anything over max_bytes."""
    chunks: list[bytes] = []
    total = 0
    try:
        while True:
            chunk = await upload.read(1024 * 1024)
            if not chunk:
                break
            total += len(chunk)
            if total > max_bytes:
                raise HTTPException(
                    status_code=400,
                    detail=f"Manifest exceeds the {max_bytes} byte upload limit.",
                )
            chunks.append(chunk)
    finally:
        await upload.close()
    return b"".join(chunks)


def _not_found(exc: LookupError) -> HTTPException:
    return HTTPException(status_code=404, detail=str(exc.args[0]) if exc.args else "Not found")


@app.get("/api/health")
def health() -> dict[str, str]:
    """Service health check."""
    return {"status": "ok", "service": "ProofLoad"}


@app.get("/api/projects")
def list_projects() -> dict[str, Any]:
    """Return lightweight summaries of every project."""
    return {"projects": project_store.list_projects()}


@app.post("/api/projects", status_code=201)
async def create_project(manifest: Optional[UploadFile] = File(default=None)) -> dict[str, Any]:
    """Create a project from an uploaded manifest."""
    if manifest is None or not manifest.filename:
        raise HTTPException(status_code=400, detail="manifest file is required")

    if not is_manifest_type_supported(manifest.content_type, manifest.filename):
        raise HTTPException(
            status_code=400,
            detail="Unsupported list format. Use CSV or XLSX.",
        )

    try:
        data = await _read_upload(manifest, settings.max_manifest_bytes)
        extraction = extract_manifest(data, filename=manifest.filename, mime_type=manifest.content_type)
        project = project_store.create_project(extraction, expected_list_filename=manifest.filename)
        return {"project": project.model_dump(mode="json")}
    except HTTPException:
        raise
    except UnsupportedManifestError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as exc:
        logger.error(
            "api_create_project_error | error_type=%s | error=%s",
            type(exc).__name__,
            exc,
            exc_info=True,
        )
        raise HTTPException(status_code=500, detail="Failed to create project.") from exc


@app.get("/api/projects/{project_id}")
def get_project(project_id: str) -> dict[str, Any]:
    """Return the full project: manifest, checkpoints and reports."""
    try:
        project = project_store.get_project(project_id)
    except ProjectNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Project not found") from exc
    return {"project": project.model_dump(mode="json")}


@app.post("/api/projects/{project_id}/checkpoints", status_code=201)
def add_checkpoint(project_id: str, payload: CheckpointRequest = Body(...)) -> dict[str, Any]:
    """Record a checkpoint with its (already produced) inspection report."""
    try:
        previous_report = project_store.latest_report(project_id)
        project = project_store.get_project(project_id)
    except ProjectNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Project not found") from exc

    try:
        checkpoint_type = parse_checkpoint_type(payload.type)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    if payload.report is None:
        raise HTTPException(status_code=400, detail="report is required")

    try:
        report = normalize_report(
            payload.report,
            manifest_name=project.expected_list_filename,
            photo_names=payload.photo_filenames,
            previous_report=previous_report,
        )
        checkpoint = project_store.add_checkpoint(
            project_id,
            checkpoint_type=checkpoint_type,
            photo_filenames=payload.photo_filenames,
            report=report,
        )
        return {"checkpoint": checkpoint.model_dump(mode="json")}
    except ProjectNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Project not found") from exc
    except (ValueError, ValidationError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as exc:
        logger.error(
            "api_add_checkpoint_error | project_id=%s | error_type=%s | error=%s",
            project_id,
            type(exc).__name__,
            exc,
            exc_info=True,
        )
        raise HTTPException(status_code=500, detail="Failed to record checkpoint.") from exc


@app.patch("/api/projects/{project_id}/checkpoints/{checkpoint_id}")
def update_checkpoint(
    project_id: str,
    checkpoint_id: str,
    payload: CheckpointUpdateRequest = Body(...),
) -> dict[str, Any]:
    """Flag and/or approve a checkpoint."""
    if payload.flagged is None and payload.approved is None:
        raise HTTPException(status_code=400, detail="Provide flagged and/or approved")

    try:
        checkpoint = project_store.update_checkpoint_metadata(
            project_id,
            checkpoint_id,
            flagged=payload.flagged,
            approved=payload.approved,
            flagged_at=payload.flagged_at,
            approved_at=payload.approved_at,
        )
    except ProjectNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Project not found") from exc
    except CheckpointNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Checkpoint not found") from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"checkpoint": checkpoint.model_dump(mode="json")}


@app.get("/api/projects/{project_id}/delta")
def project_delta(
    project_id: str,
    from_id: Optional[str] = Query(default=None, alias="from"),
    to_id: Optional[str] = Query(default=None, alias="to"),
) -> JSONResponse:
    """Compare two checkpoints of the same project."""
    try:
        project_store.get_project(project_id)
    except ProjectNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Project not found") from exc

    if not from_id or not to_id:
        raise HTTPException(
            status_code=400,
            detail="Query parameters 'from' and 'to' (checkpoint ids) are required",
        )

    try:
        delta = project_store.compare_checkpoints(project_id, from_id, to_id)
    except (ProjectNotFoundError, CheckpointNotFoundError) as exc:
        raise _not_found(exc) from exc
    return JSONResponse(content={"delta": delta.to_payload()})


@app.post("/api/delta")
def direct_delta(payload: DeltaRequest = Body(...)) -> JSONResponse:
    """Compare two reports supplied inline; nothing is stored."""
    try:
        delta = compute_delta(
            payload.from_report,
            payload.to_report,
            from_label=payload.from_label,
            to_label=payload.to_label,
        )
    except Exception as exc:
        logger.error(
            "api_delta_error | error_type=%s | error=%s",
            type(exc).__name__,
            exc,
            exc_info=True,
        )
        raise HTTPException(
            status_code=500,
            detail="Unexpected server error while computing delta.",
        ) from exc
    return JSONResponse(content={"delta": delta.to_payload()})


if __name__ == "__main__":
    setup_logging(settings.log_level, settings.log_json)
    uvicorn.run("api:app", host=settings.host, port=settings.port, reload=settings.debug)
