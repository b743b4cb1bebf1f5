"""
Projects API - FastAPI router for projects, versions, line items and
quotation figures.
"""
from typing import Any, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel

from ..engine.models import Project, ProjectVersion
from ..services.workspace import QuotationWorkspace
from .state import get_workspace

router = APIRouter(prefix="/api/projects", tags=["projects"])


# Pydantic models for API
class ProjectCreate(BaseModel):
    """Request model for creating a project."""
    project_name: str
    client_name: str = ""
    client_contact: str = ""
    client_address: str = ""
    date: str = ""
    validity_period: str = ""
    quote_id: str = ""
    discount: float = 0.0


class ProjectUpdate(BaseModel):
    """Request model for updating project metadata."""
    project_name: Optional[str] = None
    client_name: Optional[str] = None
    client_contact: Optional[str] = None
    client_address: Optional[str] = None
    date: Optional[str] = None
    validity_period: Optional[str] = None
    quote_id: Optional[str] = None
    discount: Optional[float] = None


class VersionCreate(BaseModel):
    """Duplicate ``source_version_id``; the name is proposed when omitted."""
    source_version_id: str
    name: Optional[str] = None


class VersionRename(BaseModel):
    name: str


class ResyncRequest(BaseModel):
    master_ids: Optional[list[str]] = None


class LineCreate(BaseModel):
    """Request model for a custom (non-catalog) line."""
    item_name: str = ""
    category: str = ""
    description: str = ""
    uom: str = ""
    price: float = 0.0
    qty: float = 1.0
    is_optional: bool = False


class LineFieldUpdate(BaseModel):
    field: str
    value: Any = None


class ReorderRequest(BaseModel):
    source_index: int
    destination_index: int


class SyncRequest(BaseModel):
    """Quantity typed against a catalog row."""
    master_id: str
    qty: Any = 0


class QuotationEditRequest(BaseModel):
    line_id: str
    value: Optional[str] = None


def _version_out(version: ProjectVersion) -> dict:
    return {
        "id": version.id,
        "name": version.name,
        "created_at": version.created_at,
        "item_count": len(version.master_snapshot),
    }


def _project_out(project: Project) -> dict:
    data = jsonable_encoder(project)
    data["versions"] = [_version_out(v) for v in project.versions]
    return data


def _require_project(workspace: QuotationWorkspace, project_id: str) -> Project:
    project = workspace.projects.get_project(project_id)
    if not project:
        raise HTTPException(status_code=404, detail=f"Project '{project_id}' not found")
    return project


def _require_version(workspace: QuotationWorkspace, project_id: str, version_id: str) -> ProjectVersion:
    project = _require_project(workspace, project_id)
    version = project.get_version(version_id)
    if not version:
        raise HTTPException(status_code=404, detail=f"Version '{version_id}' not found")
    return version


def _require_line(workspace: QuotationWorkspace, project_id: str, version_id: str, line_id: str):
    _require_version(workspace, project_id, version_id)
    line = workspace.projects.get_line(line_id)
    if not line or line.project_id != project_id or line.version_id != version_id:
        raise HTTPException(status_code=404, detail=f"Line '{line_id}' not found")
    return line


# Quotation-text edits (declared before the /{project_id} routes)

@router.get("/quotation-edits")
async def list_quotation_edits(workspace: QuotationWorkspace = Depends(get_workspace)):
    edits = workspace.quotation_edits
    return {line_id: edits.pending(line_id) for line_id in edits.pending_ids}


@router.post("/quotation-edits")
async def stage_quotation_edit(req: QuotationEditRequest,
                               workspace: QuotationWorkspace = Depends(get_workspace)):
    """Stage a line's quotation description."""
    delta = workspace.quotation_edits.stage(req.line_id, "quotation_description", req.value)
    if delta is None:
        raise HTTPException(status_code=404, detail=f"Line '{req.line_id}' not found")
    return delta


@router.post("/quotation-edits/commit")
async def commit_quotation_edits(background_tasks: BackgroundTasks,
                                 workspace: QuotationWorkspace = Depends(get_workspace)):
    committed = workspace.quotation_edits.commit()
    background_tasks.add_task(workspace.remote.drain)
    return {"committed": committed}


@router.post("/quotation-edits/discard")
async def discard_quotation_edits(workspace: QuotationWorkspace = Depends(get_workspace)):
    return {"discarded": workspace.quotation_edits.discard()}


# Projects

@router.get("")
async def list_projects(workspace: QuotationWorkspace = Depends(get_workspace)):
    return [_project_out(p) for p in workspace.projects.projects]


@router.post("")
async def create_project(project_data: ProjectCreate, background_tasks: BackgroundTasks,
                         workspace: QuotationWorkspace = Depends(get_workspace)):
    """Create a project; its first version snapshots the current catalog."""
    if not project_data.project_name.strip():
        raise HTTPException(status_code=400, detail="Project name is required")
    project = workspace.projects.create_project(project_data.model_dump())
    background_tasks.add_task(workspace.remote.drain)
    return _project_out(project)


@router.get("/{project_id}")
async def get_project(project_id: str, workspace: QuotationWorkspace = Depends(get_workspace)):
    return _project_out(_require_project(workspace, project_id))


@router.put("/{project_id}")
async def update_project(project_id: str, updates: ProjectUpdate, background_tasks: BackgroundTasks,
                         workspace: QuotationWorkspace = Depends(get_workspace)):
    fields = updates.model_dump(exclude_unset=True)
    if not fields:
        raise HTTPException(status_code=400, detail="No fields to update")
    project = workspace.projects.update_project(project_id, fields)
    if not project:
        raise HTTPException(status_code=404, detail=f"Project '{project_id}' not found")
    background_tasks.add_task(workspace.remote.drain)
    return _project_out(project)


@router.delete("/{project_id}")
async def delete_project(project_id: str, background_tasks: BackgroundTasks,
                         workspace: QuotationWorkspace = Depends(get_workspace)):
    if not workspace.projects.delete_project(project_id):
        raise HTTPException(status_code=404, detail=f"Project '{project_id}' not found")
    background_tasks.add_task(workspace.remote.drain)
    return {"deleted": project_id}


@router.post("/{project_id}/duplicate")
async def duplicate_project(project_id: str, background_tasks: BackgroundTasks,
                            workspace: QuotationWorkspace = Depends(get_workspace)):
    project = workspace.projects.duplicate_project(project_id)
    if not project:
        raise HTTPException(status_code=404, detail=f"Project '{project_id}' not found")
    background_tasks.add_task(workspace.remote.drain)
    return _project_out(project)


# Versions

@router.get("/{project_id}/versions/{version_id}/proposed-name")
async def propose_version_name(project_id: str, version_id: str,
                               workspace: QuotationWorkspace = Depends(get_workspace)):
    """Name a duplicate of this version would get."""
    version = _require_version(workspace, project_id, version_id)
    return {"name": workspace.projects.propose_version_name(project_id, version.name)}


@router.post("/{project_id}/versions")
async def create_version(project_id: str, req: VersionCreate, background_tasks: BackgroundTasks,
                         workspace: QuotationWorkspace = Depends(get_workspace)):
    """Duplicate a version with its snapshot and line items."""
    _require_version(workspace, project_id, req.source_version_id)
    version = workspace.projects.create_version(project_id, req.source_version_id, req.name)
    background_tasks.add_task(workspace.remote.drain)
    return _version_out(version)


@router.put("/{project_id}/versions/{version_id}")
async def rename_version(project_id: str, version_id: str, req: VersionRename,
                         background_tasks: BackgroundTasks,
                         workspace: QuotationWorkspace = Depends(get_workspace)):
    _require_version(workspace, project_id, version_id)
    version = workspace.projects.rename_version(project_id, version_id, req.name)
    if not version:
        raise HTTPException(status_code=400, detail="Version name is required")
    background_tasks.add_task(workspace.remote.drain)
    return _version_out(version)


@router.delete("/{project_id}/versions/{version_id}")
async def delete_version(project_id: str, version_id: str, background_tasks: BackgroundTasks,
                         workspace: QuotationWorkspace = Depends(get_workspace)):
    _require_version(workspace, project_id, version_id)
    if not workspace.projects.delete_version(project_id, version_id):
        raise HTTPException(status_code=400, detail="A project must keep at least one version")
    background_tasks.add_task(workspace.remote.drain)
    return {"deleted": version_id}


@router.get("/{project_id}/versions/{version_id}/snapshot")
async def get_snapshot(project_id: str, version_id: str,
                       workspace: QuotationWorkspace = Depends(get_workspace)):
    """The version's frozen copy of the catalog."""
    return jsonable_encoder(_require_version(workspace, project_id, version_id).master_snapshot)


@router.post("/{project_id}/versions/{version_id}/resync")
async def resync_version(project_id: str, version_id: str, req: ResyncRequest,
                         background_tasks: BackgroundTasks,
                         workspace: QuotationWorkspace = Depends(get_workspace)):
    """Pull the live catalog pricing into this version."""
    _require_version(workspace, project_id, version_id)
    changed = workspace.projects.resync_from_catalog(project_id, version_id, req.master_ids)
    background_tasks.add_task(workspace.remote.drain)
    return {"lines_updated": changed}


# Line items

@router.get("/{project_id}/versions/{version_id}/lines")
async def list_lines(project_id: str, version_id: str,
                     workspace: QuotationWorkspace = Depends(get_workspace)):
    _require_version(workspace, project_id, version_id)
    return jsonable_encoder(workspace.projects.lines_for(project_id, version_id))


@router.post("/{project_id}/versions/{version_id}/lines")
async def add_custom_line(project_id: str, version_id: str, line_data: LineCreate,
                          background_tasks: BackgroundTasks,
                          workspace: QuotationWorkspace = Depends(get_workspace)):
    """Add a line that is not linked to the catalog."""
    _require_version(workspace, project_id, version_id)
    if line_data.qty <= 0:
        raise HTTPException(status_code=400, detail="Quantity must be greater than zero")
    line = workspace.projects.add_custom_item(project_id, version_id, line_data.model_dump())
    background_tasks.add_task(workspace.remote.drain)
    return jsonable_encoder(line)


@router.patch("/{project_id}/versions/{version_id}/lines/{line_id}")
async def update_line(project_id: str, version_id: str, line_id: str, req: LineFieldUpdate,
                      background_tasks: BackgroundTasks,
                      workspace: QuotationWorkspace = Depends(get_workspace)):
    """Edit one field of a line; a quantity of zero removes it."""
    _require_line(workspace, project_id, version_id, line_id)
    line = workspace.projects.update_line_field(line_id, req.field, req.value)
    background_tasks.add_task(workspace.remote.drain)
    if line is None:
        workspace.quotation_edits.drop(line_id)
        return {"deleted": line_id}
    return jsonable_encoder(line)


@router.delete("/{project_id}/versions/{version_id}/lines/{line_id}")
async def remove_line(project_id: str, version_id: str, line_id: str,
                      background_tasks: BackgroundTasks,
                      workspace: QuotationWorkspace = Depends(get_workspace)):
    _require_line(workspace, project_id, version_id, line_id)
    workspace.remove_line(line_id)
    background_tasks.add_task(workspace.remote.drain)
    return {"deleted": line_id}


@router.post("/{project_id}/versions/{version_id}/lines/reorder")
async def reorder_lines(project_id: str, version_id: str, req: ReorderRequest,
                        background_tasks: BackgroundTasks,
                        workspace: QuotationWorkspace = Depends(get_workspace)):
    _require_version(workspace, project_id, version_id)
    if not workspace.projects.reorder_lines(project_id, version_id,
                                            req.source_index, req.destination_index):
        raise HTTPException(status_code=400, detail="Line index out of range")
    background_tasks.add_task(workspace.remote.drain)
    return jsonable_encoder(workspace.projects.lines_for(project_id, version_id))


@router.post("/{project_id}/versions/{version_id}/sync")
async def sync_quantity(project_id: str, version_id: str, req: SyncRequest,
                        background_tasks: BackgroundTasks,
                        workspace: QuotationWorkspace = Depends(get_workspace)):
    """Insert, update or remove the line for a catalog item from its quantity."""
    _require_version(workspace, project_id, version_id)
    action = workspace.sync.sync_by_id(project_id, version_id, req.master_id, req.qty)
    background_tasks.add_task(workspace.remote.drain)
    return {
        "action": action.value,
        "qty": workspace.sync.quantity_for(project_id, version_id, req.master_id),
    }


# Quotation figures

@router.get("/{project_id}/versions/{version_id}/totals")
async def get_totals(project_id: str, version_id: str,
                     workspace: QuotationWorkspace = Depends(get_workspace)):
    _require_version(workspace, project_id, version_id)
    return jsonable_encoder(workspace.projects.totals(project_id, version_id))


@router.get("/{project_id}/versions/{version_id}/summary")
async def get_summary(project_id: str, version_id: str,
                      workspace: QuotationWorkspace = Depends(get_workspace)):
    """Cost and gross-profit figures per line and for the version."""
    _require_version(workspace, project_id, version_id)
    return jsonable_encoder(workspace.projects.summary(project_id, version_id))


@router.get("/{project_id}/versions/{version_id}/render-rows")
async def get_render_rows(project_id: str, version_id: str,
                          workspace: QuotationWorkspace = Depends(get_workspace)):
    """Ordered rows for the printable quotation."""
    _require_version(workspace, project_id, version_id)
    return jsonable_encoder(workspace.projects.render_rows(project_id, version_id))
