"""
Catalog API - FastAPI router for master items and staged catalog edits.
"""
from typing import Any, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel

from ..engine.models import PRICE_FIELDS
from ..engine.resolver import coerce_price_field
from ..services.workspace import QuotationWorkspace
from .state import get_workspace

router = APIRouter(prefix="/api/catalog", tags=["catalog"])


# Pydantic models for API
class PriceFieldPayload(BaseModel):
    """A price field as sent by the client."""
    value: float = 0.0
    strategy: str = "MANUAL"
    manual_override: Optional[float] = 0.0


class ItemCreate(BaseModel):
    """Request model for adding a catalog item."""
    item_name: str
    category: Optional[str] = None
    description: str = ""
    uom: Optional[str] = None
    brand: str = ""
    axsku: str = ""
    mpn: str = ""
    group: str = ""
    fob_cost: float = 0.0
    forex_rate: float = 1.0
    tax_multiplier: float = 1.0
    operational_adjustment: float = 0.97
    cost: Optional[PriceFieldPayload] = None
    selling_price: Optional[PriceFieldPayload] = None
    retail_selling_price: Optional[PriceFieldPayload] = None


class ItemUpdate(BaseModel):
    """Request model for updating a catalog item."""
    item_name: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    uom: Optional[str] = None
    brand: Optional[str] = None
    axsku: Optional[str] = None
    mpn: Optional[str] = None
    group: Optional[str] = None
    fob_cost: Optional[float] = None
    forex_rate: Optional[float] = None
    tax_multiplier: Optional[float] = None
    operational_adjustment: Optional[float] = None
    cost: Optional[PriceFieldPayload] = None
    selling_price: Optional[PriceFieldPayload] = None
    retail_selling_price: Optional[PriceFieldPayload] = None


class StageRequest(BaseModel):
    """Request model for staging one field edit."""
    item_id: str
    field: str
    value: Any = None


def _fields(payload: BaseModel) -> dict:
    data = payload.model_dump(exclude_unset=True)
    for name in PRICE_FIELDS:
        if data.get(name) is not None:
            data[name] = coerce_price_field(data[name])
        else:
            data.pop(name, None)
    return data


# Endpoints

@router.get("")
async def list_items(search: Optional[str] = None, category: Optional[str] = None,
                     workspace: QuotationWorkspace = Depends(get_workspace)):
    """List active catalog items, optionally filtered."""
    return jsonable_encoder(workspace.catalog.filtered(search=search, category=category))


@router.get("/categories")
async def list_categories(workspace: QuotationWorkspace = Depends(get_workspace)):
    return workspace.catalog.categories()


@router.get("/strategies")
async def list_strategies(workspace: QuotationWorkspace = Depends(get_workspace)):
    """Strategy ids and labels for each price field."""
    return workspace.catalog.resolver.strategies.options()


@router.get("/edits")
async def list_pending_edits(workspace: QuotationWorkspace = Depends(get_workspace)):
    """Pending catalog edits keyed by item id."""
    edits = workspace.catalog_edits
    return jsonable_encoder({item_id: edits.pending(item_id) for item_id in edits.pending_ids})


@router.post("/edits")
async def stage_edit(req: StageRequest, workspace: QuotationWorkspace = Depends(get_workspace)):
    """Stage a field change; derived prices are recomputed into the pending edit."""
    if req.item_id not in workspace.catalog:
        raise HTTPException(status_code=404, detail=f"Item '{req.item_id}' not found")
    delta = workspace.catalog_edits.stage(req.item_id, req.field, req.value)
    if delta is None:
        raise HTTPException(status_code=400, detail=f"Field '{req.field}' cannot be edited")
    return jsonable_encoder(delta)


@router.post("/edits/commit")
async def commit_edits(background_tasks: BackgroundTasks,
                       workspace: QuotationWorkspace = Depends(get_workspace)):
    committed = workspace.catalog_edits.commit()
    background_tasks.add_task(workspace.remote.drain)
    return {"committed": committed}


@router.post("/edits/discard")
async def discard_edits(workspace: QuotationWorkspace = Depends(get_workspace)):
    return {"discarded": workspace.catalog_edits.discard()}


@router.get("/{item_id}")
async def get_item(item_id: str, workspace: QuotationWorkspace = Depends(get_workspace)):
    """Get a single catalog item by ID."""
    item = workspace.catalog.get(item_id)
    if not item:
        raise HTTPException(status_code=404, detail=f"Item '{item_id}' not found")
    return jsonable_encoder(item)


@router.get("/{item_id}/trace")
async def get_item_trace(item_id: str, workspace: QuotationWorkspace = Depends(get_workspace)):
    """Step-by-step pricing resolution for an item."""
    item = workspace.catalog.get(item_id)
    if not item:
        raise HTTPException(status_code=404, detail=f"Item '{item_id}' not found")
    resolved = workspace.catalog.resolver.resolve(item.to_dict())
    return {
        "item_id": item_id,
        "trace": resolved.get_trace_text(),
        "warnings": resolved.warnings,
    }


@router.post("")
async def create_item(item_data: ItemCreate, background_tasks: BackgroundTasks,
                      workspace: QuotationWorkspace = Depends(get_workspace)):
    """Add a catalog item; derived prices are resolved before it is stored."""
    if not item_data.item_name.strip():
        raise HTTPException(status_code=400, detail="Item name is required")
    item = workspace.add_master_item(_fields(item_data))
    background_tasks.add_task(workspace.remote.drain)
    return jsonable_encoder(item)


@router.put("/{item_id}")
async def update_item(item_id: str, updates: ItemUpdate, background_tasks: BackgroundTasks,
                      workspace: QuotationWorkspace = Depends(get_workspace)):
    """Update a catalog item directly (bypassing the staged edits)."""
    fields = _fields(updates)
    if not fields:
        raise HTTPException(status_code=400, detail="No fields to update")
    item = workspace.catalog.update(item_id, fields)
    if not item:
        raise HTTPException(status_code=404, detail=f"Item '{item_id}' not found")
    background_tasks.add_task(workspace.remote.drain)
    return jsonable_encoder(item)


@router.delete("/{item_id}")
async def delete_item(item_id: str, background_tasks: BackgroundTasks,
                      workspace: QuotationWorkspace = Depends(get_workspace)):
    """Soft-delete a catalog item."""
    if not workspace.delete_master_item(item_id):
        raise HTTPException(status_code=404, detail=f"Item '{item_id}' not found")
    background_tasks.add_task(workspace.remote.drain)
    return {"deleted": item_id}
