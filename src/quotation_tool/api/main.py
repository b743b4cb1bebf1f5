from fastapi import BackgroundTasks, Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from quotation_tool import __version__
from quotation_tool.api.catalog_api import router as catalog_router
from quotation_tool.api.projects_api import router as projects_router
from quotation_tool.api.state import get_workspace
from quotation_tool.config.settings import get_settings
from quotation_tool.persistence.remote import OpState
from quotation_tool.services.workspace import QuotationWorkspace

app = FastAPI(
    title="Quotation Tool API",
    description="Backend API for the catalog, project versions and quotations",
    version=__version__
)

# Enable CORS for frontend development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(catalog_router)
app.include_router(projects_router)


@app.get("/")
async def root():
    return {"status": "online", "message": "Quotation Tool API Active"}


@app.get("/system/status")
async def get_status(workspace: QuotationWorkspace = Depends(get_workspace)):
    status = workspace.status()
    status["failed_remote_ops"] = sum(1 for op in workspace.remote.history if op.state == OpState.FAILED)
    status["currency"] = get_settings().currency_symbol
    return status


@app.post("/api/save-all")
async def save_all(background_tasks: BackgroundTasks,
                   workspace: QuotationWorkspace = Depends(get_workspace)):
    """Commit staged catalog and quotation edits together."""
    committed = workspace.save_all()
    background_tasks.add_task(workspace.remote.drain)
    return {"committed": committed}


@app.post("/api/discard-all")
async def discard_all(workspace: QuotationWorkspace = Depends(get_workspace)):
    return {"discarded": workspace.discard_all()}
