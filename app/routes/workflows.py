from typing import List

from fastapi import APIRouter, HTTPException, Query

from app.schemas.workflow import WorkflowCreate, WorkflowRecord, WorkflowResolve
from app.services.workflow_service import workflow_store

router = APIRouter(prefix="/api", tags=["workflows"])


@router.post("/workflows", response_model=WorkflowRecord)
async def create_workflow(request: WorkflowCreate):
    return workflow_store.create(request.type, request.label, workflow_id=request.id)


@router.get("/workflows", response_model=List[WorkflowRecord])
async def recent_workflows():
    return workflow_store.recent()


@router.post("/workflows/{workflow_id}/resolve", response_model=WorkflowRecord)
async def resolve_workflow(workflow_id: str, request: WorkflowResolve):
    """Отмечает workflow завершенным или упавшим (вызывает фоновая задача)"""
    record = workflow_store.update(workflow_id, request.status, request.message)
    if record is None:
        raise HTTPException(status_code=404, detail="Workflow not found")
    return record


@router.get("/workflow-status", response_model=WorkflowRecord)
async def workflow_status(id: str = Query(...)):
    record = workflow_store.get(id)
    if record is None:
        raise HTTPException(status_code=404, detail="Workflow not found")
    return record
