from pydantic import BaseModel
from typing import Optional, Literal
from datetime import datetime

WorkflowType = Literal["topic", "specific-vocabulary"]
WorkflowStatus = Literal["pending", "completed", "failed"]


class WorkflowRecord(BaseModel):
    id: str
    type: WorkflowType
    status: WorkflowStatus = "pending"
    label: str
    message: Optional[str] = None
    created_at: datetime
    resolved_at: Optional[datetime] = None


class WorkflowCreate(BaseModel):
    id: Optional[str] = None
    type: WorkflowType
    label: str


class WorkflowResolve(BaseModel):
    status: Literal["completed", "failed"]
    message: Optional[str] = None
