"""
Status of background content workflows (topic / vocabulary generation)
"""
import asyncio
import logging
import time
import uuid
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, List, NamedTuple, Optional

import httpx

from app.config import get_settings
from app.schemas.workflow import WorkflowRecord

logger = logging.getLogger(__name__)
settings = get_settings()


class WorkflowPollResult(NamedTuple):
    status: str
    message: Optional[str]


class WorkflowStore:
    """In-memory workflow records; records older than max_age are dropped on create"""

    def __init__(self, max_age_seconds: float = 1800.0, clock: Callable[[], datetime] = datetime.now):
        self.max_age = timedelta(seconds=max_age_seconds)
        self.clock = clock
        self._records: Dict[str, WorkflowRecord] = {}

    def create(self, workflow_type: str, label: str, workflow_id: Optional[str] = None) -> WorkflowRecord:
        record = WorkflowRecord(
            id=workflow_id or uuid.uuid4().hex,
            type=workflow_type,
            status="pending",
            label=label,
            created_at=self.clock(),
        )
        self._records[record.id] = record
        self._cleanup()
        return record

    def get(self, workflow_id: str) -> Optional[WorkflowRecord]:
        return self._records.get(workflow_id)

    def update(self, workflow_id: str, status: str, message: Optional[str] = None) -> Optional[WorkflowRecord]:
        record = self._records.get(workflow_id)
        if record is None:
            return None
        record = record.model_copy(update={"status": status, "message": message, "resolved_at": self.clock()})
        self._records[workflow_id] = record
        return record

    def recent(self) -> List[WorkflowRecord]:
        return sorted(self._records.values(), key=lambda r: r.created_at, reverse=True)

    def _cleanup(self):
        now = self.clock()
        for workflow_id in [wid for wid, r in self._records.items() if now - r.created_at > self.max_age]:
            del self._records[workflow_id]


workflow_store = WorkflowStore(max_age_seconds=settings.WORKFLOW_MAX_AGE_SECONDS)


class WorkflowStatusClient:
    """GET /api/workflow-status?id=... ; None если сервер не знает workflow (404)"""

    def __init__(self, base_url: str, client: Optional[httpx.AsyncClient] = None, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self._client = client
        self.timeout = timeout

    async def __call__(self, workflow_id: str) -> Optional[dict]:
        if self._client is not None:
            return await self._fetch(self._client, workflow_id)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await self._fetch(client, workflow_id)

    async def _fetch(self, client: httpx.AsyncClient, workflow_id: str) -> Optional[dict]:
        response = await client.get(f"{self.base_url}/api/workflow-status", params={"id": workflow_id})
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.json()


async def poll_workflow(
    fetch_status: Callable[[str], Awaitable[Optional[dict]]],
    workflow_id: str,
    interval: float = 3.0,
    timeout: float = 600.0,
    cancel_event: Optional[asyncio.Event] = None,
    clock: Callable[[], float] = time.monotonic
) -> Optional[WorkflowPollResult]:
    """
    Опрашивает статус workflow с фиксированным интервалом

    Останавливается на конечном статусе, по таймауту (failed "Workflow timed out"),
    на 404 (failed "Status lost (server restarted)") или при cancel_event.
    Сетевые ошибки не прерывают опрос.

    Returns:
        WorkflowPollResult или None при отмене
    """
    started = clock()

    while True:
        if cancel_event is not None and cancel_event.is_set():
            return None
        if clock() - started > timeout:
            return WorkflowPollResult("failed", "Workflow timed out")

        try:
            data = await fetch_status(workflow_id)
        except (httpx.HTTPError, ValueError) as e:
            logger.debug("Workflow %s status poll failed, retrying: %s", workflow_id, e)
        else:
            if data is None:
                return WorkflowPollResult("failed", "Status lost (server restarted)")
            status = data.get("status")
            if status and status != "pending":
                return WorkflowPollResult(status, data.get("message"))

        if cancel_event is None:
            await asyncio.sleep(interval)
            continue
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=interval)
        except asyncio.TimeoutError:
            continue
        return None
