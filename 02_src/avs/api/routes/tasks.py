"""Task API routes."""

from decimal import Decimal
from typing import Any

from fastapi import APIRouter, Query
from pydantic import BaseModel, Field

from ...app import Application
from .observability import TraceEventResponse, trace_event_body


class TaskRequest(BaseModel):
    """Request model for creating a task."""

    creator: str
    task_type: str
    task_data: Any = None
    payment: Decimal = Field(default=Decimal(0), ge=0)
    dispatch: bool = True


class ExecuteRequest(BaseModel):
    """Request model for running a task on a user's agent."""

    task_type: str
    task_data: Any = None
    payment: Decimal = Field(default=Decimal(0), ge=0)


class AssignRequest(BaseModel):
    agent: str
    reassign: bool = False


class ResultRequest(BaseModel):
    """Signed result reported by the assigned agent."""

    signature: str
    result: Any = None
    result_ref: str | None = None


class RetryRequest(BaseModel):
    resubmit: bool = False


class TaskResponse(BaseModel):
    """Response model for task."""

    id: str
    ledger_id: int | None
    creator: str
    task_type: str
    task_data: Any
    payment: str
    status: str
    assigned_agent: str | None
    signature: str | None
    result: Any
    result_ref: str | None
    validation: dict[str, Any] | None
    proof: dict[str, Any] | None
    finalization: dict[str, Any] | None
    attempt: int
    history: list[dict[str, Any]]
    last_error: dict[str, Any] | None
    agent_response: Any
    version: int
    created_at: str
    last_updated: str


def create_tasks_router(app: Application) -> APIRouter:
    """Create tasks router."""
    router = APIRouter(prefix="/api", tags=["tasks"])

    @router.post("/tasks", response_model=TaskResponse, status_code=201)
    async def create_task(request: TaskRequest) -> dict:
        """Create a task and, unless told otherwise, dispatch it to an agent."""
        if request.dispatch:
            task = await app.dispatcher.create_and_dispatch(
                request.creator, request.task_type, request.task_data, request.payment
            )
        else:
            task = await app.registry.create(
                request.creator, request.task_type, request.task_data, request.payment
            )
        return task.to_dict()

    @router.get("/tasks", response_model=list[TaskResponse])
    async def list_tasks(
        status: str | None = Query(None, description="Filter by status"),
    ) -> list[dict]:
        tasks = await app.registry.list_tasks()
        return [task.to_dict() for task in tasks if not status or task.status.value == status]

    @router.get("/tasks/{task_id}", response_model=TaskResponse)
    async def get_task(task_id: str) -> dict:
        return (await app.registry.get(task_id)).to_dict()

    @router.get("/tasks/{task_id}/history", response_model=list[TraceEventResponse])
    async def get_task_history(task_id: str) -> list[dict]:
        """Audit trail of one task, oldest first."""
        await app.registry.get(task_id)
        return [trace_event_body(e) for e in await app.tracker.task_history(task_id)]

    @router.post("/tasks/{task_id}/assign", response_model=TaskResponse)
    async def assign_task(task_id: str, request: AssignRequest) -> dict:
        if request.reassign:
            task = await app.dispatcher.reassign(task_id, request.agent)
        else:
            task = await app.dispatcher.assign(task_id, request.agent)
        return task.to_dict()

    @router.post("/tasks/{task_id}/result", response_model=TaskResponse)
    async def submit_result(task_id: str, request: ResultRequest) -> dict:
        task = await app.registry.record_result(
            task_id, request.signature, result_ref=request.result_ref, result=request.result
        )
        return task.to_dict()

    @router.post("/tasks/{task_id}/validate", response_model=TaskResponse)
    async def validate_task(task_id: str) -> dict:
        return (await app.validation.validate(task_id)).to_dict()

    @router.post("/tasks/{task_id}/retry", response_model=TaskResponse)
    async def retry_task(task_id: str, request: RetryRequest | None = None) -> dict:
        resubmit = request.resubmit if request else False
        return (await app.registry.retry(task_id, resubmit=resubmit)).to_dict()

    @router.post(
        "/users/{user_id}/agents/{agent_id}/execute",
        response_model=TaskResponse,
        status_code=201,
    )
    async def execute_for_user(user_id: str, agent_id: str, request: ExecuteRequest) -> dict:
        """Run a task on an agent the user registered."""
        task = await app.dispatcher.execute_for_user(
            user_id, agent_id, request.task_type, request.task_data, request.payment
        )
        return task.to_dict()

    return router
