"""Observability API routes."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel
from fastapi import APIRouter, HTTPException, Query

from ...app import Application
from ...models import TraceEvent


class TraceEventResponse(BaseModel):
    """Response model for trace event."""

    id: str
    event_type: str
    actor: str
    data: dict[str, Any]
    timestamp: datetime


def trace_event_body(event: TraceEvent) -> dict:
    return {
        "id": event.id,
        "event_type": event.event_type,
        "actor": event.actor,
        "data": event.data,
        "timestamp": event.timestamp.isoformat(),
    }


class HealthResponse(BaseModel):
    status: str
    validator: str
    ledger: bool
    listening: bool


def create_observability_router(app: Application) -> APIRouter:
    """Create observability router."""
    router = APIRouter(tags=["observability"])

    @router.get("/api/trace-events", response_model=list[TraceEventResponse])
    async def get_trace_events(
        after: str | None = Query(None, description="ISO timestamp filter"),
        limit: int = Query(100, ge=1, le=1000),
        event_type: str | None = Query(None, description="Filter by event type"),
        actor: str | None = Query(None, description="Filter by actor"),
        task_id: str | None = Query(None, description="Filter by task id"),
    ) -> list[dict]:
        """Most recent trace events first."""
        try:
            after_dt = datetime.fromisoformat(after) if after else None
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid timestamp: {after}")

        events = await app.storage.get_trace_events(
            after=after_dt,
            event_types=[event_type] if event_type else None,
            actor=actor,
            limit=limit,
            task_id=task_id,
        )
        return [trace_event_body(e) for e in events]

    @router.get("/health", response_model=HealthResponse)
    async def health() -> dict:
        listener = app.listener
        return {
            "status": "ok",
            "validator": app.attestation.validator_identity,
            "ledger": app.ledger is not None,
            "listening": bool(listener and listener.running),
        }

    return router
