"""Attestation API routes."""

from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel

from ...app import Application
from .tasks import TaskResponse


class ProofResponse(BaseModel):
    """Response model for a stored attestation."""

    taskId: str
    taskType: str
    taskData: Any
    result: Any
    timestamp: int
    operatorId: str
    signature: str
    storageRef: str | None


class VerifyProofRequest(BaseModel):
    """Proof to check; the task's stored proof is used when omitted."""

    proof: dict[str, Any] | None = None


class VerifyProofResponse(BaseModel):
    verified: bool
    task: TaskResponse


class SignatureRequest(BaseModel):
    identity: str
    message: Any
    signature: str


class SignatureResponse(BaseModel):
    valid: bool


def create_attestation_router(app: Application) -> APIRouter:
    """Create attestation router."""
    router = APIRouter(prefix="/api", tags=["attestation"])

    @router.post("/tasks/{task_id}/proof", response_model=ProofResponse, status_code=201)
    async def generate_proof(task_id: str) -> dict:
        return (await app.attestation.generate(task_id)).to_dict()

    @router.post("/tasks/{task_id}/proof/verify", response_model=VerifyProofResponse)
    async def verify_proof(task_id: str, request: VerifyProofRequest | None = None) -> dict:
        proof = request.proof if request and request.proof is not None else None
        if proof is None:
            task = await app.registry.get(task_id)
            proof = task.proof.to_dict() if task.proof else {}
        verified = await app.attestation.verify(task_id, proof)
        task = await app.registry.get(task_id)
        return {"verified": verified, "task": task.to_dict()}

    @router.post("/tasks/{task_id}/finalize", response_model=TaskResponse)
    async def finalize_task(task_id: str) -> dict:
        """Complete the task on the ledger."""
        return (await app.attestation.finalize(task_id)).to_dict()

    @router.post("/tasks/{task_id}/process", response_model=TaskResponse)
    async def process_task(task_id: str) -> dict:
        """Validate, attest and verify a completed task in one call."""
        return (await app.attestation.process(task_id)).to_dict()

    @router.post("/signatures/verify", response_model=SignatureResponse)
    async def verify_signature(request: SignatureRequest) -> dict:
        verifier = app.attestation.verifier
        return {"valid": verifier.verify(request.identity, request.message, request.signature)}

    return router
