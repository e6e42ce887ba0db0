"""Agent and allowance API routes."""

from decimal import Decimal
from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel, Field

from ...app import Application


class AgentRequest(BaseModel):
    """Request model for registering an agent."""

    address: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True
    reputation: int | None = None


class AgentResponse(BaseModel):
    """Response model for agent."""

    address: str
    metadata: dict[str, Any]
    is_active: bool
    reputation: int
    registered_at: str


class AllowanceRequest(BaseModel):
    """Request model for registering an agent for a user."""

    agent_id: str
    allowance: Decimal = Field(ge=0)


class UserAgentResponse(BaseModel):
    agent: AgentResponse
    allowance: str


class ReceiptResponse(BaseModel):
    tx_hash: str
    block_number: int | None = None


def create_agents_router(app: Application) -> APIRouter:
    """Create agents router."""
    router = APIRouter(prefix="/api", tags=["agents"])

    @router.get("/agents", response_model=list[AgentResponse])
    async def list_agents() -> list[dict]:
        return [agent.to_dict() for agent in await app.directory.list_agents()]

    @router.get("/agents/{address}", response_model=AgentResponse)
    async def get_agent(address: str) -> dict:
        return (await app.directory.get(address)).to_dict()

    @router.post("/agents", response_model=AgentResponse, status_code=201)
    async def register_agent(request: AgentRequest) -> dict:
        """Create or overwrite an agent record."""
        agent = await app.directory.register(
            request.address,
            request.metadata,
            is_active=request.is_active,
            reputation=request.reputation,
        )
        return agent.to_dict()

    @router.delete("/agents/{address}", status_code=204)
    async def remove_agent(address: str) -> None:
        await app.directory.remove(address)

    @router.post(
        "/users/{user_id}/agents", response_model=UserAgentResponse, status_code=201
    )
    async def register_user_agent(user_id: str, request: AllowanceRequest) -> dict:
        """Record an allowance for an agent on behalf of a user."""
        allowance = await app.directory.set_allowance(
            user_id, request.agent_id, request.allowance
        )
        agent = await app.directory.get(request.agent_id)
        return {"agent": agent.to_dict(), "allowance": str(allowance.allowance)}

    @router.get("/users/{user_id}/agents", response_model=list[UserAgentResponse])
    async def list_user_agents(user_id: str) -> list[dict]:
        return [
            {"agent": agent.to_dict(), "allowance": str(amount)}
            for agent, amount in await app.directory.user_agents(user_id)
        ]

    @router.post("/users/{user_id}/agents/onchain", response_model=ReceiptResponse)
    async def register_user_agent_on_chain(user_id: str, request: AllowanceRequest) -> dict:
        """Register the agent for the user on the ledger, then locally."""
        receipt = await app.dispatcher.register_agent_for_user_on_chain(
            user_id, request.agent_id, request.allowance
        )
        return {"tx_hash": receipt.tx_hash, "block_number": receipt.block_number}

    return router
