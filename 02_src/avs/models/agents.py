"""Agent-related data models."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from .common import from_iso, to_decimal, to_iso, utcnow

DEFAULT_REPUTATION = 100


@dataclass
class Agent:
    """An external actor registered to perform tasks."""

    address: str
    metadata: dict = field(default_factory=dict)  # name, description, skillList, ...
    is_active: bool = True
    reputation: int = DEFAULT_REPUTATION
    registered_at: datetime = field(default_factory=utcnow)
    version: int = 0  # bumped by storage on every write

    @property
    def key(self) -> str:
        """Store key: addresses compare case-insensitively."""
        return self.address.lower()

    @property
    def supported_task_types(self) -> list[str] | None:
        """Declared task types, or None when the agent declares none."""
        for name in ("skillList", "taskTypes"):
            value = self.metadata.get(name)
            if value:
                return [str(item) for item in value]
        return None

    @property
    def callback_url(self) -> str | None:
        return self.metadata.get("callEndpointUrl") or self.metadata.get("endpoint")

    def supports(self, task_type: str) -> bool:
        supported = self.supported_task_types
        return supported is None or task_type in supported

    def to_dict(self) -> dict:
        return {
            "address": self.address,
            "metadata": self.metadata,
            "is_active": self.is_active,
            "reputation": self.reputation,
            "registered_at": to_iso(self.registered_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Agent":
        return cls(
            address=data["address"],
            metadata=data.get("metadata") or {},
            is_active=bool(data.get("is_active", True)),
            reputation=int(data.get("reputation", DEFAULT_REPUTATION)),
            registered_at=from_iso(data.get("registered_at")) or utcnow(),
        )


@dataclass
class Allowance:
    """Spending allowance a user granted to an agent."""

    user_id: str
    agent_id: str
    allowance: Decimal

    def __post_init__(self) -> None:
        self.allowance = to_decimal(self.allowance)
