"""External collaborators: content storage, price oracle, agent callbacks."""

from .callbacks import AgentCallbackClient, IAgentCallbacks
from .content_store import (
    IContentStore,
    InMemoryContentStore,
    PinataContentStore,
    is_content_ref,
)
from .oracle import HttpPriceOracle, IPriceOracle

__all__ = [
    "AgentCallbackClient",
    "IAgentCallbacks",
    "IContentStore",
    "InMemoryContentStore",
    "PinataContentStore",
    "is_content_ref",
    "HttpPriceOracle",
    "IPriceOracle",
]
