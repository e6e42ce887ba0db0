"""Task and agent validation pipeline."""

from .agents import AgentDirectory, IAgentDirectory, IAgentMatcher, ReputationMatcher
from .app import Application, IApplication
from .attestation import AttestationPipeline
from .config import Settings
from .event_bus import EventBus, IEventBus
from .ledger import ILedger, LedgerEventAdapter, LedgerEventListener, Web3Ledger
from .models import (
    Agent,
    BusMessage,
    Proof,
    Task,
    TaskStatus,
    Topic,
    TraceEvent,
    ValidationResult,
)
from .signature import ISignatureVerifier, SignatureVerifier, Signer
from .storage import IStorage, Storage
from .tasks import TaskRegistry
from .tasks.dispatch import TaskDispatcher
from .tracker import ITracker, Tracker
from .validation import ValidationPolicy, ValidationService

__all__ = [
    # Application
    "Application",
    "IApplication",
    "Settings",
    # Models
    "Agent",
    "Task",
    "TaskStatus",
    "ValidationResult",
    "Proof",
    "BusMessage",
    "Topic",
    "TraceEvent",
    # Components
    "IStorage",
    "Storage",
    "IEventBus",
    "EventBus",
    "ITracker",
    "Tracker",
    "IAgentDirectory",
    "AgentDirectory",
    "IAgentMatcher",
    "ReputationMatcher",
    "TaskRegistry",
    "TaskDispatcher",
    "ISignatureVerifier",
    "SignatureVerifier",
    "Signer",
    "ValidationPolicy",
    "ValidationService",
    "AttestationPipeline",
    "ILedger",
    "Web3Ledger",
    "LedgerEventAdapter",
    "LedgerEventListener",
]
