"""Ledger module."""

from .client import (
    CONTRACT_ABI,
    ILedger,
    LedgerAgent,
    LedgerEvent,
    LedgerTask,
    TxReceipt,
    Web3Ledger,
)
from .adapter import LedgerEventAdapter
from .listener import LedgerEventListener

__all__ = [
    "CONTRACT_ABI",
    "ILedger",
    "LedgerAgent",
    "LedgerEvent",
    "LedgerEventAdapter",
    "LedgerEventListener",
    "LedgerTask",
    "TxReceipt",
    "Web3Ledger",
]
