"""Tracker module."""

from .tracker import LEDGER_EVENT, TASK_TRANSITION, ITracker, Tracker

__all__ = ["ITracker", "LEDGER_EVENT", "TASK_TRANSITION", "Tracker"]
