"""Wizard engine and its session state."""

from formknobs.engine.autosave import AutosaveScheduler
from formknobs.engine.history import HistoryEntry, StateHistory
from formknobs.engine.state import WizardSessionState
from formknobs.engine.wizard import EXPORT_FORMAT_VERSION, DraftSnapshot, WizardEngine

__all__ = [
    "EXPORT_FORMAT_VERSION",
    "AutosaveScheduler",
    "DraftSnapshot",
    "HistoryEntry",
    "StateHistory",
    "WizardEngine",
    "WizardSessionState",
]
