"""Wizard configuration model and loaders."""

from formknobs.config.loader import WizardConfigLoader
from formknobs.config.model import (
    DOCUMENT_STEP,
    CrossStepRule,
    DocumentStatus,
    NavigationSettings,
    PersistenceSettings,
    Step,
    WizardConfig,
    WizardKind,
)
from formknobs.config.resolver import resolve_callable, resolve_function

__all__ = [
    "DOCUMENT_STEP",
    "CrossStepRule",
    "DocumentStatus",
    "NavigationSettings",
    "PersistenceSettings",
    "Step",
    "WizardConfig",
    "WizardConfigLoader",
    "WizardKind",
    "resolve_callable",
    "resolve_function",
]
