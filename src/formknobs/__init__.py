"""formknobs: a multi-step form wizard engine.

Validated step navigation, two-tier draft persistence with expiry,
best-effort analytics and error recovery for long forms such as property
listings, land listings and blog posts.

Example:
    ```python
    from formknobs import WizardConfigLoader, WizardEngine, DraftManager

    config = WizardConfigLoader().load("wizards/property.yaml")
    engine = WizardEngine.create(config, user_id="u1", manager=DraftManager.in_memory())
    await engine.start()
    ```
"""

from formknobs.analytics import (
    AnalyticsEvent,
    AnalyticsEventType,
    AnalyticsRecorder,
    HTTPAnalyticsSink,
    InMemoryAnalyticsSink,
)
from formknobs.config import (
    Step,
    WizardConfig,
    WizardConfigLoader,
    WizardKind,
)
from formknobs.drafts import (
    ClientDraftCache,
    Draft,
    DraftManager,
    DraftStore,
    FileKeyValueStorage,
    HTTPDraftBackend,
    InMemoryDraftBackend,
    InMemoryKeyValueStorage,
    SaveOutcome,
    StorageTier,
    generate_draft_id,
)
from formknobs.engine import WizardEngine, WizardSessionState
from formknobs.exceptions import (
    ConfigurationError,
    FormknobsError,
    UnknownDraftTypeError,
)
from formknobs.lifecycle import WizardStatus
from formknobs.recovery import (
    ErrorRecoveryCoordinator,
    ErrorType,
    RecoveryStrategy,
    WizardError,
)
from formknobs.validation import (
    StepValidator,
    ValidationMode,
    ValidationResult,
    ViolationKind,
    format_violation,
)

__version__ = "0.1.0"

__all__ = [
    "AnalyticsEvent",
    "AnalyticsEventType",
    "AnalyticsRecorder",
    "ClientDraftCache",
    "ConfigurationError",
    "Draft",
    "DraftManager",
    "DraftStore",
    "ErrorRecoveryCoordinator",
    "ErrorType",
    "FileKeyValueStorage",
    "FormknobsError",
    "HTTPAnalyticsSink",
    "HTTPDraftBackend",
    "InMemoryAnalyticsSink",
    "InMemoryDraftBackend",
    "InMemoryKeyValueStorage",
    "RecoveryStrategy",
    "SaveOutcome",
    "Step",
    "StepValidator",
    "StorageTier",
    "UnknownDraftTypeError",
    "ValidationMode",
    "ValidationResult",
    "ViolationKind",
    "WizardConfig",
    "WizardConfigLoader",
    "WizardEngine",
    "WizardError",
    "WizardKind",
    "WizardSessionState",
    "WizardStatus",
    "__version__",
    "format_violation",
    "generate_draft_id",
]
