"""Synchronization core for the germination and pollination tracker."""

from .api import LabApi, LabApiClient
from .config import ConfigError, TrackerConfig, load_config
from .debounce import DebounceScheduler
from .exceptions import (
    LabApiError,
    PropagationTrackerError,
    ReconcileError,
    TransitionError,
    TransitionInProgressError,
)
from .forms import FormSession
from .generation import GenerationGuard
from .models import (
    EntityKind,
    EntityRef,
    EntityStatus,
    FieldRequest,
    NotificationFilters,
    PredictionInput,
    PredictionResult,
    SummaryRecord,
    SyncMap,
    ValidationResult,
)
from .notifications import NotificationFeed
from .prediction import PredictionPipeline
from .reconciler import (
    ReconcileReport,
    RecordReconciler,
    effective_status,
    is_confirmed_finalized,
    is_degraded,
    is_finalized,
    is_pending,
    partition,
)
from .transitions import StatusTransitionCoordinator
from .validation import FieldValidationPipeline

__all__ = [
    "ConfigError",
    "DebounceScheduler",
    "EntityKind",
    "EntityRef",
    "EntityStatus",
    "FieldRequest",
    "FieldValidationPipeline",
    "FormSession",
    "GenerationGuard",
    "LabApi",
    "LabApiClient",
    "LabApiError",
    "NotificationFeed",
    "NotificationFilters",
    "PredictionInput",
    "PredictionPipeline",
    "PredictionResult",
    "PropagationTrackerError",
    "ReconcileError",
    "ReconcileReport",
    "RecordReconciler",
    "StatusTransitionCoordinator",
    "SummaryRecord",
    "SyncMap",
    "TrackerConfig",
    "TransitionError",
    "TransitionInProgressError",
    "ValidationResult",
    "effective_status",
    "is_confirmed_finalized",
    "is_degraded",
    "is_finalized",
    "is_pending",
    "load_config",
    "partition",
]

__version__ = "0.1.0"
