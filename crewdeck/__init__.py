# Crew execution console
__version__ = "1.0.0"

from .models import (
    ExecutionStatus,
    ExecutionConfig,
    ExecutionCreate,
    ExecutionMetrics,
    ExecutionRecord,
    ExecutionUpdateEvent,
    ExecutionCompletedEvent,
    ExecutionStoppedEvent,
    LogClassification,
    ObserverLogEntry
)

from .exceptions import (
    CrewDeckError,
    ConfigError,
    ExecutionValidationError,
    ExecutionNotFoundError,
    ExecutionAlreadyStartedError,
    PersistenceError
)

from .config import Settings, RunnerSettings
from .store import ExecutionStore
from .broadcaster import EventBroadcaster, Subscription
from .runner import ExecutionRunner
from .observer import ObserverSession, classify_message

__all__ = [
    "ExecutionStatus",
    "ExecutionConfig",
    "ExecutionCreate",
    "ExecutionMetrics",
    "ExecutionRecord",
    "ExecutionUpdateEvent",
    "ExecutionCompletedEvent",
    "ExecutionStoppedEvent",
    "LogClassification",
    "ObserverLogEntry",
    "CrewDeckError",
    "ConfigError",
    "ExecutionValidationError",
    "ExecutionNotFoundError",
    "ExecutionAlreadyStartedError",
    "PersistenceError",
    "Settings",
    "RunnerSettings",
    "ExecutionStore",
    "EventBroadcaster",
    "Subscription",
    "ExecutionRunner",
    "ObserverSession",
    "classify_message"
]
