"""
Ritual — recurring AI tasks described in plain words.

Public API:
    from ritual import parse, next_occurrence, reconcile, TaskService
"""

__version__ = "0.1.0"

# Core
from ritual.core.config import RitualConfig
from ritual.core.errors import (
    BackendUnavailable,
    InvalidRecurrence,
    InvalidWeekday,
    NotFound,
    RitualError,
    ScheduleError,
    StorageError,
    UnrecognizedSchedule,
)

# Schedules
from ritual.schedule.parser import ParsedSchedule, next_occurrence, parse

# Tasks
from ritual.tasks.task import ExecutionLog, ExecutionStatus, Task, TaskStatus
from ritual.tasks.service import TaskResult, TaskService

# Synchronization
from ritual.backend.base import JobHandle, JobPayload, RecurringJobBackend
from ritual.sync.plan import SideEffectPlan, reconcile
from ritual.sync.executor import PlanExecutor, SyncResult

__all__ = [
    # Core
    "RitualConfig",
    "RitualError",
    "ScheduleError",
    "UnrecognizedSchedule",
    "InvalidWeekday",
    "InvalidRecurrence",
    "BackendUnavailable",
    "StorageError",
    "NotFound",
    # Schedules
    "ParsedSchedule",
    "parse",
    "next_occurrence",
    # Tasks
    "Task",
    "TaskStatus",
    "ExecutionLog",
    "ExecutionStatus",
    "TaskService",
    "TaskResult",
    # Synchronization
    "RecurringJobBackend",
    "JobHandle",
    "JobPayload",
    "SideEffectPlan",
    "reconcile",
    "PlanExecutor",
    "SyncResult",
]
