"""Task runtime — models, recurrence, execution, logging, and batch orchestration."""

from stms.scheduler.executor import TaskExecutor
from stms.scheduler.log_store import LogStore
from stms.scheduler.models import ExecutionLog, ExecutionResult, RecurrenceRule, Task
from stms.scheduler.orchestrator import BatchReport, ScheduleOrchestrator
from stms.scheduler.recorder import ExecutionLogRecorder
from stms.scheduler.store import TaskStore

__all__ = [
    "BatchReport",
    "ExecutionLog",
    "ExecutionLogRecorder",
    "ExecutionResult",
    "LogStore",
    "RecurrenceRule",
    "ScheduleOrchestrator",
    "Task",
    "TaskExecutor",
    "TaskStore",
]
