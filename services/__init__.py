"""Services for the task analytics engine."""

from .task_store import FileTaskStore, TaskStore, TaskStoreError
from .chart_service import ChartService
from .analysis_service import AnalysisService
from .schedule_service import ScheduleSession

__all__ = ["FileTaskStore", "TaskStore", "TaskStoreError", "ChartService", "AnalysisService", "ScheduleSession"]
