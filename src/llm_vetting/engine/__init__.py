"""Job scheduling and run history."""

from llm_vetting.engine.history import RunHistory
from llm_vetting.engine.scheduler import Job, RunEngine, RunStatus

__all__ = [
    "Job",
    "RunEngine",
    "RunHistory",
    "RunStatus",
]
