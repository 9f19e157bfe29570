"""
Pipeline package -- visa requirement refresh pipeline.

Re-exports key entry points so callers can do::

    from pipeline import RunExecutor, plan_queue, import_dataset
"""

from pipeline.executor import RunExecutor
from pipeline.planner import plan_queue
from pipeline.seed_import import import_dataset

__all__ = [
    "RunExecutor",
    "plan_queue",
    "import_dataset",
]
