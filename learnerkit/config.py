"""
Process-wide execution plan used for parallel prediction.

The plan is read from the environment on first use:

- ``LEARNERKIT_PLAN``: ``sequential`` (default), ``thread`` or ``process``
- ``LEARNERKIT_WORKERS``: number of workers for the thread/process plans
"""

import os
from typing import Literal, Optional

from pydantic import BaseModel, Field


class ExecutionPlan(BaseModel):
    """How independent chunks of work are dispatched."""

    kind: Literal["sequential", "thread", "process"] = Field(
        default="sequential", description="Executor used for chunked work"
    )
    workers: int = Field(default=1, ge=1, description="Number of parallel workers")

    @classmethod
    def from_env(cls) -> "ExecutionPlan":
        """Build a plan from ``LEARNERKIT_PLAN`` and ``LEARNERKIT_WORKERS``."""
        kind = os.getenv("LEARNERKIT_PLAN", "sequential")
        workers = int(os.getenv("LEARNERKIT_WORKERS", os.cpu_count() or 1))
        if kind == "sequential":
            workers = 1
        return cls(kind=kind, workers=workers)

    def nbr_of_workers(self) -> int:
        return 1 if self.kind == "sequential" else self.workers


_plan: Optional[ExecutionPlan] = None


def get_plan() -> ExecutionPlan:
    """Return the active execution plan."""
    global _plan
    if _plan is None:
        _plan = ExecutionPlan.from_env()
    return _plan


def set_plan(kind: Optional[str] = None, workers: Optional[int] = None) -> ExecutionPlan:
    """
    Replace the active execution plan.

    Args:
        kind: ``sequential``, ``thread`` or ``process``
        workers: Number of workers, ignored for the sequential plan

    Returns:
        The previously active plan, so callers can restore it
    """
    global _plan
    previous = get_plan()
    kind = kind or previous.kind
    if workers is None:
        workers = previous.workers if kind != "sequential" else 1
    _plan = ExecutionPlan(kind=kind, workers=workers)
    return previous


def restore_plan(plan: ExecutionPlan) -> None:
    """Reinstate a plan returned by ``set_plan``."""
    global _plan
    _plan = plan


def nbr_of_workers() -> int:
    """Number of workers available under the active plan."""
    return get_plan().nbr_of_workers()
