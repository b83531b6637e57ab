"""
Registry of trained learners that can be used as warm starts.
"""

from typing import Any, Optional, Sequence, Union

import numpy as np
import pandas as pd
from loguru import logger


class HotstartStack:
    """
    Stack of trained learners for hotstarting.

    A stored learner is a candidate for a requesting learner when both share
    the same ``phash``, were trained on a task with the same hash and agree on
    all hyperparameter values except the one tagged ``"hotstart"``. Learners
    with property ``hotstart_forward`` can continue training from a smaller
    value of that parameter (e.g. fewer boosting iterations), learners with
    ``hotstart_backward`` can reduce a larger one.

    Args:
        learners: Trained learners to add
        hotstart_threshold: Candidates with a higher start cost are ignored
    """

    def __init__(self, learners: Union[Any, Sequence[Any], None] = None, hotstart_threshold: Optional[float] = None):
        self.hotstart_threshold = hotstart_threshold
        self.stack = pd.DataFrame({
            "start_learner": pd.Series(dtype=object),
            "task_hash": pd.Series(dtype=object),
            "learner_phash": pd.Series(dtype=object),
        })
        if learners is not None:
            self.add(learners)

    def add(self, learners: Union[Any, Sequence[Any]]) -> "HotstartStack":
        """
        Add trained learners to the stack.

        Learners are stored as copies; their training task backends are
        already dropped during training.
        """
        if not isinstance(learners, (list, tuple)):
            learners = [learners]

        rows = []
        for learner in learners:
            if learner.state is None or learner.model is None:
                raise ValueError(f"Learner '{learner.id}' must be trained before it is added to the hotstart stack")
            start_learner = learner.clone()
            start_learner.hotstart_stack = None
            rows.append({
                "start_learner": start_learner,
                "task_hash": learner.state["task_hash"],
                "learner_phash": learner.phash,
            })

        if rows:
            self.stack = pd.concat([self.stack, pd.DataFrame(rows)], ignore_index=True)
        return self

    def start_cost(self, learner: Any, task_hash: str) -> np.ndarray:
        """
        Cost of hotstarting ``learner`` from each stored learner.

        A cost of -1 means the stored model can be reused as is, ``nan`` marks
        learners that are no candidates.
        """
        costs = np.full(len(self.stack), np.nan)
        hotstart_ids = learner.param_set.ids(tags="hotstart")
        forward = "hotstart_forward" in learner.properties
        backward = "hotstart_backward" in learner.properties
        if len(hotstart_ids) != 1 or not (forward or backward):
            return costs

        hotstart_id = hotstart_ids[0]
        values = learner.param_set.values
        target = values.get(hotstart_id, learner.param_set.params[hotstart_id].default)
        others = {pid: value for pid, value in values.items() if pid != hotstart_id}

        for i, row in enumerate(self.stack.itertuples(index=False)):
            if row.learner_phash != learner.phash or row.task_hash != task_hash:
                continue
            candidate = row.start_learner
            candidate_values = candidate.param_set.values
            candidate_others = {pid: value for pid, value in candidate_values.items() if pid != hotstart_id}
            if candidate_others != others:
                continue
            start = candidate_values.get(hotstart_id, candidate.param_set.params[hotstart_id].default)
            if start is None or target is None:
                continue
            if start == target:
                costs[i] = -1
            elif forward and start < target:
                costs[i] = target - start
            elif backward and start > target:
                costs[i] = 0

        if self.hotstart_threshold is not None:
            costs[costs > self.hotstart_threshold] = np.nan
        return costs

    def start_learner(self, learner: Any, task_hash: str) -> Optional[Any]:
        """Return the cheapest stored learner to start from, or ``None``."""
        costs = self.start_cost(learner, task_hash)
        if not len(costs) or np.all(np.isnan(costs)):
            return None
        best = int(np.nanargmin(costs))
        logger.debug(f"Hotstarting learner '{learner.id}' from stored learner with cost {costs[best]}")
        return self.stack.iloc[best]["start_learner"]

    def __len__(self) -> int:
        return len(self.stack)

    def __repr__(self) -> str:
        return f"<HotstartStack ({len(self)} learners)>"
