"""
Persistence of learners, including their trained state.
"""

import pickle
from pathlib import Path
from typing import Union

from loguru import logger

from .base_learner import Learner


def save_learner(learner: Learner, path: Union[str, Path]) -> Path:
    """
    Pickle a learner to ``path``.

    The stored training task carries no data, so the file size is dominated
    by the fitted model.
    """
    if not isinstance(learner, Learner):
        raise TypeError(f"Expected a Learner, got {type(learner).__name__}")
    path = Path(path)
    with open(path, "wb") as f:
        pickle.dump(learner, f)
    logger.debug(f"Saved learner '{learner.id}' to {path}")
    return path


def load_learner(path: Union[str, Path]) -> Learner:
    with open(path, "rb") as f:
        learner = pickle.load(f)
    if not isinstance(learner, Learner):
        raise TypeError(f"File {path} does not contain a Learner, got {type(learner).__name__}")
    return learner
