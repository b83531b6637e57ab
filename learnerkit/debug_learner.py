"""
Debug learner for testing error handling.

Hyperparameters starting with ``error_``, ``warning_`` and ``message_``
give the probability to raise an error, issue a warning or print a message
in the respective stage. ``predict_missing`` is the fraction of predictions
returned as missing values.
"""

import math
import os
import time
import uuid
import warnings
from typing import Any, Dict

import numpy as np
import pandas as pd

from .base_learner import LearnerClassif
from .params import ParamDbl, ParamInt, ParamSet
from .task import Task


class DebugClassifLearner(LearnerClassif):
    """
    Classification learner which predicts the most frequent label and can be
    told to fail, warn or print in either stage.
    """

    def __init__(self):
        param_set = ParamSet([
            ParamDbl("error_predict", lower=0, upper=1, default=0, tags=["predict"]),
            ParamDbl("error_train", lower=0, upper=1, default=0, tags=["train"]),
            ParamDbl("message_predict", lower=0, upper=1, default=0, tags=["predict"]),
            ParamDbl("message_train", lower=0, upper=1, default=0, tags=["train"]),
            ParamDbl("predict_missing", lower=0, upper=1, default=0, tags=["predict"]),
            ParamDbl("warning_predict", lower=0, upper=1, default=0, tags=["predict"]),
            ParamDbl("warning_train", lower=0, upper=1, default=0, tags=["train"]),
            ParamDbl("sleep_train", lower=0, tags=["train"]),
            ParamDbl("sleep_predict", lower=0, tags=["predict"]),
            ParamDbl("x", lower=0, upper=1, tags=["train"]),
            ParamInt("iter", lower=1, default=1, tags=["train", "hotstart"]),
        ])
        super().__init__(
            id="classif.debug",
            param_set=param_set,
            predict_types=["response", "prob"],
            feature_types=["logical", "integer", "numeric", "character", "factor", "ordered"],
            properties=["hotstart_forward", "missings", "multiclass", "twoclass"],
            label="Debug Learner for Classification",
        )

    def _roll(self, name: str) -> bool:
        return np.random.random() < self.param_set.values.get(name, 0)

    def _train(self, task: Task) -> Dict[str, Any]:
        values = self.param_set.values
        if self._roll("message_train"):
            print("Message from classif.debug->train()")
        if self._roll("warning_train"):
            warnings.warn("Warning from classif.debug->train()")
        if self._roll("error_train"):
            raise RuntimeError("Error from classif.debug->train()")
        if values.get("sleep_train"):
            time.sleep(values["sleep_train"])

        truth = task.truth()
        counts = truth.value_counts()
        return {
            "response": counts.index[0] if len(counts) else task.class_names[0],
            "pid": os.getpid(),
            "id": uuid.uuid4().hex,
            "iter": values.get("iter", 1),
        }

    def _hotstart(self, task: Task) -> Dict[str, Any]:
        model = dict(self.model)
        model["iter"] = self.param_set.values.get("iter", 1)
        return model

    def _predict(self, task: Task) -> Dict[str, Any]:
        values = self.param_set.values
        if self._roll("message_predict"):
            print("Message from classif.debug->predict()")
        if self._roll("warning_predict"):
            warnings.warn("Warning from classif.debug->predict()")
        if self._roll("error_predict"):
            raise RuntimeError("Error from classif.debug->predict()")
        if values.get("sleep_predict"):
            time.sleep(values["sleep_predict"])

        n = task.nrow
        response = np.full(n, self.model["response"], dtype=object)
        n_missing = math.ceil(n * values.get("predict_missing", 0))
        missing = np.arange(n) < n_missing
        response[missing] = None

        result = {"response": response}
        if self.predict_type == "prob":
            prob = pd.DataFrame(0.0, index=range(n), columns=task.class_names)
            prob[self.model["response"]] = 1.0
            prob.loc[missing, :] = np.nan
            result["prob"] = prob
        return result
