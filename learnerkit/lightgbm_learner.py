"""
LightGBM learner implementation.
"""

from typing import Any, Dict

import lightgbm as lgb
import numpy as np
import pandas as pd

from .base_learner import LearnerClassif, LearnerRegr
from .params import ParamDbl, ParamFct, ParamInt, ParamSet
from .task import Task


def _lightgbm_params() -> ParamSet:
    return ParamSet([
        ParamInt("num_iterations", lower=1, default=100, tags=["train", "hotstart"]),
        ParamInt("num_leaves", lower=2, default=31, tags=["train"]),
        ParamDbl("learning_rate", lower=0.0, default=0.1, tags=["train"]),
        ParamDbl("feature_fraction", lower=0.0, upper=1.0, default=1.0, tags=["train"]),
        ParamDbl("bagging_fraction", lower=0.0, upper=1.0, default=1.0, tags=["train"]),
        ParamInt("bagging_freq", lower=0, default=0, tags=["train"]),
        ParamInt("min_child_samples", lower=0, default=20, tags=["train"]),
        ParamDbl("lambda_l1", lower=0.0, default=0.0, tags=["train"]),
        ParamDbl("lambda_l2", lower=0.0, default=0.0, tags=["train"]),
        ParamInt("max_depth", lower=-1, default=-1, tags=["train"]),
        ParamDbl("min_gain_to_split", lower=0.0, default=0.0, tags=["train"]),
        ParamInt("seed", tags=["train"]),
        ParamInt("num_threads", lower=0, tags=["train", "predict"]),
        ParamFct("importance_type", levels=["gain", "split"], default="gain", tags=["importance"]),
    ])


class _LightGBMMixin:
    """
    Shared training code of the LightGBM learners.

    LightGBM handles pandas categoricals natively: character, factor and
    ordered features are passed as ``category`` columns. The booster keeps
    the training categories and maps new data onto them, so categories unseen
    during training are treated as missing.
    """

    objective = "regression"

    def prepare_data(self, task: Task) -> pd.DataFrame:
        X = task.data(cols=task.feature_names)
        for col in task.feature_names:
            col_type = task.col_type(col)
            if col_type == "character":
                X[col] = X[col].astype("category")
            elif col_type in ("integer", "logical"):
                X[col] = X[col].astype("float64")
        return X

    def _lgb_params(self, task: Task) -> Dict[str, Any]:
        params = {
            "objective": self.objective,
            "verbosity": -1,
            "seed": 42,
            **self._objective_params(task),
            **self.param_set.get_values(tags="train"),
        }
        params.pop("num_iterations", None)
        return params

    def _objective_params(self, task: Task) -> Dict[str, Any]:
        return {"metric": "rmse"}

    def _dataset(self, task: Task) -> lgb.Dataset:
        weight = None
        if task.col_roles["weight"]:
            weight = task.data(cols=task.col_roles["weight"][:1]).iloc[:, 0].to_numpy(dtype=float)
        return lgb.Dataset(
            self.prepare_data(task),
            label=self._label(task),
            weight=weight,
            categorical_feature="auto",
            free_raw_data=False,
        )

    def _num_iterations(self) -> int:
        return self.param_set.values.get("num_iterations", 100)

    def _train(self, task: Task) -> lgb.Booster:
        return lgb.train(
            self._lgb_params(task),
            self._dataset(task),
            num_boost_round=self._num_iterations(),
            callbacks=[lgb.log_evaluation(0)],  # Silent training
        )

    def _hotstart(self, task: Task) -> lgb.Booster:
        """Continue boosting the stored booster up to ``num_iterations`` rounds."""
        remaining = self._num_iterations() - self.model.current_iteration()
        if remaining <= 0:
            return self.model
        return lgb.train(
            self._lgb_params(task),
            self._dataset(task),
            num_boost_round=remaining,
            init_model=self.model,
            callbacks=[lgb.log_evaluation(0)],
        )

    def _raw_predict(self, task: Task) -> np.ndarray:
        kwargs = {}
        if "num_threads" in self.param_set.values:
            kwargs["num_threads"] = self.param_set.values["num_threads"]
        return self.model.predict(self.prepare_data(task), **kwargs)

    def importance(self) -> pd.Series:
        """Feature importance of type ``importance_type``, sorted in decreasing order."""
        if self.model is None:
            raise ValueError(f"No model stored for learner '{self.id}'")
        importance_type = self.param_set.values.get("importance_type", "gain")
        importance = pd.Series(
            self.model.feature_importance(importance_type=importance_type),
            index=self.model.feature_name(),
            dtype=float,
        )
        return importance.sort_values(ascending=False)


class LightGBMClassifLearner(_LightGBMMixin, LearnerClassif):
    """
    Gradient boosting classification via LightGBM.

    Binary tasks use the ``binary`` objective, the probability refers to the
    second class level. Multiclass tasks use ``multiclass``.
    """

    def __init__(self):
        super().__init__(
            id="classif.lightgbm",
            param_set=_lightgbm_params(),
            predict_types=["response", "prob"],
            feature_types=["logical", "integer", "numeric", "character", "factor", "ordered"],
            properties=["hotstart_forward", "importance", "missings", "multiclass", "twoclass", "weights"],
            packages=["lightgbm"],
            label="Gradient Boosting",
        )

    def _objective_params(self, task: Task) -> Dict[str, Any]:
        n_classes = len(task.class_names)
        if n_classes > 2:
            return {"objective": "multiclass", "num_class": n_classes, "metric": "multi_logloss"}
        return {"objective": "binary", "metric": "binary_logloss"}

    def _label(self, task: Task) -> np.ndarray:
        return task.truth().cat.codes.to_numpy()

    def _predict(self, task: Task) -> Dict[str, Any]:
        raw = self._raw_predict(task)
        if raw.ndim == 1:
            prob = np.column_stack([1.0 - raw, raw])
        else:
            prob = raw
        classes = np.asarray(task.class_names, dtype=object)
        if self.predict_type == "prob":
            return {"prob": prob}
        return {"response": classes[prob.argmax(axis=1)]}


class LightGBMRegrLearner(_LightGBMMixin, LearnerRegr):
    """Gradient boosting regression via LightGBM."""

    def __init__(self):
        super().__init__(
            id="regr.lightgbm",
            param_set=_lightgbm_params(),
            predict_types=["response"],
            feature_types=["logical", "integer", "numeric", "character", "factor", "ordered"],
            properties=["hotstart_forward", "importance", "missings", "weights"],
            packages=["lightgbm"],
            label="Gradient Boosting",
        )

    def _label(self, task: Task) -> np.ndarray:
        return task.truth().to_numpy(dtype=float)

    def _predict(self, task: Task) -> Dict[str, Any]:
        return {"response": self._raw_predict(task)}
