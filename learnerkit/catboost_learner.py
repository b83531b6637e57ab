"""
CatBoost learner implementation.
"""

from typing import Any, Dict

import pandas as pd

from .base_learner import LearnerRegr
from .params import ParamDbl, ParamInt, ParamSet
from .task import Task

try:
    import catboost as cb
except ImportError:
    cb = None


class CatBoostRegrLearner(LearnerRegr):
    """
    Gradient boosting regression via CatBoost.

    CatBoost handles categorical features natively, so character, factor and
    ordered features are only converted to strings.
    """

    def __init__(self):
        if cb is None:
            raise ImportError("catboost package is required for CatBoostRegrLearner. Install with: pip install catboost")

        param_set = ParamSet([
            ParamInt("iterations", lower=1, default=1000, tags=["train"]),
            ParamInt("depth", lower=1, upper=16, default=6, tags=["train"]),
            ParamDbl("learning_rate", lower=0.0, upper=1.0, tags=["train"]),
            ParamDbl("l2_leaf_reg", lower=0.0, default=3.0, tags=["train"]),
            ParamInt("border_count", lower=1, upper=65535, tags=["train"]),
            ParamDbl("rsm", lower=0.0, upper=1.0, default=1.0, tags=["train"]),
            ParamDbl("subsample", lower=0.0, upper=1.0, tags=["train"]),
            ParamDbl("bagging_temperature", lower=0.0, default=1.0, tags=["train"]),
            ParamInt("min_data_in_leaf", lower=1, default=1, tags=["train"]),
            ParamInt("one_hot_max_size", lower=0, tags=["train"]),
            ParamInt("leaf_estimation_iterations", lower=1, tags=["train"]),
            ParamInt("random_seed", lower=0, tags=["train"]),
            ParamInt("thread_count", lower=-1, default=-1, tags=["train", "predict"]),
        ])
        super().__init__(
            id="regr.catboost",
            param_set=param_set,
            predict_types=["response"],
            feature_types=["logical", "integer", "numeric", "character", "factor", "ordered"],
            properties=["importance", "missings", "weights"],
            packages=["catboost"],
            label="Gradient Boosting",
        )

    def _categorical_features(self, task: Task):
        return [col for col in task.feature_names if task.col_type(col) in ("character", "factor", "ordered")]

    def prepare_data(self, task: Task) -> pd.DataFrame:
        """
        Prepare data for CatBoost.

        Categorical features are kept as strings for native CatBoost support,
        missing values become their own category.
        """
        X = task.data(cols=task.feature_names)
        for col in self._categorical_features(task):
            X[col] = X[col].astype(object).where(X[col].notna(), "NA").astype(str)
        for col in task.feature_names:
            if task.col_type(col) in ("integer", "logical"):
                X[col] = X[col].astype("float64")
        return X

    def _pool(self, task: Task, with_label: bool = True) -> "cb.Pool":
        weight = None
        label = None
        if with_label:
            label = task.truth().to_numpy(dtype=float)
            if task.col_roles["weight"]:
                weight = task.data(cols=task.col_roles["weight"][:1]).iloc[:, 0].to_numpy(dtype=float)
        return cb.Pool(
            self.prepare_data(task),
            label=label,
            weight=weight,
            cat_features=self._categorical_features(task),
        )

    def _train(self, task: Task) -> "cb.CatBoostRegressor":
        cb_params: Dict[str, Any] = {
            "objective": "RMSE",
            "verbose": False,
            "random_seed": 42,
            "allow_writing_files": False,
            **self.param_set.get_values(tags="train"),
        }
        model = cb.CatBoostRegressor(**cb_params)
        model.fit(self._pool(task), verbose=False)
        return model

    def _predict(self, task: Task) -> Dict[str, Any]:
        return {"response": self.model.predict(self._pool(task, with_label=False))}

    def importance(self) -> pd.Series:
        """Prediction value change importance, sorted in decreasing order."""
        if self.model is None:
            raise ValueError(f"No model stored for learner '{self.id}'")
        importance = pd.Series(self.model.get_feature_importance(), index=self.model.feature_names_, dtype=float)
        return importance.sort_values(ascending=False)
