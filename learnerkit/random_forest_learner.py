"""
Random Forest learner implementation.
"""

import copy
from typing import Any, Dict, List, Tuple

import numpy as np
import pandas as pd
from sklearn.compose import ColumnTransformer
from sklearn.ensemble import RandomForestClassifier, RandomForestRegressor
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import OrdinalEncoder

from .base_learner import LearnerClassif, LearnerRegr
from .params import ParamDbl, ParamFct, ParamInt, ParamLgl, ParamSet
from .task import Task

ENCODED_TYPES = ("logical", "character", "factor", "ordered")


def _random_forest_params() -> ParamSet:
    return ParamSet([
        ParamInt("n_estimators", lower=1, default=100, tags=["train", "hotstart"]),
        ParamInt("max_depth", lower=1, tags=["train"]),
        ParamInt("min_samples_split", lower=2, default=2, tags=["train"]),
        ParamInt("min_samples_leaf", lower=1, default=1, tags=["train"]),
        ParamFct("max_features", levels=["sqrt", "log2"], tags=["train"]),
        ParamLgl("bootstrap", default=True, tags=["train"]),
        ParamDbl("min_impurity_decrease", lower=0.0, default=0.0, tags=["train"]),
        ParamLgl("oob_score", default=False, tags=["train"]),
        ParamInt("random_state", lower=0, tags=["train"]),
        ParamInt("n_jobs", lower=-1, tags=["train", "predict"]),
    ])


class _RandomForestMixin:
    """
    Shared training code of the Random Forest learners.

    sklearn's Random Forest requires all features to be numeric, so
    categorical features are ordinal encoded in a pipeline step. Categories
    unseen during training are encoded as -1.
    """

    estimator_class = None

    def prepare_data(self, task: Task) -> Tuple[pd.DataFrame, ColumnTransformer, List[str]]:
        types = task.feature_types.set_index("id")["type"]
        categorical = [col for col in task.feature_names if types[col] in ENCODED_TYPES]
        numerical = [col for col in task.feature_names if col not in categorical]

        X = task.data(cols=task.feature_names)
        for col in categorical:
            X[col] = X[col].astype(object).where(X[col].notna(), None).astype(str)

        encoder = ColumnTransformer(
            [
                ("categorical", OrdinalEncoder(handle_unknown="use_encoded_value", unknown_value=-1), categorical),
                ("numerical", "passthrough", numerical),
            ],
            remainder="drop",
        )
        return X, encoder, categorical + numerical

    def _forest_params(self) -> Dict[str, Any]:
        return {
            "random_state": 42,
            "n_jobs": -1,  # Use all available cores
            **self.param_set.get_values(tags="train"),
        }

    def _fit(self, task: Task, model: Pipeline = None) -> Pipeline:
        X, encoder, columns = self.prepare_data(task)
        y = self._target(task)

        if model is None:
            model = Pipeline([("encoder", encoder), ("forest", self.estimator_class(**self._forest_params()))])
        else:
            model.named_steps["forest"].set_params(warm_start=True, **self._forest_params())

        fit_params = {}
        if task.col_roles["weight"]:
            weights = task.data(cols=task.col_roles["weight"][:1]).iloc[:, 0].to_numpy(dtype=float)
            fit_params["forest__sample_weight"] = weights
        model.fit(X, y, **fit_params)

        model.feature_names_ = columns
        forest = model.named_steps["forest"]
        if getattr(forest, "oob_score", False):
            model.oob_error_ = self._oob_error(forest, y)
        return model

    def _train(self, task: Task) -> Pipeline:
        return self._fit(task)

    def _hotstart(self, task: Task) -> Pipeline:
        """Grow additional trees on top of the stored forest."""
        return self._fit(task, model=copy.deepcopy(self.model))

    def _transform(self, task: Task) -> pd.DataFrame:
        X, _, _ = self.prepare_data(task)
        return X

    def importance(self) -> pd.Series:
        """Impurity based feature importance, sorted in decreasing order."""
        if self.model is None:
            raise ValueError(f"No model stored for learner '{self.id}'")
        forest = self.model.named_steps["forest"]
        importance = pd.Series(forest.feature_importances_, index=self.model.feature_names_)
        return importance.sort_values(ascending=False)

    def oob_error(self) -> float:
        """Out-of-bag error, requires hyperparameter ``oob_score``."""
        if self.model is None:
            raise ValueError(f"No model stored for learner '{self.id}'")
        if not hasattr(self.model, "oob_error_"):
            raise ValueError(f"Learner '{self.id}' was trained without 'oob_score'")
        return self.model.oob_error_


class RandomForestClassifLearner(_RandomForestMixin, LearnerClassif):
    """Random Forest classification via scikit-learn."""

    estimator_class = RandomForestClassifier

    def __init__(self):
        super().__init__(
            id="classif.random_forest",
            param_set=_random_forest_params(),
            predict_types=["response", "prob"],
            feature_types=["logical", "integer", "numeric", "character", "factor", "ordered"],
            properties=["hotstart_forward", "importance", "multiclass", "oob_error", "twoclass", "weights"],
            packages=["sklearn"],
            label="Random Forest",
        )

    def _target(self, task: Task) -> np.ndarray:
        return task.truth().astype(object).to_numpy()

    def _oob_error(self, forest: RandomForestClassifier, y: np.ndarray) -> float:
        return 1.0 - forest.oob_score_

    def _predict(self, task: Task) -> Dict[str, Any]:
        X = self._transform(task)
        if self.predict_type == "prob":
            prob = pd.DataFrame(self.model.predict_proba(X), columns=list(self.model.classes_))
            return {"prob": prob}
        return {"response": self.model.predict(X)}


class RandomForestRegrLearner(_RandomForestMixin, LearnerRegr):
    """
    Random Forest regression via scikit-learn.

    Standard errors are the standard deviation of the individual tree
    predictions.
    """

    estimator_class = RandomForestRegressor

    def __init__(self):
        super().__init__(
            id="regr.random_forest",
            param_set=_random_forest_params(),
            predict_types=["response", "se"],
            feature_types=["logical", "integer", "numeric", "character", "factor", "ordered"],
            properties=["hotstart_forward", "importance", "oob_error", "weights"],
            packages=["sklearn"],
            label="Random Forest",
        )

    def _target(self, task: Task) -> np.ndarray:
        return task.truth().to_numpy(dtype=float)

    def _oob_error(self, forest: RandomForestRegressor, y: np.ndarray) -> float:
        return float(np.mean((y - forest.oob_prediction_) ** 2))

    def _predict(self, task: Task) -> Dict[str, Any]:
        X = self._transform(task)
        result = {"response": self.model.predict(X)}
        if self.predict_type == "se":
            encoded = self.model.named_steps["encoder"].transform(X)
            trees = self.model.named_steps["forest"].estimators_
            per_tree = np.stack([tree.predict(encoded) for tree in trees])
            result["se"] = per_tree.std(axis=0)
        return result
