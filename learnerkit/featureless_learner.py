"""
Featureless learners ignoring all features.

They serve as baselines and as the usual fallback learners.
"""

from typing import Any, Dict, List

import numpy as np
import pandas as pd

from .base_learner import LearnerClassif, LearnerRegr
from .params import ParamFct, ParamLgl, ParamSet
from .task import Task

ALL_FEATURE_TYPES = ["logical", "integer", "numeric", "character", "factor", "ordered", "datetime"]


class _FeaturelessMixin:

    def importance(self) -> pd.Series:
        """All features are equally unimportant."""
        if self.model is None:
            raise ValueError(f"No model stored for learner '{self.id}'")
        return pd.Series(0.0, index=self.state["feature_names"], dtype=float)

    def selected_features(self) -> List[str]:
        if self.model is None:
            raise ValueError(f"No model stored for learner '{self.id}'")
        return []


class FeaturelessClassifLearner(_FeaturelessMixin, LearnerClassif):
    """
    Predicts the label of the training data according to ``method``:

    - ``mode``: most frequent label
    - ``sample``: label drawn uniformly at random
    - ``weighted.sample``: label drawn with the training frequencies
    """

    def __init__(self):
        super().__init__(
            id="classif.featureless",
            param_set=ParamSet([
                ParamFct("method", levels=["mode", "sample", "weighted.sample"], default="mode", tags=["predict"]),
            ]),
            predict_types=["response", "prob"],
            feature_types=ALL_FEATURE_TYPES,
            properties=["featureless", "importance", "missings", "multiclass", "selected_features", "twoclass"],
            label="Featureless Classification Learner",
        )

    def _train(self, task: Task) -> pd.Series:
        truth = task.truth()
        counts = pd.Series([int((truth == cls).sum()) for cls in task.class_names], index=task.class_names)
        return counts / counts.sum()

    def _predict(self, task: Task) -> Dict[str, Any]:
        freq = self.model
        classes = np.asarray(freq.index, dtype=object)
        n = task.nrow
        method = self.param_set.values.get("method", "mode")
        rng = np.random.default_rng()

        if method == "mode":
            response = np.repeat(classes[int(np.argmax(freq.to_numpy()))], n)
            prob = np.tile(freq.to_numpy(), (n, 1))
        elif method == "sample":
            response = rng.choice(classes, size=n)
            prob = np.full((n, len(classes)), 1.0 / len(classes))
        else:
            response = rng.choice(classes, size=n, p=freq.to_numpy())
            prob = np.tile(freq.to_numpy(), (n, 1))

        result = {"response": response}
        if self.predict_type == "prob":
            result["prob"] = pd.DataFrame(prob, columns=freq.index)
        return result


class FeaturelessRegrLearner(_FeaturelessMixin, LearnerRegr):
    """
    Predicts the mean (or the median if ``robust``) of the training target.

    Standard errors are the standard deviation (or the scaled MAD).
    """

    def __init__(self):
        super().__init__(
            id="regr.featureless",
            param_set=ParamSet([ParamLgl("robust", default=False, tags=["train"])]),
            predict_types=["response", "se"],
            feature_types=ALL_FEATURE_TYPES,
            properties=["featureless", "importance", "missings", "selected_features"],
            label="Featureless Regression Learner",
        )

    def _train(self, task: Task) -> Dict[str, float]:
        y = task.truth().to_numpy(dtype=float)
        y = y[~np.isnan(y)]
        if self.param_set.values.get("robust", False):
            location = float(np.median(y))
            dispersion = float(1.4826 * np.median(np.abs(y - location)))
        else:
            location = float(np.mean(y))
            dispersion = float(np.std(y, ddof=1)) if len(y) > 1 else np.nan
        return {"location": location, "dispersion": dispersion}

    def _predict(self, task: Task) -> Dict[str, Any]:
        n = task.nrow
        result = {"response": np.full(n, self.model["location"])}
        if self.predict_type == "se":
            result["se"] = np.full(n, self.model["dispersion"])
        return result
