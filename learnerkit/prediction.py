"""
Prediction containers.

Learners return raw results as dictionaries (``{"response": ..., "prob": ...}``).
These are converted into ``PredictionData`` chunks, which can be concatenated
and patched with fallback predictions, and finally wrapped into a
user facing ``Prediction``.
"""

from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

PROB_PREFIX = "prob."


class PredictionData:
    """
    Raw prediction chunk backed by a data frame with one row per row id.

    Columns are ``row_ids``, ``truth``, ``response`` and the predict type
    specific columns.
    """

    task_type: Optional[str] = None

    def __init__(self, frame: pd.DataFrame, predict_types: Sequence[str], class_names: Optional[List[Any]] = None):
        self.frame = frame.reset_index(drop=True)
        self.predict_types = list(predict_types)
        self.class_names = class_names

    @property
    def row_ids(self) -> List[Any]:
        return self.frame["row_ids"].tolist()

    def __len__(self) -> int:
        return len(self.frame)

    def missing_row_ids(self) -> List[Any]:
        """Row ids without a response."""
        return self.frame.loc[self.frame["response"].isna(), "row_ids"].tolist()

    def _type_columns(self, predict_type: str) -> List[str]:
        if predict_type == "prob":
            return [col for col in self.frame.columns if str(col).startswith(PROB_PREFIX)]
        if predict_type in ("response", "truth", "row_ids"):
            return []
        return [predict_type] if predict_type in self.frame.columns else []

    def restrict(self, predict_types: Sequence[str]) -> "PredictionData":
        """Drop the predict types not listed in ``predict_types``, together with their columns."""
        keep = [pt for pt in self.predict_types if pt in predict_types]
        if keep == self.predict_types:
            return self
        drop = [col for pt in self.predict_types if pt not in keep for col in self._type_columns(pt)]
        return type(self)(self.frame.drop(columns=drop), keep, self.class_names)

    def combine(self, other: "PredictionData") -> "PredictionData":
        """
        Overwrite rows of this chunk with the rows of ``other``.

        Rows are matched by row id, the row order of this chunk is kept and rows
        only present in ``other`` are appended. Only the predict types both
        chunks provide are kept.
        """
        if not len(other):
            return self
        if self.predict_types != other.predict_types:
            common = [pt for pt in self.predict_types if pt in other.predict_types]
            return self.restrict(common).combine(other.restrict(common))
        left = self.frame.set_index("row_ids", drop=False)
        right = other.frame.set_index("row_ids", drop=False)
        shared = [col for col in left.columns if col in right.columns]
        overlap = left.index.intersection(right.index)

        patched = left.copy()
        for col in shared:
            values = right.loc[overlap, col]
            if isinstance(patched[col].dtype, pd.CategoricalDtype):
                values = pd.Categorical(values.astype(object), categories=patched[col].cat.categories)
            patched.loc[overlap, col] = values
        extra = right.loc[right.index.difference(left.index), shared]
        frame = pd.concat([patched, extra], ignore_index=True) if len(extra) else patched
        return type(self)(frame, self.predict_types, self.class_names)

    @classmethod
    def concat(cls, chunks: Sequence["PredictionData"]) -> Optional["PredictionData"]:
        """
        Join chunks in the given order, ``None`` chunks are skipped.

        The result carries the predict types all chunks have in common.
        """
        chunks = [chunk for chunk in chunks if chunk is not None]
        if not chunks:
            return None
        common = [pt for pt in chunks[0].predict_types if all(pt in chunk.predict_types for chunk in chunks)]
        chunks = [chunk.restrict(common) for chunk in chunks]
        first = chunks[0]
        frame = pd.concat([chunk.frame for chunk in chunks], ignore_index=True)
        if first.class_names is not None:
            for col in ("truth", "response"):
                frame[col] = pd.Categorical(frame[col].astype(object), categories=first.class_names)
        return type(first)(frame, first.predict_types, first.class_names)


class PredictionDataClassif(PredictionData):
    task_type = "classif"


class PredictionDataRegr(PredictionData):
    task_type = "regr"


def _check_length(name: str, values: Any, n: int) -> None:
    if len(values) != n:
        raise ValueError(f"Prediction column '{name}' has length {len(values)}, expected {n}")


def as_prediction_data(
    result: Dict[str, Any],
    task: Any,
    row_ids: Sequence,
    predict_types: Sequence[str],
) -> PredictionData:
    """
    Convert the raw output of a learner into a prediction chunk.

    Args:
        result: Dictionary with ``response`` and predict type specific entries
        task: Task the prediction was made on, used for truth and class levels
        row_ids: Row ids the prediction refers to
        predict_types: Columns implied by the active predict type

    Returns:
        ``PredictionDataClassif`` or ``PredictionDataRegr``
    """
    if not isinstance(result, dict):
        raise TypeError(f"Learner must return a dict of predictions, got {type(result).__name__}")
    row_ids = list(row_ids)
    n = len(row_ids)
    truth = task.truth(row_ids).to_numpy() if task.backend is not None else np.full(n, np.nan)

    if task.task_type == "classif":
        class_names = task.class_names
        prob = result.get("prob")
        if prob is not None:
            if isinstance(prob, pd.DataFrame):
                prob = prob.reindex(columns=class_names, fill_value=0.0).to_numpy()
            prob = np.asarray(prob, dtype=float).reshape(n, -1)
            if prob.shape[1] != len(class_names):
                raise ValueError(f"Probabilities have {prob.shape[1]} columns, expected {len(class_names)}")
        response = result.get("response")
        if response is None and prob is not None:
            response = np.asarray(class_names, dtype=object)[prob.argmax(axis=1)]
        if response is None:
            raise ValueError("Learner did not return a response")
        _check_length("response", response, n)

        frame = pd.DataFrame({
            "row_ids": row_ids,
            "truth": pd.Categorical(np.asarray(truth, dtype=object), categories=class_names),
            "response": pd.Categorical(np.asarray(response, dtype=object), categories=class_names),
        })
        if "prob" in predict_types:
            if prob is None:
                raise ValueError("Predict type 'prob' requested but the learner returned no probabilities")
            for i, cls in enumerate(class_names):
                frame[f"{PROB_PREFIX}{cls}"] = prob[:, i]
        return PredictionDataClassif(frame, predict_types, class_names)

    response = result.get("response")
    if response is None:
        raise ValueError("Learner did not return a response")
    _check_length("response", response, n)
    frame = pd.DataFrame({
        "row_ids": row_ids,
        "truth": np.asarray(truth, dtype=float),
        "response": np.asarray(response, dtype=float),
    })
    if "se" in predict_types:
        se = result.get("se")
        if se is None:
            raise ValueError("Predict type 'se' requested but the learner returned no standard errors")
        _check_length("se", se, n)
        frame["se"] = np.asarray(se, dtype=float)
    return PredictionDataRegr(frame, predict_types)


class Prediction:
    """Predictions of a learner for a set of row ids."""

    def __init__(self, pdata: PredictionData):
        self._pdata = pdata

    @property
    def task_type(self) -> str:
        return self._pdata.task_type

    @property
    def predict_types(self) -> List[str]:
        return list(self._pdata.predict_types)

    @property
    def row_ids(self) -> List[Any]:
        return self._pdata.row_ids

    @property
    def truth(self) -> pd.Series:
        return self._pdata.frame["truth"].copy()

    @property
    def response(self) -> pd.Series:
        return self._pdata.frame["response"].copy()

    @property
    def data(self) -> pd.DataFrame:
        return self._pdata.frame.copy()

    @property
    def missing(self) -> List[Any]:
        return self._pdata.missing_row_ids()

    def as_prediction_data(self) -> PredictionData:
        return self._pdata

    def __len__(self) -> int:
        return len(self._pdata)

    def __add__(self, other: "Prediction") -> "Prediction":
        return as_prediction(PredictionData.concat([self._pdata, other._pdata]))

    def __repr__(self) -> str:
        return f"<{type(self).__name__}> for {len(self)} observations:\n{self._pdata.frame.head()}"


class PredictionClassif(Prediction):

    @property
    def class_names(self) -> List[Any]:
        return list(self._pdata.class_names)

    @property
    def prob(self) -> Optional[pd.DataFrame]:
        cols = [f"{PROB_PREFIX}{cls}" for cls in self._pdata.class_names]
        if not all(col in self._pdata.frame.columns for col in cols):
            return None
        prob = self._pdata.frame[cols].copy()
        prob.columns = self.class_names
        return prob

    @property
    def confusion(self) -> pd.DataFrame:
        """Confusion matrix with responses in rows and truth in columns."""
        frame = self._pdata.frame
        return pd.crosstab(frame["response"], frame["truth"], dropna=False)


class PredictionRegr(Prediction):

    @property
    def se(self) -> Optional[pd.Series]:
        if "se" not in self._pdata.frame.columns:
            return None
        return self._pdata.frame["se"].copy()


def as_prediction(pdata: Optional[PredictionData]) -> Optional[Prediction]:
    """Wrap a prediction chunk into the matching ``Prediction`` class."""
    if pdata is None:
        return None
    if isinstance(pdata, PredictionDataClassif):
        return PredictionClassif(pdata)
    if isinstance(pdata, PredictionDataRegr):
        return PredictionRegr(pdata)
    raise TypeError(f"Cannot convert {type(pdata).__name__} to a Prediction")
