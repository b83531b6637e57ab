"""
Abstract base learner class.

A learner wraps a model fitting procedure together with its hyperparameters,
its declared capabilities and, once trained, its fitted state.

Subclasses implement:

- ``_train(task)``: fit and return a model on the rows in use of ``task``
- ``_predict(task)``: return a dict with an entry per predict type, e.g.
  ``{"response": ..., "prob": ...}``, using ``self.model``
- ``_hotstart(task)`` (optional): continue fitting the model stored in
  ``self.state``; requires property ``hotstart_forward`` or
  ``hotstart_backward`` and a parameter tagged ``"hotstart"``
- ``_base_learner(recursive)`` (optional): unwrap nested learners

Learners carrying the properties ``importance``, ``selected_features``,
``oob_error`` or ``loglik`` provide the methods of the same name.

Setting hyperparameters::

    learner.param_set.values = {"n_estimators": 50}   # replaces all values
    learner.param_set.set_values(max_depth=3)         # keeps the other values
"""

import copy
import math
import warnings
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Union

import numpy as np
import pandas as pd

from .backend import DataBackend, DataBackendCbind, as_data_backend
from .config import nbr_of_workers
from .encapsulation import empty_log
from .errors import LearnerNotTrainedError, TaskCompatibilityError
from .hotstart import HotstartStack
from .parallel import chunk_vector, parallel_map
from .params import ParamSet
from .prediction import Prediction, PredictionData, as_prediction
from .reflections import DEFAULT_REFLECTIONS, Reflections
from .task import Task, as_row_ids
from .utils import assert_ordered_set, assert_subset, calculate_hash, check_packages_installed
from .worker import learner_predict, learner_train, predict_chunk

BASE_PACKAGE = "learnerkit"

# role columns synthesized as missing values by predict_newdata()
IMPUTED_COL_ROLES = ("target", "name", "order", "stratum", "group", "weight")

STAGES = ("train", "predict")


class Learner(ABC):
    """
    Abstract base class for learners.

    Args:
        id: Identifier of the learner
        task_type: Type of task the learner operates on, e.g. ``"classif"``
        param_set: Hyperparameter definitions and values
        predict_types: Supported predict types, the first one becomes active
        feature_types: Supported feature types
        properties: Capabilities such as ``"weights"`` or ``"importance"``
        data_formats: Supported data formats
        packages: Import names of the packages required for fitting
        label: Human readable label
        man: Reference to the documentation of the learner
        reflections: Tables the metadata is validated against
    """

    def __init__(
        self,
        id: str,
        task_type: str,
        param_set: Optional[ParamSet] = None,
        predict_types: Sequence[str] = (),
        feature_types: Sequence[str] = (),
        properties: Sequence[str] = (),
        data_formats: Sequence[str] = ("pandas",),
        packages: Sequence[str] = (),
        label: Optional[str] = None,
        man: Optional[str] = None,
        reflections: Optional[Reflections] = None,
    ):
        self.reflections = reflections or DEFAULT_REFLECTIONS
        if not isinstance(id, str) or not id:
            raise ValueError(f"Learner id must be a non-empty string, got {id!r}")
        if task_type not in self.reflections.task_types:
            raise ValueError(f"Unknown task type: {task_type}. Available: {list(self.reflections.task_types)}")
        if param_set is not None and not isinstance(param_set, ParamSet):
            raise TypeError(f"param_set must be a ParamSet, got {type(param_set).__name__}")

        self.id = id
        self.label = label
        self.task_type = task_type
        self._param_set = param_set if param_set is not None else ParamSet()
        self.feature_types = assert_ordered_set(
            feature_types, self.reflections.task_feature_types, "feature_types"
        )
        self.predict_types = assert_ordered_set(
            predict_types, self.reflections.predict_types_for(task_type), "predict_types", empty_ok=False
        )
        self._predict_type = self.predict_types[0]
        self.properties = sorted(assert_subset(properties, self.reflections.properties_for(task_type), "properties"))
        self.data_formats = assert_subset(data_formats, self.reflections.data_formats, "data_formats")

        packages = list(packages)
        if any(not isinstance(pkg, str) or not pkg for pkg in packages):
            raise ValueError(f"Package names must be non-empty strings, got {packages}")
        self.packages = [BASE_PACKAGE] + [pkg for pkg in dict.fromkeys(packages) if pkg != BASE_PACKAGE]
        self.man = man

        self.state: Optional[Dict[str, Any]] = None
        self._predict_sets = ["test"]
        self.parallel_predict = False
        self._timeout = {stage: math.inf for stage in STAGES}
        self._encapsulate: Optional[Dict[str, str]] = None
        self._fallback: Optional["Learner"] = None
        self._hotstart_stack: Optional[HotstartStack] = None

        check_packages_installed(
            packages, msg="Package '{package}' required but not installed for Learner '" + id + "'"
        )

    # -- model fitting hooks ---------------------------------------------------

    @abstractmethod
    def _train(self, task: Task) -> Any:
        """Fit a model on the rows in use of ``task`` and return it."""
        pass

    @abstractmethod
    def _predict(self, task: Task) -> Dict[str, Any]:
        """Predict the rows in use of ``task`` with ``self.model``."""
        pass

    def _hotstart(self, task: Task) -> Any:
        """Update the model stored in ``self.state`` instead of fitting from scratch."""
        raise NotImplementedError(f"Learner '{self.id}' does not support hotstarting")

    def _base_learner(self, recursive: float) -> "Learner":
        return self

    # -- lifecycle -------------------------------------------------------------

    def train(self, task: Task, row_ids: Optional[Sequence] = None) -> "Learner":
        """
        Train the learner on a set of observations of ``task``.

        The learner is modified in place, clone it beforehand to keep the
        previous state.

        Args:
            task: Task to train on
            row_ids: Training rows as a subset of ``task.row_ids``, defaults to
                all rows in use

        Returns:
            The learner itself
        """
        if not isinstance(task, Task):
            raise TypeError(f"train() requires a Task, got {type(task).__name__}")
        assert_learnable(task, self)

        if row_ids is None:
            train_row_ids = list(task.row_ids)
        else:
            train_row_ids = as_row_ids(row_ids)
            unknown = set(train_row_ids) - set(task.row_ids)
            if unknown:
                raise ValueError(f"Row ids not in use by task '{task.id}': {sorted(unknown, key=str)[:10]}")

        train_task = task.clone()
        train_task.filter(train_row_ids)

        mode = "train"
        if self._hotstart_stack is not None:
            start_learner = self._hotstart_stack.start_learner(self, train_task.hash)
            if start_learner is not None:
                self.state = start_learner.clone().state
                mode = "hotstart"

        learner_train(self, train_task, mode=mode)

        # keep the task without its data
        self.state["train_task"] = task.clone(deep=True).remove_backend()
        return self

    def predict(self, task: Task, row_ids: Optional[Sequence] = None) -> Optional[Prediction]:
        """
        Predict observations of ``task`` with the fitted model.

        Args:
            task: Task to predict on
            row_ids: Rows to predict, defaults to all rows in use

        Returns:
            ``Prediction``, or ``None`` if no rows were requested
        """
        if isinstance(task, (pd.DataFrame, DataBackend)):
            raise TypeError("To predict on data frames, use the method predict_newdata() instead of predict()")
        if not isinstance(task, Task):
            raise TypeError(f"predict() requires a Task, got {type(task).__name__}")
        assert_predictable(task, self)

        if row_ids is not None:
            row_ids = as_row_ids(row_ids)
            unknown = set(row_ids) - set(task.backend.rownames)
            if unknown:
                raise ValueError(f"Unknown row ids for task '{task.id}': {sorted(unknown, key=str)[:10]}")

        state = self.state or {}
        fallback_state = state.get("fallback_state") or {}
        if state.get("model") is None and fallback_state.get("model") is None:
            raise LearnerNotTrainedError(f"Cannot predict, Learner '{self.id}' has not been trained yet")

        workers = nbr_of_workers()
        if self.parallel_predict and workers > 1:
            ids = task.row_ids if row_ids is None else row_ids
            results = parallel_map(predict_chunk, chunk_vector(ids, n_chunks=workers), learner=self, task=task)
        else:
            results = [learner_predict(self, task, row_ids)]

        log = self.state.get("log")
        elapsed = [result.elapsed for result in results if result.elapsed is not None]
        for result in results:
            if len(result.log):
                log = result.log if log is None or not len(log) else pd.concat([log, result.log], ignore_index=True)
        self.state["log"] = log if log is not None else empty_log()
        if elapsed:
            self.state["predict_time"] = sum(elapsed)

        return as_prediction(PredictionData.concat([result.pdata for result in results]))

    def predict_newdata(self, newdata: Union[pd.DataFrame, DataBackend], task: Optional[Task] = None) -> Optional[Prediction]:
        """
        Predict on new data using the fitted model.

        Args:
            newdata: Data frame or backend holding at least all feature columns.
                Row ids of a backend are preserved, data frames are numbered
                ``0..n-1``
            task: Task describing the columns, defaults to the task stored
                during training

        Returns:
            ``Prediction`` for all rows of ``newdata``
        """
        if task is None:
            if self.state is None or self.state.get("train_task") is None:
                raise ValueError("No task stored, and no task provided")
            task = self.state["train_task"].clone()
        else:
            if not isinstance(task, Task):
                raise TypeError(f"predict_newdata() requires a Task, got {type(task).__name__}")
            task = task.clone()
            assert_learnable(task, self)
            task.remove_backend()

        newdata = as_data_backend(newdata)
        missing = [col for col in task.feature_names if col not in newdata.colnames]
        if missing:
            raise ValueError(f"Columns missing in newdata: {missing}")

        # role columns not present in newdata are added with missing values
        impute = [
            col
            for role in IMPUTED_COL_ROLES
            for col in task.col_roles.get(role, [])
            if col not in newdata.colnames
        ]
        if impute:
            na_cols = {newdata.primary_key: newdata.rownames}
            for col in impute:
                na_cols[col] = _na_column(task.col_type(col), task.col_levels(col), newdata.nrow)
            filler = DataBackend(pd.DataFrame(na_cols), primary_key=newdata.primary_key)
            newdata = DataBackendCbind(newdata, filler)

        task.backend = newdata
        task.filter(newdata.rownames)
        return self.predict(task)

    def reset(self) -> "Learner":
        """Un-train the learner by dropping its state."""
        self.state = None
        return self

    def base_learner(self, recursive: float = math.inf) -> "Learner":
        """
        Extract the base learner from nested learners.

        Args:
            recursive: Maximum number of nesting levels to unwrap

        Returns:
            The learner itself for regular learners
        """
        return self._base_learner(recursive)

    def clone(self, deep: bool = True) -> "Learner":
        """
        Copy the learner.

        With ``deep`` set, the parameter set, the fallback learner and the
        state (including the stored training task and the log) are copied.
        A hotstart stack is shared between copies.
        """
        if not deep:
            return copy.copy(self)
        memo = {id(self.reflections): self.reflections}
        if self._hotstart_stack is not None:
            memo[id(self._hotstart_stack)] = self._hotstart_stack
        return copy.deepcopy(self, memo)

    # -- views on the state ----------------------------------------------------

    @property
    def model(self) -> Any:
        """The fitted model, ``None`` before training."""
        if self.state is None:
            return None
        return self.state.get("model")

    @model.setter
    def model(self, value: Any) -> None:
        if self.state is None:
            self.state = {}
        self.state["model"] = value

    @property
    def timings(self) -> Dict[str, float]:
        """Elapsed seconds of the train and predict steps, ``nan`` if not measured."""
        state = self.state or {}
        return {
            stage: float(state[f"{stage}_time"]) if state.get(f"{stage}_time") is not None else math.nan
            for stage in STAGES
        }

    @property
    def log(self) -> Optional[pd.DataFrame]:
        """Captured output, warnings and errors with columns stage, class and msg."""
        if self.state is None:
            return None
        return self.state.get("log")

    @property
    def warnings(self) -> List[str]:
        return self._log_messages("warning")

    @property
    def errors(self) -> List[str]:
        return self._log_messages("error")

    def _log_messages(self, condition: str) -> List[str]:
        log = self.log
        if log is None or not len(log):
            return []
        return log.loc[log["class"] == condition, "msg"].tolist()

    @property
    def hash(self) -> str:
        return calculate_hash(
            f"{type(self).__module__}.{type(self).__qualname__}",
            self.id,
            self._param_set.values,
            self._predict_type,
            self._fallback.hash if self._fallback is not None else None,
            self.parallel_predict,
        )

    @property
    def phash(self) -> str:
        """Hash ignoring the hyperparameter values."""
        return calculate_hash(
            f"{type(self).__module__}.{type(self).__qualname__}",
            self.id,
            self._predict_type,
            self._fallback.hash if self._fallback is not None else None,
            self.parallel_predict,
        )

    # -- configuration ---------------------------------------------------------

    @property
    def predict_type(self) -> str:
        return self._predict_type

    @predict_type.setter
    def predict_type(self, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError(f"predict_type must be a string, got {value!r}")
        if value not in self.predict_types:
            raise ValueError(f"Learner '{self.id}' does not support predict type '{value}'")
        self._predict_type = value

    @property
    def param_set(self) -> ParamSet:
        return self._param_set

    @param_set.setter
    def param_set(self, value: ParamSet) -> None:
        if value is not self._param_set:
            raise AttributeError("param_set is read-only.")

    @property
    def encapsulate(self) -> Dict[str, str]:
        """Encapsulation method per stage: none, try, evaluate or subprocess."""
        return {**{stage: "none" for stage in STAGES}, **(self._encapsulate or {})}

    @encapsulate.setter
    def encapsulate(self, value: Union[str, Dict[str, str]]) -> None:
        if isinstance(value, str):
            value = {stage: value for stage in STAGES}
        assert_subset(value.keys(), STAGES, "encapsulation stages")
        assert_subset(value.values(), self.reflections.encapsulation_methods, "encapsulation methods")
        self._encapsulate = {**{stage: "none" for stage in STAGES}, **value}

    @property
    def timeout(self) -> Dict[str, float]:
        """Time budget in seconds per stage, enforcement depends on the encapsulation."""
        return dict(self._timeout)

    @timeout.setter
    def timeout(self, value: Union[float, Dict[str, float]]) -> None:
        if not isinstance(value, dict):
            value = {stage: value for stage in STAGES}
        assert_subset(value.keys(), STAGES, "timeout stages")
        for stage, seconds in value.items():
            if seconds is None or seconds <= 0:
                raise ValueError(f"Timeout for stage '{stage}' must be positive, got {seconds}")
        self._timeout.update({stage: float(seconds) for stage, seconds in value.items()})

    @property
    def fallback(self) -> Optional["Learner"]:
        """
        Learner used for predictions when fitting or predicting fails.

        Setting a fallback switches both stages to ``evaluate`` encapsulation
        unless encapsulation was configured before.
        """
        return self._fallback

    @fallback.setter
    def fallback(self, value: Optional["Learner"]) -> None:
        if value is not None:
            if not isinstance(value, Learner):
                raise TypeError(f"fallback must be a Learner, got {type(value).__name__}")
            if value.task_type != self.task_type:
                raise TaskCompatibilityError(
                    f"Fallback learner '{value.id}' has task type '{value.task_type}', expected '{self.task_type}'"
                )
            if value.predict_type != self.predict_type:
                warnings.warn(
                    f"The fallback learner '{value.id}' and the base learner '{self.id}' have different "
                    f"predict types: '{value.predict_type}' != '{self.predict_type}'.",
                    UserWarning,
                )
            if self._encapsulate is None:
                self._encapsulate = {stage: "evaluate" for stage in STAGES}
        self._fallback = value

    @property
    def predict_sets(self) -> List[str]:
        """
        Row sets a resampling driver should predict on after training.

        The learner itself only ever predicts the rows it is asked for, so this
        is metadata for callers and does not enter ``hash``.
        """
        return list(self._predict_sets)

    @predict_sets.setter
    def predict_sets(self, value: Union[str, Sequence[str]]) -> None:
        if isinstance(value, str):
            value = [value]
        self._predict_sets = assert_ordered_set(value, self.reflections.predict_sets, "predict_sets", empty_ok=False)

    @property
    def hotstart_stack(self) -> Optional[HotstartStack]:
        return self._hotstart_stack

    @hotstart_stack.setter
    def hotstart_stack(self, value: Optional[HotstartStack]) -> None:
        if value is not None and not isinstance(value, HotstartStack):
            raise TypeError(f"hotstart_stack must be a HotstartStack, got {type(value).__name__}")
        self._hotstart_stack = value

    # -- printing --------------------------------------------------------------

    def __repr__(self) -> str:
        return f"<{type(self).__name__}:{self.id}>"

    def __str__(self) -> str:
        model = self.model
        predict_types = [f"[{pt}]" if pt == self.predict_type else pt for pt in self.predict_types]
        lines = [
            repr(self) + (f": {self.label}" if self.label else ""),
            f"* Model: {type(model).__name__ if model is not None else '-'}",
            f"* Parameters: {self._param_set.values or 'list()'}",
            f"* Packages: {', '.join(self.packages)}",
            f"* Predict Types: {', '.join(predict_types)}",
            f"* Feature Types: {', '.join(self.feature_types)}",
            f"* Properties: {', '.join(self.properties)}",
        ]
        if self.warnings:
            lines.append(f"* Warnings: {'; '.join(self.warnings)}")
        if self.errors:
            lines.append(f"* Errors: {'; '.join(self.errors)}")
        return "\n".join(lines)


class LearnerClassif(Learner):
    """Base class for classification learners."""

    def __init__(
        self,
        id: str,
        param_set: Optional[ParamSet] = None,
        predict_types: Sequence[str] = ("response",),
        feature_types: Sequence[str] = (),
        properties: Sequence[str] = (),
        data_formats: Sequence[str] = ("pandas",),
        packages: Sequence[str] = (),
        label: Optional[str] = None,
        man: Optional[str] = None,
        reflections: Optional[Reflections] = None,
    ):
        super().__init__(
            id, "classif", param_set=param_set, predict_types=predict_types, feature_types=feature_types,
            properties=properties, data_formats=data_formats, packages=packages, label=label, man=man,
            reflections=reflections,
        )


class LearnerRegr(Learner):
    """Base class for regression learners."""

    def __init__(
        self,
        id: str,
        param_set: Optional[ParamSet] = None,
        predict_types: Sequence[str] = ("response",),
        feature_types: Sequence[str] = (),
        properties: Sequence[str] = (),
        data_formats: Sequence[str] = ("pandas",),
        packages: Sequence[str] = (),
        label: Optional[str] = None,
        man: Optional[str] = None,
        reflections: Optional[Reflections] = None,
    ):
        super().__init__(
            id, "regr", param_set=param_set, predict_types=predict_types, feature_types=feature_types,
            properties=properties, data_formats=data_formats, packages=packages, label=label, man=man,
            reflections=reflections,
        )


def assert_learnable(task: Task, learner: Learner) -> None:
    """
    Check that ``learner`` can be trained on ``task``.

    Raises:
        TaskCompatibilityError: On a task type, feature type or property mismatch
    """
    _assert_task_type(task, learner)
    _assert_feature_types(task, learner)
    required = [prop for prop in task.properties if prop in ("twoclass", "multiclass", "weights")]
    missing = [prop for prop in required if prop not in learner.properties]
    if missing:
        raise TaskCompatibilityError(
            f"Task '{task.id}' has missing properties required by learner '{learner.id}': {missing}"
        )


def assert_predictable(task: Task, learner: Learner) -> None:
    """
    Check that ``learner`` can predict on ``task``.

    Raises:
        TaskCompatibilityError: On a task type or feature type mismatch, or if
            the features differ from those seen during training
    """
    _assert_task_type(task, learner)
    _assert_feature_types(task, learner)
    trained_features = (learner.state or {}).get("feature_names")
    if trained_features is not None and set(trained_features) != set(task.feature_names):
        raise TaskCompatibilityError(
            f"Learner '{learner.id}' has received tasks with different columns in train and predict."
        )


def _assert_task_type(task: Task, learner: Learner) -> None:
    if task.task_type != learner.task_type:
        raise TaskCompatibilityError(
            f"Type '{task.task_type}' of task '{task.id}' does not match type '{learner.task_type}' "
            f"of learner '{learner.id}'"
        )


def _assert_feature_types(task: Task, learner: Learner) -> None:
    unsupported = sorted(set(task.feature_types["type"]) - set(learner.feature_types))
    if unsupported:
        raise TaskCompatibilityError(
            f"Task '{task.id}' has the following unsupported feature types: {', '.join(unsupported)}"
        )


def _na_column(col_type: str, levels: Optional[List[Any]], n: int) -> Any:
    """Column of ``n`` missing values with the storage type of ``col_type``."""
    if col_type in ("factor", "ordered"):
        return pd.Categorical([None] * n, categories=levels, ordered=col_type == "ordered")
    if col_type == "integer":
        return pd.array([pd.NA] * n, dtype="Int64")
    if col_type == "logical":
        return pd.array([pd.NA] * n, dtype="boolean")
    if col_type == "numeric":
        return np.full(n, np.nan)
    if col_type == "datetime":
        return pd.Series([pd.NaT] * n, dtype="datetime64[ns]").to_numpy()
    return np.full(n, None, dtype=object)
