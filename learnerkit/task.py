"""
Tasks: a data backend plus role metadata for its rows and columns.
"""

import copy
from typing import Any, Dict, List, Optional, Sequence, Union

import numpy as np
import pandas as pd
from sklearn.model_selection import train_test_split

from .backend import DataBackend, as_data_backend
from .reflections import DEFAULT_REFLECTIONS, Reflections
from .utils import assert_subset, calculate_hash


def infer_column_type(series: pd.Series) -> str:
    """Map a pandas dtype onto one of the reflected feature types."""
    dtype = series.dtype
    if pd.api.types.is_bool_dtype(dtype):
        return "logical"
    if isinstance(dtype, pd.CategoricalDtype):
        return "ordered" if dtype.ordered else "factor"
    if pd.api.types.is_integer_dtype(dtype):
        return "integer"
    if pd.api.types.is_float_dtype(dtype):
        return "numeric"
    if pd.api.types.is_datetime64_any_dtype(dtype):
        return "datetime"
    return "character"


def as_row_ids(row_ids: Sequence) -> List[Any]:
    """Convert row ids to a list of plain Python scalars."""
    return [row.item() if isinstance(row, np.generic) else row for row in row_ids]


class Task:
    """
    Dataset plus the roles of its rows and columns.

    Rows in role ``use`` are the ones learners train and predict on by
    default. Columns are assigned to roles such as ``feature`` or ``target``;
    columns without a role are ignored.
    """

    task_type: Optional[str] = None

    def __init__(
        self,
        id: str,
        task_type: str,
        backend: Union[DataBackend, pd.DataFrame],
        target: Union[str, Sequence[str], None] = None,
        reflections: Optional[Reflections] = None,
    ):
        self.reflections = reflections or DEFAULT_REFLECTIONS
        if not id:
            raise ValueError("Task id must be a non-empty string")
        if task_type not in self.reflections.task_types:
            raise ValueError(f"Unknown task type: {task_type}. Available: {list(self.reflections.task_types)}")

        self.id = id
        self.task_type = task_type
        self._backend: Optional[DataBackend] = as_data_backend(backend)
        self._backend_hash: Optional[str] = None

        targets = [target] if isinstance(target, str) else list(target or [])
        columns = [col for col in self._backend.colnames if col != self._backend.primary_key]
        assert_subset(targets, columns, "target columns")

        self.row_roles: Dict[str, List[Any]] = {role: [] for role in self.reflections.task_row_roles}
        self.row_roles["use"] = self._backend.rownames
        self.col_roles: Dict[str, List[str]] = {role: [] for role in self.reflections.task_col_roles}
        self.col_roles["target"] = targets
        self.col_roles["feature"] = [col for col in columns if col not in targets]

        self._col_info: Dict[str, Dict[str, Any]] = self._build_col_info(columns)

    def _build_col_info(self, columns: List[str]) -> Dict[str, Dict[str, Any]]:
        frame = self._backend.data(cols=columns)
        records = {}
        for col in columns:
            col_type = infer_column_type(frame[col])
            levels = None
            if col_type in ("factor", "ordered"):
                levels = list(frame[col].cat.categories)
            records[col] = {"id": col, "type": col_type, "levels": levels}
        return records

    def _set_col_info(self, col: str, col_type: str, levels: Optional[List[Any]]) -> None:
        self._col_info[col] = {"id": col, "type": col_type, "levels": levels}

    @property
    def col_info(self) -> pd.DataFrame:
        """Type and factor levels of every column, as a data frame."""
        return pd.DataFrame.from_records(list(self._col_info.values()), columns=["id", "type", "levels"])

    def col_type(self, col: str) -> str:
        return self._col_info[col]["type"]

    def col_levels(self, col: str) -> Optional[List[Any]]:
        return self._col_info[col]["levels"]

    @property
    def backend(self) -> Optional[DataBackend]:
        return self._backend

    @backend.setter
    def backend(self, value: Union[DataBackend, pd.DataFrame]) -> None:
        self._backend = as_data_backend(value)
        self._backend_hash = None

    def remove_backend(self) -> "Task":
        """Drop the data backend while keeping all metadata and the hash."""
        if self._backend is not None:
            self._backend_hash = self._backend.hash
        self._backend = None
        return self

    @property
    def row_ids(self) -> List[Any]:
        return self.row_roles["use"]

    @property
    def nrow(self) -> int:
        return len(self.row_roles["use"])

    @property
    def ncol(self) -> int:
        return len(self.feature_names) + len(self.target_names)

    @property
    def feature_names(self) -> List[str]:
        return list(self.col_roles["feature"])

    @property
    def target_names(self) -> List[str]:
        return list(self.col_roles["target"])

    @property
    def feature_types(self) -> pd.DataFrame:
        info = self.col_info[self.col_info["id"].isin(self.feature_names)]
        return info[["id", "type"]].reset_index(drop=True)

    @property
    def properties(self) -> List[str]:
        props = []
        if self.col_roles["weight"]:
            props.append("weights")
        if self.col_roles["group"]:
            props.append("groups")
        if self.col_roles["stratum"]:
            props.append("strata")
        return props

    @property
    def hash(self) -> str:
        backend_hash = self._backend.hash if self._backend is not None else self._backend_hash
        return calculate_hash(
            type(self).__name__,
            self.id,
            backend_hash,
            list(self._col_info.values()),
            self.row_roles,
            self.col_roles,
        )

    def data(self, rows: Optional[Sequence] = None, cols: Optional[Sequence[str]] = None) -> pd.DataFrame:
        """
        Fetch data from the backend.

        Args:
            rows: Row ids, defaults to the rows in role ``use``
            cols: Column names, defaults to targets followed by features

        Returns:
            Data frame with factor columns encoded with the task's levels
        """
        if self._backend is None:
            raise RuntimeError(f"Task '{self.id}' has no data backend")
        rows = self.row_ids if rows is None else list(rows)
        cols = self.target_names + self.feature_names if cols is None else list(cols)
        frame = self._backend.data(rows, cols)

        for col in cols:
            if col not in self._col_info:
                continue
            col_type = self.col_type(col)
            if col_type in ("factor", "ordered"):
                levels = self.col_levels(col)
                values = frame[col].astype(object) if isinstance(frame[col].dtype, pd.CategoricalDtype) else frame[col]
                frame[col] = pd.Categorical(values, categories=levels, ordered=col_type == "ordered")
        return frame

    def truth(self, rows: Optional[Sequence] = None) -> pd.Series:
        """Target values for ``rows``."""
        return self.data(rows, self.target_names[:1])[self.target_names[0]]

    def set_col_roles(self, cols: Union[str, Sequence[str]], roles: Union[str, Sequence[str]]) -> "Task":
        """Assign ``cols`` exclusively to ``roles``."""
        cols = [cols] if isinstance(cols, str) else list(cols)
        roles = [roles] if isinstance(roles, str) else list(roles)
        assert_subset(roles, self.reflections.task_col_roles, "column roles")
        assert_subset(cols, list(self._col_info), "columns")
        for role in self.col_roles:
            self.col_roles[role] = [col for col in self.col_roles[role] if col not in cols]
        for role in roles:
            self.col_roles[role].extend(cols)
        return self

    def set_row_roles(self, rows: Sequence, role: str) -> "Task":
        """Set the rows of ``role`` (``use`` or ``test``)."""
        assert_subset([role], self.reflections.task_row_roles, "row roles")
        self.row_roles[role] = as_row_ids(rows)
        return self

    def filter(self, rows: Sequence) -> "Task":
        """Restrict the rows in use to ``rows``."""
        return self.set_row_roles(rows, "use")

    def select(self, cols: Sequence[str]) -> "Task":
        """Restrict the features to ``cols``."""
        assert_subset(cols, self.feature_names, "features")
        self.col_roles["feature"] = [col for col in self.feature_names if col in cols]
        return self

    def clone(self, deep: bool = True) -> "Task":
        """
        Copy the task.

        Backends are immutable and shared between copies, everything else is
        copied when ``deep`` is set.
        """
        if not deep:
            return copy.copy(self)
        memo = {id(self.reflections): self.reflections}
        if self._backend is not None:
            memo[id(self._backend)] = self._backend
        return copy.deepcopy(self, memo)

    def __repr__(self) -> str:
        return f"<{type(self).__name__}:{self.id}> ({self.nrow} x {self.ncol})"


class TaskClassif(Task):
    """Classification task with a single categorical target."""

    def __init__(
        self,
        id: str,
        backend: Union[DataBackend, pd.DataFrame],
        target: str,
        positive: Optional[Any] = None,
        reflections: Optional[Reflections] = None,
    ):
        super().__init__(id, "classif", backend, target, reflections=reflections)

        target_type = self.col_type(target)
        if target_type not in ("factor", "ordered"):
            values = self._backend.data(cols=[target])[target].dropna()
            self._set_col_info(target, "factor", sorted(values.unique().tolist()))

        if positive is not None:
            if positive not in self.class_names:
                raise ValueError(f"Positive class '{positive}' not in class names {self.class_names}")
            if len(self.class_names) != 2:
                raise ValueError("A positive class can only be set for binary tasks")
        self.positive = positive if positive is not None else (
            self.class_names[0] if len(self.class_names) == 2 else None
        )

    @property
    def class_names(self) -> List[Any]:
        return list(self.col_levels(self.target_names[0]))

    @property
    def properties(self) -> List[str]:
        kind = "twoclass" if len(self.class_names) == 2 else "multiclass"
        return [kind] + super().properties


class TaskRegr(Task):
    """Regression task with a single numeric target."""

    def __init__(
        self,
        id: str,
        backend: Union[DataBackend, pd.DataFrame],
        target: str,
        reflections: Optional[Reflections] = None,
    ):
        super().__init__(id, "regr", backend, target, reflections=reflections)
        if self.col_type(target) not in ("numeric", "integer"):
            raise ValueError(f"Target column '{target}' must be numeric for regression tasks")


def partition(task: Task, ratio: float = 0.67, seed: Optional[int] = None) -> Dict[str, List[Any]]:
    """
    Split the rows in use into a train and a test set.

    Classification tasks are split stratified by the target.
    """
    rows = task.row_ids
    stratify = None
    if isinstance(task, TaskClassif):
        stratify = task.truth(rows).astype(str).to_numpy()
    train, test = train_test_split(rows, train_size=ratio, random_state=seed, stratify=stratify)
    return {"train": as_row_ids(train), "test": as_row_ids(test)}
