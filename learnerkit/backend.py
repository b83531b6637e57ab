"""
Data backends: row/column addressable tabular storage behind a task.
"""

from typing import Any, List, Optional, Sequence

import pandas as pd

from .utils import calculate_hash

DEFAULT_PRIMARY_KEY = "..row_id"


class DataBackend:
    """
    Tabular data addressed by a primary key.

    If ``primary_key`` is not a column of ``data``, a column named
    ``..row_id`` holding ``0..n-1`` is created.
    """

    def __init__(self, data: pd.DataFrame, primary_key: Optional[str] = None):
        if not isinstance(data, pd.DataFrame):
            raise TypeError(f"DataBackend requires a pandas DataFrame, got {type(data).__name__}")

        data = data.copy()
        if primary_key is None:
            primary_key = DEFAULT_PRIMARY_KEY
        if primary_key not in data.columns:
            data.insert(0, primary_key, range(len(data)))
        if data[primary_key].duplicated().any():
            raise ValueError(f"Primary key '{primary_key}' contains duplicated values")

        self.primary_key = primary_key
        self._data = data.set_index(primary_key, drop=False)
        self._data.index.name = None
        self._hash = None

    @property
    def rownames(self) -> List[Any]:
        return self._data.index.tolist()

    @property
    def colnames(self) -> List[str]:
        return list(self._data.columns)

    @property
    def nrow(self) -> int:
        return len(self._data)

    @property
    def ncol(self) -> int:
        return self._data.shape[1]

    @property
    def hash(self) -> str:
        if self._hash is None:
            self._hash = calculate_hash(self.primary_key, self._data)
        return self._hash

    def data(self, rows: Optional[Sequence] = None, cols: Optional[Sequence[str]] = None) -> pd.DataFrame:
        """
        Return the requested rows and columns in the requested order.

        Unknown row ids are silently dropped, unknown columns raise ``KeyError``.
        """
        frame = self._data
        if rows is not None:
            rows = [row for row in rows if row in frame.index]
            frame = frame.loc[rows]
        if cols is not None:
            frame = frame[list(cols)]
        return frame.reset_index(drop=True)

    def missings(self, rows: Optional[Sequence] = None, cols: Optional[Sequence[str]] = None) -> pd.Series:
        """Count missing values per column."""
        return self.data(rows, cols).isna().sum()

    def head(self, n: int = 6) -> pd.DataFrame:
        return self.data(self.rownames[:n])

    def __repr__(self) -> str:
        return f"<{type(self).__name__} ({self.nrow}x{self.ncol})>"


class DataBackendCbind(DataBackend):
    """
    Column-wise combination of two backends sharing a primary key.

    Columns present in both backends are taken from ``b1``.
    """

    def __init__(self, b1: DataBackend, b2: DataBackend):
        if b1.primary_key != b2.primary_key:
            raise ValueError(
                f"Backends have different primary keys: '{b1.primary_key}' != '{b2.primary_key}'"
            )
        left = b1._data
        extra = [col for col in b2.colnames if col not in left.columns]
        right = b2._data[extra].reindex(left.index)
        combined = pd.concat([left, right], axis=1)

        self.primary_key = b1.primary_key
        self._data = combined
        self._hash = None


def as_data_backend(data: Any, primary_key: Optional[str] = None) -> DataBackend:
    """
    Convert ``data`` into a ``DataBackend``.

    Backends are returned unchanged, data frames are wrapped and keep their
    primary key column if one is named.
    """
    if isinstance(data, DataBackend):
        return data
    if isinstance(data, pd.DataFrame):
        return DataBackend(data, primary_key=primary_key)
    if isinstance(data, dict):
        return DataBackend(pd.DataFrame(data), primary_key=primary_key)
    raise TypeError(f"Cannot convert object of type {type(data).__name__} to a DataBackend")
