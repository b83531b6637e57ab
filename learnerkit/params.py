"""
Hyperparameter definitions and the parameter set holding their values.
"""

import copy
import math
import numbers
from typing import Any, Dict, Iterable, List, Optional, Sequence

_NO_DEFAULT = object()


class Param:
    """
    Base class for a single hyperparameter.

    Args:
        id: Parameter name
        default: Default value used by the underlying model
        tags: Free form tags, e.g. ``"train"``, ``"predict"`` or ``"hotstart"``
    """

    value_type = "any"

    def __init__(self, id: str, default: Any = _NO_DEFAULT, tags: Sequence[str] = ()):
        if not id:
            raise ValueError("Parameter id must be a non-empty string")
        self.id = id
        self.tags = list(tags)
        self._has_default = default is not _NO_DEFAULT
        self._default = default if self._has_default else None
        if self._has_default:
            self.check(default)

    @property
    def has_default(self) -> bool:
        return self._has_default

    @property
    def default(self) -> Any:
        return self._default

    def check(self, value: Any) -> Any:
        """Validate ``value``, returning it unchanged or raising ``ValueError``."""
        return value

    def search_space(self) -> Optional[Dict[str, Any]]:
        """Ax style search space entry, ``None`` for non tunable parameters."""
        return None

    def __repr__(self) -> str:
        return f"<{type(self).__name__}:{self.id}>"


class ParamNum(Param):
    """Numeric parameter with inclusive bounds."""

    value_type = "float"

    def __init__(
        self,
        id: str,
        lower: float = -math.inf,
        upper: float = math.inf,
        default: Any = _NO_DEFAULT,
        tags: Sequence[str] = (),
    ):
        if lower > upper:
            raise ValueError(f"Parameter '{id}': lower bound {lower} exceeds upper bound {upper}")
        self.lower = lower
        self.upper = upper
        super().__init__(id, default=default, tags=tags)

    def _check_type(self, value: Any) -> bool:
        return isinstance(value, numbers.Real) and not isinstance(value, bool)

    def check(self, value: Any) -> Any:
        if not self._check_type(value):
            raise ValueError(f"Parameter '{self.id}' must be of type {self.value_type}, got {value!r}")
        if not self.lower <= value <= self.upper:
            raise ValueError(
                f"Parameter '{self.id}' must be in [{self.lower}, {self.upper}], got {value!r}"
            )
        return value

    def search_space(self) -> Optional[Dict[str, Any]]:
        if math.isinf(self.lower) or math.isinf(self.upper):
            return None
        return {
            "name": self.id,
            "type": "range",
            "bounds": [self.lower, self.upper],
            "value_type": self.value_type,
        }


class ParamDbl(ParamNum):
    """Real valued parameter."""


class ParamInt(ParamNum):
    """Integer parameter."""

    value_type = "int"

    def _check_type(self, value: Any) -> bool:
        if isinstance(value, float) and math.isinf(value):
            return True
        return isinstance(value, numbers.Integral) and not isinstance(value, bool)


class ParamFct(Param):
    """Categorical parameter with a fixed set of levels."""

    value_type = "str"

    def __init__(self, id: str, levels: Sequence[Any], default: Any = _NO_DEFAULT, tags: Sequence[str] = ()):
        if not levels:
            raise ValueError(f"Parameter '{id}' needs at least one level")
        self.levels = list(levels)
        super().__init__(id, default=default, tags=tags)

    def check(self, value: Any) -> Any:
        if value not in self.levels:
            raise ValueError(f"Parameter '{self.id}' must be one of {self.levels}, got {value!r}")
        return value

    def search_space(self) -> Optional[Dict[str, Any]]:
        return {"name": self.id, "type": "choice", "values": list(self.levels), "value_type": self.value_type}


class ParamLgl(ParamFct):
    """Boolean parameter."""

    value_type = "bool"

    def __init__(self, id: str, default: Any = _NO_DEFAULT, tags: Sequence[str] = ()):
        super().__init__(id, levels=[True, False], default=default, tags=tags)

    def check(self, value: Any) -> Any:
        if not isinstance(value, bool):
            raise ValueError(f"Parameter '{self.id}' must be a boolean, got {value!r}")
        return value


class ParamUty(Param):
    """Untyped parameter, accepts any value passing an optional ``custom_check``."""

    def __init__(self, id: str, default: Any = _NO_DEFAULT, tags: Sequence[str] = (), custom_check=None):
        self.custom_check = custom_check
        super().__init__(id, default=default, tags=tags)

    def check(self, value: Any) -> Any:
        if self.custom_check is not None:
            message = self.custom_check(value)
            if message is not True and message is not None:
                raise ValueError(f"Parameter '{self.id}': {message}")
        return value


class ParamSet:
    """
    Schema of hyperparameters plus their currently set values.

    ``values`` returns a copy; assigning to it replaces all values at once.
    Use ``set_values`` to update some values and keep the others.

    Example:
        >>> ps = ParamSet([ParamInt("n_estimators", lower=1, default=100)])
        >>> ps.values = {"n_estimators": 10}
        >>> ps.set_values(n_estimators=20)
    """

    def __init__(self, params: Iterable[Param] = (), values: Optional[Dict[str, Any]] = None):
        self._params: Dict[str, Param] = {}
        self._values: Dict[str, Any] = {}
        for param in params:
            self.add(param)
        if values:
            self.values = values

    @property
    def params(self) -> Dict[str, Param]:
        return dict(self._params)

    @property
    def length(self) -> int:
        return len(self._params)

    def ids(self, tags: Optional[Sequence[str]] = None) -> List[str]:
        """Parameter ids, optionally restricted to those carrying all ``tags``."""
        if tags is None:
            return list(self._params)
        tags = [tags] if isinstance(tags, str) else list(tags)
        return [pid for pid, param in self._params.items() if all(tag in param.tags for tag in tags)]

    @property
    def default(self) -> Dict[str, Any]:
        return {pid: param.default for pid, param in self._params.items() if param.has_default}

    @property
    def values(self) -> Dict[str, Any]:
        return dict(self._values)

    @values.setter
    def values(self, values: Dict[str, Any]) -> None:
        values = dict(values)
        self._check_values(values)
        self._values = values

    def set_values(self, **values: Any) -> "ParamSet":
        """
        Merge ``values`` into the current values.

        A value of ``None`` removes the parameter value.
        """
        merged = dict(self._values)
        for pid, value in values.items():
            if value is None:
                merged.pop(pid, None)
            else:
                merged[pid] = value
        self.values = merged
        return self

    def get_values(self, tags: Optional[Sequence[str]] = None) -> Dict[str, Any]:
        """Values of the parameters carrying all ``tags``."""
        ids = set(self.ids(tags))
        return {pid: value for pid, value in self._values.items() if pid in ids}

    def add(self, param: Param) -> "ParamSet":
        """Extend the schema with a new parameter definition."""
        if not isinstance(param, Param):
            raise TypeError(f"Expected a Param, got {type(param).__name__}")
        if param.id in self._params:
            raise ValueError(f"Parameter '{param.id}' already exists")
        self._params[param.id] = param
        return self

    def search_space(self, tags: Optional[Sequence[str]] = None) -> List[Dict[str, Any]]:
        """
        Search space definition in Ax format for all bounded parameters.

        Returns:
            List of parameter dictionaries with keys name, type, bounds/values
            and value_type
        """
        entries = (self._params[pid].search_space() for pid in self.ids(tags))
        return [entry for entry in entries if entry is not None]

    def _check_values(self, values: Dict[str, Any]) -> None:
        unknown = [pid for pid in values if pid not in self._params]
        if unknown:
            raise ValueError(f"Unknown parameters: {unknown}. Available: {list(self._params)}")
        for pid, value in values.items():
            self._params[pid].check(value)

    def clone(self) -> "ParamSet":
        return copy.deepcopy(self)

    def __contains__(self, pid: str) -> bool:
        return pid in self._params

    def __repr__(self) -> str:
        return f"<ParamSet ({self.length} params, {len(self._values)} set)>"
