"""
Reflection tables enumerating valid task types, feature types, predict types
and learner properties.

Learners validate their capability metadata against a ``Reflections`` object
at construction time. A default instance is provided, alternate tables can be
passed to the learner constructor.
"""

from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Sequence, Tuple


_COMMON_PROPERTIES = (
    "featureless",
    "missings",
    "weights",
    "importance",
    "selected_features",
    "oob_error",
    "hotstart_forward",
    "hotstart_backward",
    "loglik",
)


def _freeze(table: Mapping) -> Mapping:
    return MappingProxyType({
        key: MappingProxyType(dict(value)) if isinstance(value, Mapping) else tuple(value)
        for key, value in table.items()
    })


class Reflections:
    """
    Read-only registry of the values a learner may declare, keyed by task type.

    All tables are immutable once the object is constructed.
    """

    def __init__(
        self,
        task_types: Optional[Sequence[str]] = None,
        task_feature_types: Optional[Sequence[str]] = None,
        learner_predict_types: Optional[Dict[str, Dict[str, List[str]]]] = None,
        learner_properties: Optional[Dict[str, List[str]]] = None,
        data_formats: Optional[Sequence[str]] = None,
        task_col_roles: Optional[Sequence[str]] = None,
        task_row_roles: Optional[Sequence[str]] = None,
        encapsulation_methods: Optional[Sequence[str]] = None,
        predict_sets: Optional[Sequence[str]] = None,
    ):
        self.task_types: Tuple[str, ...] = tuple(task_types or ("classif", "regr"))
        self.task_feature_types: Tuple[str, ...] = tuple(task_feature_types or (
            "logical", "integer", "numeric", "character", "factor", "ordered", "datetime"
        ))
        self.learner_predict_types = _freeze(learner_predict_types or {
            "classif": {
                "response": ["response"],
                "prob": ["response", "prob"],
            },
            "regr": {
                "response": ["response"],
                "se": ["response", "se"],
                "distr": ["response", "se", "distr"],
            },
        })
        self.learner_properties = _freeze(learner_properties or {
            "classif": _COMMON_PROPERTIES + ("twoclass", "multiclass"),
            "regr": _COMMON_PROPERTIES,
        })
        self.data_formats: Tuple[str, ...] = tuple(data_formats or ("pandas", "numpy"))
        self.task_col_roles: Tuple[str, ...] = tuple(task_col_roles or (
            "feature", "target", "name", "order", "stratum", "group", "weight"
        ))
        self.task_row_roles: Tuple[str, ...] = tuple(task_row_roles or ("use", "test"))
        self.encapsulation_methods: Tuple[str, ...] = tuple(encapsulation_methods or (
            "none", "try", "evaluate", "subprocess"
        ))
        self.predict_sets: Tuple[str, ...] = tuple(predict_sets or ("train", "test", "internal_valid"))

        self._args = (
            self.task_types,
            self.task_feature_types,
            {key: {k: list(v) for k, v in value.items()} for key, value in self.learner_predict_types.items()},
            {key: list(value) for key, value in self.learner_properties.items()},
            self.data_formats,
            self.task_col_roles,
            self.task_row_roles,
            self.encapsulation_methods,
            self.predict_sets,
        )

        missing = set(self.task_types) - set(self.learner_predict_types)
        if missing:
            raise ValueError(f"No predict types registered for task types: {sorted(missing)}")

    def __reduce__(self):
        # mapping proxies cannot be pickled, rebuild from plain containers
        return (type(self), self._args)

    def predict_types_for(self, task_type: str) -> Tuple[str, ...]:
        """Return the predict types valid for ``task_type``."""
        if task_type not in self.learner_predict_types:
            raise ValueError(f"Unknown task type: {task_type}. Available: {list(self.task_types)}")
        return tuple(self.learner_predict_types[task_type].keys())

    def properties_for(self, task_type: str) -> Tuple[str, ...]:
        """Return the learner properties valid for ``task_type``."""
        return tuple(self.learner_properties.get(task_type, ()))

    def implied_predict_types(self, task_type: str, predict_type: str) -> Tuple[str, ...]:
        """Return all prediction columns produced for the given predict type."""
        return tuple(self.learner_predict_types[task_type][predict_type])


DEFAULT_REFLECTIONS = Reflections()
