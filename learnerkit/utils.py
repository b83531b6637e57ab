"""
Small helpers shared by learners, tasks and parameter sets.
"""

import importlib.util
from typing import Any, Iterable, List, Optional, Sequence

import joblib


def calculate_hash(*objects: Any) -> str:
    """
    Hash an arbitrary collection of objects.

    Dictionaries are hashed with sorted keys so that insertion order does not
    change the result.
    """
    normalized = [_normalize(obj) for obj in objects]
    return joblib.hash(normalized)


def _normalize(obj: Any) -> Any:
    if isinstance(obj, dict):
        return sorted((str(key), _normalize(value)) for key, value in obj.items())
    if isinstance(obj, (list, tuple)):
        return [_normalize(value) for value in obj]
    if isinstance(obj, (set, frozenset)):
        return sorted(_normalize(value) for value in obj)
    return obj


def check_packages_installed(packages: Iterable[str], msg: Optional[str] = None) -> None:
    """
    Check that all packages can be imported.

    Args:
        packages: Import names of the required packages
        msg: Message template with a ``{package}`` placeholder

    Raises:
        ImportError: If any package is not installed
    """
    missing = [pkg for pkg in packages if importlib.util.find_spec(pkg) is None]
    if missing:
        template = msg or "Package '{package}' required but not installed"
        raise ImportError("\n".join(template.format(package=pkg) for pkg in missing))


def assert_subset(values: Iterable[str], choices: Sequence[str], name: str) -> List[str]:
    """Ensure every element of ``values`` is one of ``choices``."""
    values = list(values)
    invalid = [value for value in values if value not in choices]
    if invalid:
        raise ValueError(f"Invalid {name}: {invalid}. Must be a subset of {list(choices)}")
    return values


def assert_ordered_set(
    values: Iterable[str], choices: Sequence[str], name: str, empty_ok: bool = True
) -> List[str]:
    """
    Ensure ``values`` is a duplicate free subset of ``choices``.

    The order of ``values`` is kept.
    """
    values = assert_subset(values, choices, name)
    if not empty_ok and not values:
        raise ValueError(f"{name} must not be empty")
    if len(set(values)) != len(values):
        raise ValueError(f"{name} must not contain duplicates, got {values}")
    return values
