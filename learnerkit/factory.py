"""
Factory for creating and managing learner instances.
"""

from typing import Any, Dict, List, Type

from loguru import logger

from .base_learner import Learner

# learner fields which can be configured through create_learner()
LEARNER_FIELDS = ("predict_type", "encapsulate", "timeout", "fallback", "parallel_predict", "predict_sets", "hotstart_stack")


class LearnerFactory:
    """
    Factory for creating learner instances.

    Provides a registry system for learner classes, keyed by the learner id
    (e.g. ``"classif.featureless"``), allowing easy extension with new models.
    """

    _learners: Dict[str, Type[Learner]] = {}

    @classmethod
    def register_learner(cls, name: str, learner_class: Type[Learner]):
        """
        Register a new learner type.

        Args:
            name: Unique identifier for the learner
            learner_class: Class that implements the Learner interface
        """
        if not isinstance(learner_class, type) or not issubclass(learner_class, Learner):
            raise ValueError(f"Learner class must inherit from Learner, got {learner_class}")

        cls._learners[name] = learner_class
        logger.info(f"Registered learner: {name}")

    @classmethod
    def create_learner(cls, name: str, **kwargs: Any) -> Learner:
        """
        Create a learner instance.

        Keyword arguments naming a learner field such as ``predict_type`` or
        ``fallback`` are assigned to the learner, all others are set as
        hyperparameter values.

        Args:
            name: Learner identifier

        Returns:
            Learner instance

        Raises:
            ValueError: If learner name is not registered
        """
        if name not in cls._learners:
            available = list(cls._learners.keys())
            raise ValueError(f"Unknown learner: {name}. Available learners: {available}")

        learner = cls._learners[name]()
        params = {key: value for key, value in kwargs.items() if key not in LEARNER_FIELDS}
        if params:
            learner.param_set.set_values(**params)
        # predict_type goes first, the fallback setter compares against it
        for key in LEARNER_FIELDS:
            if key in kwargs:
                setattr(learner, key, kwargs[key])
        return learner

    @classmethod
    def get_available_learners(cls) -> List[str]:
        """
        Get list of available learner names.

        Returns:
            List of registered learner identifiers
        """
        return list(cls._learners.keys())

    @classmethod
    def is_learner_available(cls, name: str) -> bool:
        """
        Check if a learner is available.

        Args:
            name: Learner identifier

        Returns:
            True if learner is registered, False otherwise
        """
        return name in cls._learners

    @classmethod
    def clear_registry(cls):
        """Clear all registered learners (primarily for testing)."""
        cls._learners.clear()


def lrn(name: str, **kwargs: Any) -> Learner:
    """Shorthand for ``LearnerFactory.create_learner()``."""
    return LearnerFactory.create_learner(name, **kwargs)
