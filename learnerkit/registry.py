"""
Registry module for automatically registering all available learners.
"""

import importlib.util

from loguru import logger

from .debug_learner import DebugClassifLearner
from .factory import LearnerFactory
from .featureless_learner import FeaturelessClassifLearner, FeaturelessRegrLearner
from .lightgbm_learner import LightGBMClassifLearner, LightGBMRegrLearner
from .random_forest_learner import RandomForestClassifLearner, RandomForestRegrLearner


def register_default_learners():
    """Register all default learners with the factory."""

    # Baselines and the debug learner (no extra dependencies)
    LearnerFactory.register_learner("classif.featureless", FeaturelessClassifLearner)
    LearnerFactory.register_learner("regr.featureless", FeaturelessRegrLearner)
    LearnerFactory.register_learner("classif.debug", DebugClassifLearner)

    # Random Forest (always available via sklearn)
    LearnerFactory.register_learner("classif.random_forest", RandomForestClassifLearner)
    LearnerFactory.register_learner("regr.random_forest", RandomForestRegrLearner)

    # LightGBM (always available)
    LearnerFactory.register_learner("classif.lightgbm", LightGBMClassifLearner)
    LearnerFactory.register_learner("regr.lightgbm", LightGBMRegrLearner)

    # CatBoost (if available)
    if importlib.util.find_spec("catboost") is not None:
        from .catboost_learner import CatBoostRegrLearner
        LearnerFactory.register_learner("regr.catboost", CatBoostRegrLearner)
    else:
        logger.warning("CatBoost not available - skipping registration")


# Auto-register learners when module is imported
register_default_learners()
