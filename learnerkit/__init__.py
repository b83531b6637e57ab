"""
Learner lifecycle toolkit.

This package provides a uniform Learner abstraction: hyperparameters, training
and prediction with encapsulation, fallback learners, hotstarting and
chunk-parallel prediction, plus a plugin-like factory of concrete learners.
"""

from .backend import DataBackend, DataBackendCbind, as_data_backend
from .base_learner import Learner, LearnerClassif, LearnerRegr, assert_learnable, assert_predictable
from .config import ExecutionPlan, get_plan, nbr_of_workers, restore_plan, set_plan
from .errors import LearnerNotTrainedError, StageExecutionError, TaskCompatibilityError
from .factory import LearnerFactory, lrn
from .hotstart import HotstartStack
from .params import ParamDbl, ParamFct, ParamInt, ParamLgl, ParamSet, ParamUty
from .prediction import Prediction, PredictionClassif, PredictionData, PredictionRegr
from .reflections import DEFAULT_REFLECTIONS, Reflections
from .serialization import load_learner, save_learner
from .task import Task, TaskClassif, TaskRegr, partition

# Import registry to auto-register default learners
from . import registry

__all__ = [
    'DataBackend', 'DataBackendCbind', 'as_data_backend',
    'Learner', 'LearnerClassif', 'LearnerRegr', 'assert_learnable', 'assert_predictable',
    'ExecutionPlan', 'get_plan', 'nbr_of_workers', 'restore_plan', 'set_plan',
    'LearnerNotTrainedError', 'StageExecutionError', 'TaskCompatibilityError',
    'LearnerFactory', 'lrn',
    'HotstartStack',
    'ParamDbl', 'ParamFct', 'ParamInt', 'ParamLgl', 'ParamSet', 'ParamUty',
    'Prediction', 'PredictionClassif', 'PredictionData', 'PredictionRegr',
    'DEFAULT_REFLECTIONS', 'Reflections',
    'load_learner', 'save_learner',
    'Task', 'TaskClassif', 'TaskRegr', 'partition',
]
