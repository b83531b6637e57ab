"""
Stage execution for learners: encapsulated fitting and predicting,
including fallback handling.
"""

from typing import Any, List, NamedTuple, Optional, Sequence

import pandas as pd
from loguru import logger

from .encapsulation import append_log, empty_log, encapsulate
from .errors import StageExecutionError
from .prediction import PredictionData, as_prediction_data


class PredictResult(NamedTuple):
    pdata: Optional[PredictionData]
    log: pd.DataFrame
    elapsed: Optional[float]


def _train_wrapper(learner: Any, task: Any, mode: str) -> Any:
    if mode == "hotstart":
        model = learner._hotstart(task)
    else:
        model = learner._train(task)
    if model is None:
        raise ValueError(f"Learner '{learner.id}' on task '{task.id}' returned None during internal training")
    return model


def _predict_wrapper(learner: Any, task: Any) -> Any:
    return learner._predict(task)


def _errors(entries: Sequence) -> List[str]:
    return [msg for cls, msg in entries if cls == "error"]


def learner_train(learner: Any, task: Any, mode: str = "train") -> Any:
    """
    Fit ``learner`` on the rows in use of ``task`` and update its state.

    In mode ``"hotstart"`` the model already stored in the learner's state is
    updated instead of fitting a new one. A configured fallback learner is
    always fitted on the same task, so that it can step in for failed fits and
    predictions.

    Raises:
        StageExecutionError: If encapsulated fitting failed and there is no
            fallback learner
    """
    if mode == "train":
        learner.state = None
    method = learner.encapsulate["train"]

    result = encapsulate(method, _train_wrapper, (learner, task, mode), timeout=learner.timeout["train"])

    state = dict(learner.state or {})
    state.update({
        "model": result.result,
        "log": append_log(None, "train", result.log),
        "train_time": result.elapsed,
        "predict_time": None,
        "param_vals": learner.param_set.values,
        "task_hash": task.hash,
        "feature_names": task.feature_names,
    })
    state.pop("fallback_state", None)
    learner.state = state

    if result.result is None:
        logger.debug(f"Learner '{learner.id}' on task '{task.id}' failed to fit a model")
    else:
        logger.debug(f"Learner '{learner.id}' on task '{task.id}' succeeded to fit a model")

    fallback = learner.fallback
    if fallback is not None:
        if learner.predict_type in fallback.predict_types:
            fallback.predict_type = learner.predict_type
        fallback.reset()
        fallback.train(task)
        learner.state["fallback_state"] = fallback.state
        logger.debug(f"Fitted fallback learner '{fallback.id}'")
    elif result.result is None:
        raise StageExecutionError("train", learner.id, "; ".join(_errors(result.log)) or "no model returned")

    return learner


def learner_predict(learner: Any, task: Any, row_ids: Optional[Sequence] = None) -> PredictResult:
    """
    Predict ``row_ids`` of ``task`` with a trained learner.

    The learner is not modified; the stage log and the elapsed time are
    returned so that the caller can merge them, which keeps chunks predicted
    in parallel independent of each other.

    Returns:
        ``PredictResult`` with ``pdata`` set to ``None`` if no rows were requested
    """
    if row_ids is not None:
        task = task.clone()
        task.filter(row_ids)
    row_ids = task.row_ids
    if not row_ids:
        return PredictResult(None, empty_log(), None)

    predict_types = learner.reflections.implied_predict_types(learner.task_type, learner.predict_type)
    state = learner.state or {}
    pdata = None
    log = empty_log()
    elapsed = None
    errors: List[str] = []

    if state.get("model") is not None:
        method = learner.encapsulate["predict"]
        result = encapsulate(method, _predict_wrapper, (learner, task), timeout=learner.timeout["predict"])
        log = append_log(log, "predict", result.log)
        elapsed = result.elapsed
        errors = _errors(result.log)
        if result.result is not None:
            try:
                pdata = as_prediction_data(result.result, task, row_ids, predict_types)
            except (TypeError, ValueError) as e:
                if method == "none":
                    raise
                log = append_log(log, "predict", [("error", str(e))])
                errors.append(str(e))
        elif not errors:
            errors.append("no predictions returned")

    fallback = learner.fallback
    fallback_state = state.get("fallback_state")
    if fallback is not None and fallback_state is not None:
        if pdata is None:
            pdata = _predict_fallback(learner, fallback_state, task, row_ids)
            logger.debug(f"Learner '{learner.id}' used fallback learner '{fallback.id}' for all predictions")
        else:
            missing = pdata.missing_row_ids()
            if missing:
                pdata = pdata.combine(_predict_fallback(learner, fallback_state, task, missing))
                logger.debug(f"Learner '{learner.id}' used fallback learner '{fallback.id}' for {len(missing)} rows")
    elif pdata is None:
        raise StageExecutionError("predict", learner.id, "; ".join(errors) or "no fitted model")

    return PredictResult(pdata, log, elapsed)


def _predict_fallback(learner: Any, fallback_state: dict, task: Any, row_ids: Sequence) -> PredictionData:
    fallback = learner.fallback.clone()
    if learner.predict_type in fallback.predict_types:
        fallback.predict_type = learner.predict_type
    # predict() records log and timings, keep them out of the stored state
    fallback.state = dict(fallback_state)
    return fallback.predict(task, row_ids).as_prediction_data()


def predict_chunk(row_ids: Sequence, learner: Any, task: Any) -> PredictResult:
    """Adapter for ``parallel_map``: predict a single chunk of row ids."""
    return learner_predict(learner, task, row_ids)
