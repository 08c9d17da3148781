from typing import Callable, Literal, NamedTuple

import numpy as np
import pandas as pd
from sklearn.metrics import (
    accuracy_score,
    balanced_accuracy_score,
    brier_score_loss,
    cohen_kappa_score,
    f1_score,
    log_loss,
    recall_score,
    roc_auc_score,
)


class Metric(NamedTuple):
    """A scoring metric.

    `needs` tells which prediction the metric consumes:
    hard labels, a continuous positive-class score or a probability.
    """

    name: str
    func: Callable
    needs: Literal["label", "score", "proba"]
    greater_is_better: bool = True


def _sensitivity(y_true, y_pred, positive_class):
    return recall_score(y_true, y_pred, pos_label=positive_class)


def _specificity(y_true, y_pred, positive_class):
    negative_mask = np.asarray(y_true) != positive_class
    return float(np.mean(np.asarray(y_pred)[negative_mask] != positive_class))


def _roc_auc(y_true, scores, positive_class):
    return roc_auc_score(np.asarray(y_true) == positive_class, scores)


def _accuracy(y_true, y_pred, positive_class):
    return accuracy_score(y_true, y_pred)


def _balanced_accuracy(y_true, y_pred, positive_class):
    return balanced_accuracy_score(y_true, y_pred)


def _kappa(y_true, y_pred, positive_class):
    return cohen_kappa_score(y_true, y_pred)


def _f1(y_true, y_pred, positive_class):
    return f1_score(y_true, y_pred, pos_label=positive_class)


def _log_loss(y_true, proba, positive_class):
    return log_loss(np.asarray(y_true) == positive_class, proba, labels=[False, True])


def _brier(y_true, proba, positive_class):
    return brier_score_loss(np.asarray(y_true) == positive_class, proba)


METRICS = {
    metric.name: metric
    for metric in [
        Metric("roc_auc", _roc_auc, "score"),
        Metric("accuracy", _accuracy, "label"),
        Metric("balanced_accuracy", _balanced_accuracy, "label"),
        Metric("kappa", _kappa, "label"),
        Metric("f1", _f1, "label"),
        Metric("sensitivity", _sensitivity, "label"),
        Metric("specificity", _specificity, "label"),
        Metric("log_loss", _log_loss, "proba", greater_is_better=False),
        Metric("brier", _brier, "proba", greater_is_better=False),
    ]
}


def get_metric(name: str) -> Metric:
    """Look up a metric by name.

    Raises
    ------
    KeyError
        for unknown metric names.
    """
    try:
        return METRICS[name]
    except KeyError:
        raise KeyError(
            f"Unknown metric {name!r}, expected one of {sorted(METRICS)}"
        ) from None


def positive_scores(model, X: pd.DataFrame, positive_class) -> np.ndarray:
    """Continuous score for the positive class.

    Uses the positive column of `predict_proba` when the model has one,
    otherwise the decision function, signed so that larger values always
    point at the positive class.
    """
    classes = list(model.classes_)
    positive_index = classes.index(positive_class)
    if hasattr(model, "predict_proba"):
        return np.asarray(model.predict_proba(X))[:, positive_index]

    decision = np.asarray(model.decision_function(X)).ravel()
    return decision if positive_index == 1 else -decision


def predict_labels(model, scores: np.ndarray, positive_class) -> np.ndarray:
    """Hard labels derived from positive-class scores.

    Probabilities are cut at 0.5 and decision values at 0.
    """
    classes = list(model.classes_)
    negative_class = classes[1 - classes.index(positive_class)]
    threshold = 0.5 if hasattr(model, "predict_proba") else 0.0
    return np.where(scores >= threshold, positive_class, negative_class)


def score_predictions(
    metric: Metric, model, X: pd.DataFrame, y, positive_class
) -> float:
    """Score a fitted model on a held-out set with one metric."""
    scores = positive_scores(model, X, positive_class)
    if metric.needs == "label":
        y_pred = predict_labels(model, scores, positive_class)
        return float(metric.func(y, y_pred, positive_class))
    return float(metric.func(y, scores, positive_class))
