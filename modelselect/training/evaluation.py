import numpy as np
import pandas as pd
from sklearn.metrics import auc, confusion_matrix, roc_curve

from modelselect.training.metrics import (
    METRICS,
    positive_scores,
    predict_labels,
)
from modelselect.training.models import ConfusionMatrix, EvaluationReport, RocCurve


def native(value):
    """Convert numpy scalars to plain python values."""
    return value.item() if isinstance(value, np.generic) else value


def compute_roc_curve(y_true, scores: np.ndarray, positive_class) -> RocCurve:
    """ROC curve over every distinct threshold.

    Intermediate operating points are kept, so the curve holds one point
    per distinct score plus the (0, 0) origin.
    """
    fpr, tpr, thresholds = roc_curve(
        np.asarray(y_true) == positive_class, scores, drop_intermediate=False
    )
    return RocCurve(
        fpr=fpr.tolist(),
        tpr=tpr.tolist(),
        thresholds=thresholds.tolist(),
        auc=float(auc(fpr, tpr)),
    )


def evaluate_model(
    model, X_test: pd.DataFrame, y_test: pd.Series, positive_class
) -> EvaluationReport:
    """Evaluate the final model once on the evaluation partition.

    Parameters
    ----------
    model
        fitted classifier or pipeline exposing `classes_`
    X_test : pd.DataFrame
        evaluation predictors
    y_test : pd.Series
        evaluation outcome
    positive_class
        event class for the ROC curve, sensitivity and specificity

    Returns
    -------
    EvaluationReport
        confusion matrix, ROC curve with its area and threshold metrics
    """
    scores = positive_scores(model, X_test, positive_class)
    y_pred = predict_labels(model, scores, positive_class)
    labels = [native(label) for label in model.classes_]

    counts = confusion_matrix(y_test, y_pred, labels=labels)
    return EvaluationReport(
        positive_class=native(positive_class),
        n_samples=len(y_test),
        confusion_matrix=ConfusionMatrix(labels=labels, counts=counts.tolist()),
        roc_curve=compute_roc_curve(y_test, scores, positive_class),
        accuracy=METRICS["accuracy"].func(y_test, y_pred, positive_class),
        kappa=METRICS["kappa"].func(y_test, y_pred, positive_class),
        sensitivity=METRICS["sensitivity"].func(y_test, y_pred, positive_class),
        specificity=METRICS["specificity"].func(y_test, y_pred, positive_class),
    )
