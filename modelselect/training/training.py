import hashlib
import tempfile
from logging import getLogger
from pathlib import Path

import mlflow
import mlflow.sklearn
import pandas as pd
from mlflow.models.model import ModelInfo

from modelselect.data.preprocessing import DataSplit, split_dataset
from modelselect.exceptions import PreconditionError
from modelselect.training.evaluation import evaluate_model, native
from modelselect.training.families import build_pipeline
from modelselect.training.models import (
    ConfigurationSummary,
    EvaluationReport,
    SelectionResult,
    WorkflowSettings,
)
from modelselect.training.resampling import FoldAssignment
from modelselect.training.selection import aggregate_scores, evaluate_grid, select_best

logger = getLogger(__name__)


def resolve_positive_class(y: pd.Series, positive_class=None):
    """Event class of the outcome.

    Defaults to the first class in sorted order, the usual convention
    for two-level factors.

    Raises
    ------
    PreconditionError
        if the requested class does not occur in the outcome.
    """
    classes = sorted(y.unique())
    if positive_class is None:
        return native(classes[0])
    if positive_class not in classes:
        raise PreconditionError(
            f"Positive class {positive_class!r} is not one of {classes}"
        )
    return positive_class


def run_model_selection(
    X: pd.DataFrame, y: pd.Series, settings: WorkflowSettings
) -> SelectionResult:
    """Run the whole model selection workflow.

    1. stratified split into training and evaluation partitions
    2. resampling folds generated once from the training partition
    3. every configuration scored on every fold
    4. best configuration selected from the aggregates
    5. best configuration refit on the full training partition
    6. final model evaluated once on the evaluation partition

    Every precondition is checked before the first fit.

    Parameters
    ----------
    X : pd.DataFrame
        predictors
    y : pd.Series
        two-class outcome
    settings : WorkflowSettings
        experiment settings

    Returns
    -------
    SelectionResult
        folds, score records, aggregates, the refit model and its evaluation
    """
    family = settings.model_family()
    metric = settings.metric()
    grid = settings.grid()

    split = split_dataset(X, y, settings.train_fraction, settings.random_state)
    positive_class = resolve_positive_class(y, settings.positive_class)
    folds = FoldAssignment.generate(
        split.y_train, settings.cv_splits, settings.cv_repeats, settings.random_state
    )
    logger.info(
        f"Generated {len(folds)} folds ({settings.cv_splits} x {settings.cv_repeats}), "
        f"fingerprint {folds.fingerprint()}"
    )

    records = evaluate_grid(
        split.X_train,
        split.y_train,
        folds,
        grid,
        family,
        metric,
        positive_class,
        settings.random_state,
        n_jobs=settings.n_jobs,
        backend=settings.backend,
    )
    summaries = aggregate_scores(records, grid)
    best_index = select_best(summaries, metric, family)

    # Refit on the entire training partition
    model = build_pipeline(family, grid[best_index], settings.random_state)
    model.fit(split.X_train, split.y_train)

    evaluation = evaluate_model(model, split.X_test, split.y_test, positive_class)
    logger.info(
        f"Evaluation on {evaluation.n_samples} rows: auc={evaluation.auc:.4f}, "
        f"accuracy={evaluation.accuracy:.4f}"
    )

    return SelectionResult(
        settings=settings,
        positive_class=positive_class,
        split=split,
        folds=folds,
        grid=grid,
        records=records,
        summaries=summaries,
        best_index=best_index,
        model=model,
        evaluation=evaluation,
    )


def log_data_version(
    split: DataSplit,
    folds: FoldAssignment,
    log_entire_dataset: bool = False,
):
    """Log data versioning information.

    Logs various metadata about the training and evaluation partitions
    and the resampling folds, including their versions and sizes.

    Parameters
    ----------
    split : DataSplit
        the training and evaluation partitions.
    folds : FoldAssignment
        the resampling folds shared by every configuration.
    log_entire_dataset : bool
        whether the partitions and the fold table are logged as artifacts.
    """
    # Log data versioning
    data_hash = hashlib.md5(
        pd.util.hash_pandas_object(
            pd.concat((split.X_train, split.y_train), axis=1), index=True
        ).values
    ).hexdigest()
    mlflow.log_param("data_version", data_hash)
    mlflow.log_param("fold_version", folds.fingerprint())
    mlflow.log_param("n_train_samples", len(split.X_train))
    mlflow.log_param("n_test_samples", len(split.X_test))
    mlflow.log_param("n_features", split.X_train.shape[1])
    mlflow.log_param("random_state", split.random_state)

    # Log datasets and folds as artifacts (CSV)
    if log_entire_dataset:
        with tempfile.TemporaryDirectory() as temp_dir:
            tables = {
                "X_train.csv": split.X_train,
                "y_train.csv": split.y_train,
                "X_test.csv": split.X_test,
                "y_test.csv": split.y_test,
                "folds.csv": folds.to_frame(),
            }
            for filename, table in tables.items():
                path = Path(temp_dir) / filename
                table.to_csv(path, index=False)
                mlflow.log_artifact(str(path), artifact_path="dataset")


def log_model_metrics(
    summary: ConfigurationSummary, evaluation: EvaluationReport, scoring: str
):
    """Log model evaluation metrics.

    Logs the resampling aggregate of the selected configuration and the
    metrics of the refit model on the evaluation partition.

    Parameters
    ----------
    summary : ConfigurationSummary
        aggregate of the selected configuration
    evaluation : EvaluationReport
        evaluation of the refit model
    scoring : str
        name of the metric the configurations were ranked by
    """
    mlflow.log_metric(f"cv_mean_{scoring}", summary.mean)
    mlflow.log_metric(f"cv_std_{scoring}", summary.std)
    mlflow.log_metric(f"cv_stderr_{scoring}", summary.stderr)
    mlflow.log_metric("test_auc", evaluation.auc)
    mlflow.log_metric("test_accuracy", evaluation.accuracy)
    mlflow.log_metric("test_kappa", evaluation.kappa)
    mlflow.log_metric("test_sensitivity", evaluation.sensitivity)
    mlflow.log_metric("test_specificity", evaluation.specificity)


def log_selection_results(result: SelectionResult):
    """Log every configuration's scores and the final evaluation as JSON artifacts."""
    mlflow.log_dict(
        {"summaries": [summary.model_dump() for summary in result.summaries]},
        "selection/cv_results.json",
    )
    mlflow.log_dict(
        {"records": [record.model_dump() for record in result.records]},
        "selection/score_records.json",
    )
    mlflow.log_dict(result.evaluation.model_dump(), "evaluation/report.json")


def start_training(
    X: pd.DataFrame,
    y: pd.Series,
    settings: WorkflowSettings,
) -> tuple[SelectionResult, ModelInfo]:
    """Start model selection with MLflow tracking.

    This function runs the model selection workflow on the given data,
    logs data and fold versions, per configuration resampling results,
    the final evaluation and the refit model to MLflow.

    Parameters
    ----------
    X : pd.DataFrame
        predictors.
    y : pd.Series
        two-class outcome.
    settings : WorkflowSettings
        experiment settings, given as such:
            family : str
                model family to tune, e.g. "gbm"
            param_grid : dict | list | None
                configurations to evaluate, the family default if None
            train_fraction : float
                share of rows in the training partition, by default 0.75
            cv_splits, cv_repeats : int
                resampling scheme, by default 10 folds repeated 5 times
            random_state : int
                random state for reproducibility, by default 42
            scoring : str
                metric configurations are ranked by, by default "roc_auc"
            experiment_name : str
                MLflow experiment to log into
            description : str | None, optional
                description of the run, by default None
            tags : dict | None, optional
                tags to apply to the run, by default None

    Returns
    -------
    tuple[SelectionResult, ModelInfo]
        the selection result and the logged model's information
    """
    mlflow.set_experiment(settings.experiment_name)

    with mlflow.start_run(
        run_name=f"{settings.family}_selection",
        log_system_metrics=True,
        description=settings.description,
        tags=settings.tags,
    ):
        result = run_model_selection(X, y, settings)

        # Log data versioning
        log_data_version(result.split, result.folds, settings.log_entire_dataset)

        # Log selection settings and results
        mlflow.log_params(
            {
                "family": settings.family,
                "scoring": settings.scoring,
                "train_fraction": settings.train_fraction,
                "cv_splits": settings.cv_splits,
                "cv_repeats": settings.cv_repeats,
                "n_configurations": len(result.grid),
                "positive_class": result.positive_class,
            }
        )
        log_selection_results(result)

        # Log metrics - CV and test
        log_model_metrics(result.best_summary, result.evaluation, settings.scoring)

        # Log hyperparameters of the refit model
        mlflow.log_params(result.model.named_steps["model"].get_params())

        # Log final model artifact
        model_info = mlflow.sklearn.log_model(result.model, "model")

    return result, model_info


def register_model(model_name: str, model_uri: str = "runs:/{run_id}/model"):
    """
    Register the trained model in MLflow Model Registry.

    Args:
        model_name : str
            the name to register the model under.
        model_uri : str
            the URI of the model to register.
    """
    return mlflow.register_model(model_uri=model_uri, name=model_name)
