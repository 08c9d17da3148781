import math
import time
from logging import getLogger

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from tqdm.auto import tqdm

from modelselect.exceptions import NoViableConfigurationError
from modelselect.training.families import ModelFamily, build_pipeline
from modelselect.training.grid import ConfigurationGrid
from modelselect.training.metrics import Metric, score_predictions
from modelselect.training.models import ConfigurationSummary, ScoreRecord
from modelselect.training.resampling import Fold, FoldAssignment

logger = getLogger(__name__)


def fit_and_score(
    family: ModelFamily,
    params: dict,
    config_index: int,
    fold: Fold,
    X_train: pd.DataFrame,
    y_train: pd.Series,
    metric: Metric,
    positive_class,
    random_state: int,
) -> ScoreRecord:
    """Fit one configuration on a fold's held-in rows and score its held-out rows.

    A configuration that fails to fit, predict or score is not fatal: the
    failure is returned as a record without a score.

    Returns
    -------
    ScoreRecord
        the fold's score, or the error that prevented it
    """
    started = time.perf_counter()
    try:
        model = build_pipeline(family, params, random_state)
        model.fit(X_train.iloc[fold.held_in], y_train.iloc[fold.held_in])
        score = score_predictions(
            metric,
            model,
            X_train.iloc[fold.held_out],
            y_train.iloc[fold.held_out],
            positive_class,
        )
        if not math.isfinite(score):
            raise ValueError(f"{metric.name} is not finite: {score}")
    except Exception as e:
        logger.warning(
            f"Configuration {config_index} {params} failed on "
            f"repeat {fold.repeat} fold {fold.fold}: {e}"
        )
        return ScoreRecord(
            config_index=config_index,
            repeat=fold.repeat,
            fold=fold.fold,
            error=f"{type(e).__name__}: {e}",
            fit_seconds=time.perf_counter() - started,
        )

    return ScoreRecord(
        config_index=config_index,
        repeat=fold.repeat,
        fold=fold.fold,
        score=score,
        fit_seconds=time.perf_counter() - started,
    )


def evaluate_grid(
    X_train: pd.DataFrame,
    y_train: pd.Series,
    folds: FoldAssignment,
    grid: ConfigurationGrid,
    family: ModelFamily,
    metric: Metric,
    positive_class,
    random_state: int,
    n_jobs: int = 1,
    backend: str = "loky",
) -> list[ScoreRecord]:
    """Score every configuration of the grid on every fold.

    Each (configuration, fold) pair is an independent task on a worker
    pool of `n_jobs` workers. Tasks only read the data and the fold table.

    Returns
    -------
    list[ScoreRecord]
        one record per (configuration, fold), in grid then fold order
    """
    tasks = [
        delayed(fit_and_score)(
            family,
            params,
            config_index,
            fold,
            X_train,
            y_train,
            metric,
            positive_class,
            random_state,
        )
        for config_index, params in enumerate(grid)
        for fold in folds
    ]
    logger.info(
        f"Evaluating {len(grid)} {family.name} configurations on "
        f"{len(folds)} folds ({len(tasks)} fits, n_jobs={n_jobs})"
    )

    parallel = Parallel(n_jobs=n_jobs, backend=backend, return_as="generator")
    progress = tqdm(
        parallel(tasks), total=len(tasks), desc=f"Tuning {family.name}", disable=None
    )
    records = list(progress)
    return sorted(records, key=lambda r: (r.config_index, r.repeat, r.fold))


def aggregate_scores(
    records: list[ScoreRecord], grid: ConfigurationGrid
) -> list[ConfigurationSummary]:
    """Aggregate fold scores into mean and standard error per configuration.

    Failed records are counted but excluded from the aggregate.

    Returns
    -------
    list[ConfigurationSummary]
        one summary per configuration, in grid order
    """
    summaries = []
    for config_index, params in enumerate(grid):
        config_records = [r for r in records if r.config_index == config_index]
        scores = np.array([r.score for r in config_records if not r.failed])
        n_failures = len(config_records) - len(scores)

        if len(scores) == 0:
            summaries.append(
                ConfigurationSummary(
                    config_index=config_index, params=params, n_failures=n_failures
                )
            )
            continue

        std = float(scores.std(ddof=1)) if len(scores) > 1 else 0.0
        summaries.append(
            ConfigurationSummary(
                config_index=config_index,
                params=params,
                mean=float(scores.mean()),
                std=std,
                stderr=std / math.sqrt(len(scores)),
                n_records=len(scores),
                n_failures=n_failures,
            )
        )
    return summaries


def select_best(
    summaries: list[ConfigurationSummary], metric: Metric, family: ModelFamily
) -> int:
    """Pick the configuration with the best aggregate score.

    Exact ties go to the simplest configuration when the family defines a
    simplicity rule, then to the earliest one in grid order. Configurations
    without a single successful fold are never selected.

    Returns
    -------
    int
        grid index of the selected configuration

    Raises
    ------
    NoViableConfigurationError
        if no configuration produced a score.
    """
    eligible = [summary for summary in summaries if summary.n_records > 0]
    if not eligible:
        raise NoViableConfigurationError(
            f"All {len(summaries)} configurations failed on every fold"
        )

    direction = -1 if metric.greater_is_better else 1
    best = min(
        eligible,
        key=lambda s: (
            direction * s.mean,
            family.simplicity_key(s.params),
            s.config_index,
        ),
    )
    logger.info(
        f"Selected configuration {best.config_index} {best.params} with "
        f"{metric.name}={best.mean:.4f} (stderr {best.stderr:.4f})"
    )
    return best.config_index


def score_table(records: list[ScoreRecord]) -> pd.DataFrame:
    """Per fold scores, one row per (configuration, fold)."""
    return pd.DataFrame([record.model_dump() for record in records])


def summary_table(summaries: list[ConfigurationSummary]) -> pd.DataFrame:
    """Per configuration aggregates with one column per hyperparameter."""
    rows = [
        {**summary.params, **summary.model_dump(exclude={"params"})}
        for summary in summaries
    ]
    return pd.DataFrame(rows).set_index("config_index")
