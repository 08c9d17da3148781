import pytest
from sklearn.base import BaseEstimator, ClassifierMixin
from sklearn.linear_model import LogisticRegression

from modelselect.data.preprocessing import make_segmentation_sample, split_dataset
from modelselect.data.utils import SEGMENTATION_FEATURE_NAMES
from modelselect.exceptions import NoViableConfigurationError
from modelselect.training.families import GBM, GLM, ModelFamily
from modelselect.training.grid import ConfigurationGrid
from modelselect.training.metrics import get_metric
from modelselect.training.models import ConfigurationSummary, ScoreRecord
from modelselect.training.resampling import FoldAssignment
from modelselect.training.selection import (
    aggregate_scores,
    evaluate_grid,
    score_table,
    select_best,
    summary_table,
)

FRAME = make_segmentation_sample(n_samples=200, random_state=21)
SPLIT = split_dataset(
    FRAME[SEGMENTATION_FEATURE_NAMES],
    FRAME["Class"],
    train_fraction=0.75,
    random_state=3,
)
FOLDS = FoldAssignment.generate(SPLIT.y_train, 5, 2, random_state=3)
ROC_AUC = get_metric("roc_auc")


class DegenerateClassifier(ClassifierMixin, BaseEstimator):
    def __init__(self, random_state=None):
        self.random_state = random_state

    def fit(self, X, y):
        raise RuntimeError("degenerate configuration")


def flaky_logistic(broken=False, **params):
    if broken:
        return DegenerateClassifier(random_state=params.get("random_state"))
    return LogisticRegression(**params)


FLAKY = ModelFamily(
    name="flaky",
    estimator=flaky_logistic,
    center_scale=True,
    fixed_params={"max_iter": 500},
    default_grid={"broken": [False, True]},
)


def _evaluate(grid, family=GLM):
    return evaluate_grid(
        SPLIT.X_train, SPLIT.y_train, FOLDS, grid, family, ROC_AUC, "PS", 42
    )


def test_every_configuration_scored_on_every_fold():
    """Tests grid evaluation.

    Ensures one score record per (configuration, fold) and that every
    configuration was scored on the same folds.
    """
    # Arrange
    grid = ConfigurationGrid({"C": [0.01, 1.0]})

    # Act
    records = _evaluate(grid)
    summaries = aggregate_scores(records, grid)

    # Assert
    assert len(records) == len(grid) * len(FOLDS)
    assert all(not record.failed for record in records)
    folds_seen = [
        sorted((r.repeat, r.fold) for r in records if r.config_index == index)
        for index in range(len(grid))
    ]
    assert folds_seen[0] == folds_seen[1]
    assert [summary.n_records for summary in summaries] == [10, 10]
    assert all(0.0 <= summary.mean <= 1.0 for summary in summaries)


def test_failing_configuration_is_recorded_and_skipped():
    """Tests fit failure handling.

    A configuration that always fails contributes zero score records,
    does not stop the run and is never selected.
    """
    # Arrange
    grid = ConfigurationGrid([{"broken": [True]}, {"broken": [False], "C": [1.0]}])

    # Act
    records = _evaluate(grid, family=FLAKY)
    summaries = aggregate_scores(records, grid)
    best_index = select_best(summaries, ROC_AUC, FLAKY)

    # Assert
    failed = [record for record in records if record.config_index == 0]
    assert all(record.failed for record in failed)
    assert "degenerate configuration" in failed[0].error
    assert summaries[0].n_records == 0
    assert summaries[0].n_failures == len(FOLDS)
    assert summaries[0].mean is None
    assert summaries[1].n_records == len(FOLDS) - summaries[1].n_failures
    assert best_index == 1


def test_only_failing_configurations_fail_fast():
    """Tests that a grid without a single successful fit is fatal."""
    grid = ConfigurationGrid({"broken": [True]})

    summaries = aggregate_scores(_evaluate(grid, family=FLAKY), grid)

    with pytest.raises(NoViableConfigurationError):
        select_best(summaries, ROC_AUC, FLAKY)


def test_parallel_evaluation_matches_sequential():
    """Tests the worker pool.

    Ensures records are identical whether the grid is evaluated by one
    worker or several.
    """
    grid = ConfigurationGrid({"C": [0.1, 1.0]})

    sequential = _evaluate(grid)
    parallel = evaluate_grid(
        SPLIT.X_train,
        SPLIT.y_train,
        FOLDS,
        grid,
        GLM,
        ROC_AUC,
        "PS",
        42,
        n_jobs=2,
        backend="threading",
    )

    assert [r.score for r in sequential] == [r.score for r in parallel]


def test_aggregate_with_partial_failures():
    """Tests aggregation.

    Failed folds are excluded from the mean and standard error but counted.
    """
    # Arrange
    grid = ConfigurationGrid({"C": [1.0]})
    records = [
        ScoreRecord(config_index=0, repeat=0, fold=0, score=0.8),
        ScoreRecord(config_index=0, repeat=0, fold=1, score=0.6),
        ScoreRecord(config_index=0, repeat=0, fold=2, error="ValueError: boom"),
    ]

    # Act
    (summary,) = aggregate_scores(records, grid)

    # Assert
    assert summary.n_records == 2
    assert summary.n_failures == 1
    assert summary.mean == pytest.approx(0.7)
    assert summary.std == pytest.approx(0.1414213, rel=1e-5)
    assert summary.stderr == pytest.approx(0.1)


def _summaries(means, params=None):
    params = params or [{"C": float(index)} for index in range(len(means))]
    return [
        ConfigurationSummary(
            config_index=index,
            params=params[index],
            mean=mean,
            std=0.0,
            stderr=0.0,
            n_records=10,
        )
        for index, mean in enumerate(means)
    ]


def test_selected_configuration_is_best():
    """Tests selection.

    Ensures the selected aggregate is at least as good as every other one
    and that selecting again from the same table gives the same answer.
    """
    summaries = _summaries([0.71, 0.93, 0.88, 0.5])

    best_index = select_best(summaries, ROC_AUC, GLM)

    assert best_index == 1
    assert all(summaries[best_index].mean >= s.mean for s in summaries)
    assert select_best(summaries, ROC_AUC, GLM) == best_index


def test_selection_respects_metric_direction():
    summaries = _summaries([0.41, 0.35, 0.52])

    assert select_best(summaries, get_metric("log_loss"), GLM) == 1


def test_ties_go_to_first_in_grid_order():
    """Tests the tie-break of families without a simplicity rule."""
    family = ModelFamily(name="plain", estimator=LogisticRegression)
    summaries = _summaries([0.8, 0.9, 0.9, 0.9])

    assert select_best(summaries, ROC_AUC, family) == 1


def test_ties_go_to_simplest_configuration():
    """Tests the tie-break of boosted trees.

    Among equally scored configurations, fewer iterations win, then
    shallower trees, before grid order is considered.
    """
    params = [
        {"depth": 3, "iterations": 200},
        {"depth": 5, "iterations": 100},
        {"depth": 1, "iterations": 100},
        {"depth": 1, "iterations": 50},
    ]
    summaries = _summaries([0.9, 0.9, 0.9, 0.7], params)

    assert select_best(summaries, ROC_AUC, GBM) == 2


def test_result_tables():
    grid = ConfigurationGrid({"C": [0.1, 1.0]})
    records = _evaluate(grid)

    scores = score_table(records)
    summaries = summary_table(aggregate_scores(records, grid))

    assert len(scores) == 2 * len(FOLDS)
    assert {"config_index", "repeat", "fold", "score", "error"} <= set(scores.columns)
    assert list(summaries.index) == [0, 1]
    assert list(summaries["C"]) == [0.1, 1.0]
