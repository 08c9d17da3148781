from typing import Literal

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from sklearn.pipeline import Pipeline

from modelselect.data.preprocessing import DataSplit
from modelselect.training.families import ModelFamily, get_family
from modelselect.training.grid import ConfigurationGrid
from modelselect.training.metrics import Metric, get_metric
from modelselect.training.resampling import FoldAssignment


class WorkflowSettings(BaseModel):
    """Settings of one model selection experiment.

    Usually loaded from a JSON file under `model_settings`. Invalid values
    are rejected here, before any data is split or any model is fit.
    """

    model_config = ConfigDict(protected_namespaces=())
    family: str
    param_grid: dict[str, list] | list[dict[str, list]] | None = None
    train_fraction: float = Field(default=0.75, gt=0, lt=1)
    cv_splits: int = Field(default=10, ge=2)
    cv_repeats: int = Field(default=5, ge=1)
    random_state: int = 42
    scoring: str = "roc_auc"
    positive_class: str | int | None = None
    n_jobs: int = 1
    backend: Literal["loky", "threading", "multiprocessing"] = "loky"
    experiment_name: str = "Default Experiment"
    model_name: str = "Segmentation_Quality_Classifier"
    log_entire_dataset: bool = False
    description: str | None = None
    tags: dict | None = None

    @field_validator("family")
    @classmethod
    def family_is_registered(cls, value: str) -> str:
        try:
            get_family(value)
        except KeyError as e:
            raise ValueError(str(e)) from e
        return value

    @field_validator("scoring")
    @classmethod
    def scoring_is_known(cls, value: str) -> str:
        try:
            get_metric(value)
        except KeyError as e:
            raise ValueError(str(e)) from e
        return value

    @model_validator(mode="after")
    def scoring_fits_family(self):
        if self.metric().needs == "proba" and not self.model_family().probabilistic:
            raise ValueError(
                f"Metric {self.scoring!r} needs probabilities, "
                f"which family {self.family!r} does not provide"
            )
        return self

    def model_family(self) -> ModelFamily:
        return get_family(self.family)

    def metric(self) -> Metric:
        return get_metric(self.scoring)

    def grid(self) -> ConfigurationGrid:
        """Configurations to evaluate, the family's default grid if none was given."""
        if self.param_grid is None:
            return ConfigurationGrid(self.model_family().default_grid)
        return ConfigurationGrid(self.param_grid)


class ScoreRecord(BaseModel):
    """Score of one configuration on one fold.

    `score` is None when the fit failed; `error` then holds the reason.
    """

    config_index: int
    repeat: int
    fold: int
    score: float | None = None
    error: str | None = None
    fit_seconds: float = 0.0

    @property
    def failed(self) -> bool:
        return self.score is None


class ConfigurationSummary(BaseModel):
    """Aggregate of one configuration's fold scores."""

    config_index: int
    params: dict
    mean: float | None = None
    std: float | None = None
    stderr: float | None = None
    n_records: int = 0
    n_failures: int = 0


class ConfusionMatrix(BaseModel):
    """Counts per (true label, predicted label), rows are true labels."""

    labels: list
    counts: list[list[int]]

    @property
    def total(self) -> int:
        return sum(sum(row) for row in self.counts)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            self.counts,
            index=pd.Index(self.labels, name="true"),
            columns=pd.Index(self.labels, name="predicted"),
        )


class RocCurve(BaseModel):
    """Every operating point of a decision threshold sweep."""

    fpr: list[float]
    tpr: list[float]
    thresholds: list[float]
    auc: float


class EvaluationReport(BaseModel):
    positive_class: str | int
    n_samples: int
    confusion_matrix: ConfusionMatrix
    roc_curve: RocCurve
    accuracy: float
    kappa: float
    sensitivity: float
    specificity: float

    @property
    def auc(self) -> float:
        return self.roc_curve.auc


class SelectionResult(BaseModel):
    """Everything a model selection run produced."""

    model_config = ConfigDict(arbitrary_types_allowed=True)
    settings: WorkflowSettings
    positive_class: str | int
    split: DataSplit
    folds: FoldAssignment
    grid: ConfigurationGrid
    records: list[ScoreRecord]
    summaries: list[ConfigurationSummary]
    best_index: int
    model: Pipeline
    evaluation: EvaluationReport

    @property
    def best_params(self) -> dict:
        return self.grid[self.best_index]

    @property
    def best_summary(self) -> ConfigurationSummary:
        return self.summaries[self.best_index]
