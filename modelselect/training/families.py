import math
from typing import Any, Callable

from catboost import CatBoostClassifier
from pydantic import BaseModel, ConfigDict
from sklearn.ensemble import RandomForestClassifier
from sklearn.linear_model import LogisticRegression
from sklearn.pipeline import Pipeline
from sklearn.svm import SVC

from modelselect.data.preprocessing import get_preprocessing_stages


class ModelFamily(BaseModel):
    """A candidate model family and how to build one configuration of it.

    Attributes
    ----------
    name : str
        registry key, e.g. "gbm"
    estimator : Callable
        estimator class or factory accepting hyperparameters as keywords
    center_scale : bool
        whether predictors are centered and scaled in front of the model
    probabilistic : bool
        whether fitted models expose `predict_proba`
    seed_param : str | None
        keyword through which the run's seed reaches the estimator
    fixed_params : dict
        parameters shared by every configuration, overridden by the grid
    simplicity_params : tuple[str, ...]
        numeric parameters ordering configurations from simplest to most
        complex, used to break ties between equally scored configurations
    default_grid : dict | list
        grid used when the settings do not provide one
    """

    model_config = ConfigDict(frozen=True)
    name: str
    estimator: Callable[..., Any]
    center_scale: bool = False
    probabilistic: bool = True
    seed_param: str | None = "random_state"
    fixed_params: dict[str, Any] = {}
    simplicity_params: tuple[str, ...] = ()
    default_grid: dict[str, list] | list[dict[str, list]] = {}

    def simplicity_key(self, params: dict) -> tuple:
        """Sort key ranking simpler configurations first.

        Returns an empty tuple when the family defines no simplicity rule.
        Missing or non-numeric values rank as the most complex.
        """
        key = []
        for name in self.simplicity_params:
            value = params.get(name, self.fixed_params.get(name))
            is_number = isinstance(value, (int, float)) and not isinstance(value, bool)
            key.append(value if is_number else math.inf)
        return tuple(key)


GBM = ModelFamily(
    name="gbm",
    estimator=CatBoostClassifier,
    seed_param="random_seed",
    fixed_params={
        "iterations": 100,
        "verbose": False,
        "allow_writing_files": False,
        "thread_count": 1,
    },
    simplicity_params=("iterations", "depth"),
    default_grid={
        "depth": [1, 3, 5],
        "learning_rate": [0.1, 0.01],
        "iterations": [100],
    },
)

SVM = ModelFamily(
    name="svm",
    estimator=SVC,
    center_scale=True,
    probabilistic=False,
    fixed_params={"kernel": "rbf"},
    default_grid={"C": [0.25, 0.5, 1.0, 2.0, 4.0], "gamma": ["scale"]},
)

RF = ModelFamily(
    name="rf",
    estimator=RandomForestClassifier,
    fixed_params={"n_estimators": 250, "n_jobs": 1},
    simplicity_params=("n_estimators", "max_features"),
    default_grid={"max_features": [2, 5, 10], "n_estimators": [250]},
)

GLM = ModelFamily(
    name="glm",
    estimator=LogisticRegression,
    center_scale=True,
    fixed_params={"max_iter": 1000},
    simplicity_params=("C",),
    default_grid={"C": [0.01, 0.1, 1.0, 10.0]},
)

FAMILIES: dict[str, ModelFamily] = {
    family.name: family for family in (GBM, SVM, RF, GLM)
}


def register_family(family: ModelFamily, overwrite: bool = False) -> ModelFamily:
    """Make a model family available by name."""
    if family.name in FAMILIES and not overwrite:
        raise ValueError(f"Model family {family.name!r} is already registered")
    FAMILIES[family.name] = family
    return family


def get_family(name: str) -> ModelFamily:
    try:
        return FAMILIES[name]
    except KeyError:
        raise KeyError(
            f"Unknown model family {name!r}, expected one of {sorted(FAMILIES)}"
        ) from None


def build_pipeline(family: ModelFamily, params: dict, random_state: int) -> Pipeline:
    """Build an unfitted pipeline for one configuration.

    Parameters
    ----------
    family : ModelFamily
        the model family
    params : dict
        the configuration's hyperparameters
    random_state : int
        seed handed to the estimator so repeated fits agree

    Returns
    -------
    Pipeline
        preprocessing stages followed by the `model` step
    """
    model_params = {**family.fixed_params, **params}
    if family.seed_param is not None:
        model_params[family.seed_param] = random_state

    return Pipeline(
        steps=[
            *get_preprocessing_stages(family.center_scale),
            ("model", family.estimator(**model_params)),
        ]
    )
