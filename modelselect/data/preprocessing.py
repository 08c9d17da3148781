from logging import getLogger

import numpy as np
import pandas as pd
from pydantic import BaseModel, ConfigDict
from sklearn.datasets import make_classification
from sklearn.model_selection import train_test_split
from sklearn.preprocessing import StandardScaler

from modelselect.data.utils import (
    SAMPLE_CASE_TRAIN_FRACTION,
    SAMPLE_CLASS_WEIGHTS,
    SAMPLE_CLASSES,
    SAMPLE_INFORMATIVE_FEATURES,
    SAMPLE_N_SAMPLES,
    SAMPLE_RANDOM_STATE,
    SAMPLE_REDUNDANT_FEATURES,
    SEGMENTATION_FEATURE_NAMES,
)
from modelselect.exceptions import PreconditionError

logger = getLogger(__name__)


class DataSplit(BaseModel):
    """Training and evaluation partitions of one experiment.

    Created once by `split_dataset` and treated as read-only afterwards.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)
    X_train: pd.DataFrame
    y_train: pd.Series
    X_test: pd.DataFrame
    y_test: pd.Series
    random_state: int


def make_segmentation_sample(
    n_samples: int = SAMPLE_N_SAMPLES,
    random_state: int = SAMPLE_RANDOM_STATE,
) -> pd.DataFrame:
    """Generate a synthetic cell segmentation dataset.

    Mimics the layout of the well-known cell segmentation data: a `Cell`
    identifier, the original `Case` assignment, the two-level `Class`
    outcome ("PS" poorly segmented, "WS" well segmented) and numeric
    morphology predictors. Class proportions follow the original data.

    Parameters
    ----------
    n_samples : int
        number of cells to generate
    random_state : int
        seed for the generator

    Returns
    -------
    pd.DataFrame
        sample dataset
    """
    features, labels = make_classification(
        n_samples=n_samples,
        n_features=len(SEGMENTATION_FEATURE_NAMES),
        n_informative=SAMPLE_INFORMATIVE_FEATURES,
        n_redundant=SAMPLE_REDUNDANT_FEATURES,
        weights=SAMPLE_CLASS_WEIGHTS,
        flip_y=0.05,
        class_sep=0.8,
        random_state=random_state,
    )
    rng = np.random.default_rng(random_state)

    frame = pd.DataFrame(features, columns=SEGMENTATION_FEATURE_NAMES)
    frame.insert(0, "Class", np.array(SAMPLE_CLASSES)[labels])
    frame.insert(
        0,
        "Case",
        np.where(rng.random(n_samples) < SAMPLE_CASE_TRAIN_FRACTION, "Train", "Test"),
    )
    frame.insert(0, "Cell", np.arange(207827637, 207827637 + n_samples))
    return frame


def check_outcome(X: pd.DataFrame, y: pd.Series):
    """Validate a labeled dataset before it is split.

    Parameters
    ----------
    X : pd.DataFrame
        predictors
    y : pd.Series
        two-class outcome

    Raises
    ------
    PreconditionError
        if the dataset is empty, misaligned, has missing labels
        or does not have exactly two outcome classes.
    """
    if len(X) == 0 or X.shape[1] == 0:
        raise PreconditionError("Dataset has no rows or no predictor columns")
    if len(X) != len(y):
        raise PreconditionError(
            f"Predictors have {len(X)} rows but the outcome has {len(y)}"
        )
    if y.isna().any():
        raise PreconditionError(f"Outcome has {int(y.isna().sum())} missing labels")

    n_classes = y.nunique()
    if n_classes != 2:
        raise PreconditionError(
            f"Outcome must have exactly two classes, found {n_classes}"
        )


def check_training_partition(y_train: pd.Series):
    """Fail fast if the training partition cannot support model selection."""
    if len(y_train) == 0:
        raise PreconditionError("Training partition is empty")
    if y_train.nunique() < 2:
        raise PreconditionError(
            f"Training partition holds a single class: {y_train.iloc[0]!r}"
        )


def split_dataset(
    X: pd.DataFrame,
    y: pd.Series,
    train_fraction: float,
    random_state: int,
) -> DataSplit:
    """Split a dataset into stratified training and evaluation partitions.

    Each row is assigned to exactly one partition and outcome class
    proportions are preserved within both.

    Parameters
    ----------
    X : pd.DataFrame
        predictors
    y : pd.Series
        two-class outcome aligned with `X`
    train_fraction : float
        share of rows that goes into the training partition, in (0, 1)
    random_state : int
        seed, the same seed always gives the same split

    Returns
    -------
    DataSplit
        the training and evaluation partitions

    Raises
    ------
    PreconditionError
        if the data or the ratio make a valid stratified split impossible.
    """
    if not 0 < train_fraction < 1:
        raise PreconditionError(
            f"train_fraction must lie in (0, 1), got {train_fraction}"
        )
    check_outcome(X, y)

    try:
        X_train, X_test, y_train, y_test = train_test_split(
            X,
            y,
            train_size=train_fraction,
            stratify=y,
            random_state=random_state,
        )
    except ValueError as e:
        raise PreconditionError(f"Stratified split is impossible: {e}") from e

    check_training_partition(y_train)
    if len(y_test) == 0:
        raise PreconditionError("Evaluation partition is empty")
    if list(X_train.columns) != list(X_test.columns):
        raise PreconditionError("Partitions ended up with different predictor columns")

    logger.info(
        f"Split {len(X)} rows into {len(X_train)} training "
        f"and {len(X_test)} evaluation rows"
    )
    return DataSplit(
        X_train=X_train,
        y_train=y_train,
        X_test=X_test,
        y_test=y_test,
        random_state=random_state,
    )


def get_preprocessing_stages(center_scale: bool = False):
    """Get the preprocessing stages for the pipeline.

    Stages are placed in front of the model inside one pipeline, so
    they are fit on the held-in rows of each fold only.

    Parameters
    ----------
    center_scale : bool
        whether predictors are centered and scaled before the model

    Returns
    -------
    list
        A list of tuples representing the preprocessing stages.
    """
    stages = []
    if center_scale:
        stages.append(("center_scale", StandardScaler()))
    return stages
