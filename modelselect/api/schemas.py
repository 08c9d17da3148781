from typing import List

from pydantic import BaseModel, Field


class PredictionInput(BaseModel):
    """FastAPI input model.

    Predictor values of one cell, keyed by column name. The names must
    match the predictors the served model was trained on.

    If lost, refer to the models' artifacts in MLflow for the exact list.
    """

    features: dict[str, float] = Field(min_length=1)


class BatchPredictionInput(BaseModel):
    """FastAPI input model for batch predictions.

    Used to validate and parse the input data for batch predictions.
    It contains a list of individual prediction inputs.
    """

    inputs: List[PredictionInput] = Field(min_length=1)


class PredictionOutput(BaseModel):
    prediction: str | int
    probabilities: dict[str, float] | None = None


class BatchPredictionOutput(BaseModel):
    predictions: List[PredictionOutput]
