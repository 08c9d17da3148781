import logging

import mlflow
import mlflow.sklearn
import numpy as np
import pandas as pd
from fastapi import FastAPI, HTTPException
from mlflow.entities.model_registry import ModelVersion
from mlflow.exceptions import MlflowException
from pydantic import ValidationError
from sklearn.pipeline import Pipeline
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_fixed

from modelselect.api.schemas import (
    BatchPredictionInput,
    BatchPredictionOutput,
    PredictionInput,
    PredictionOutput,
)
from modelselect.api.utils import MODEL_NAME, RETRY_WAIT, STOP_AFTER_ATTEMPT
from modelselect.training.evaluation import native

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("modelselect_api")

mlflow_client = mlflow.tracking.MlflowClient()

# Load model at startup
app = FastAPI(title="Cell Segmentation Quality Classifier API")


@retry(
    retry=retry_if_exception_type(MlflowException),
    wait=wait_fixed(RETRY_WAIT),
    stop=stop_after_attempt(STOP_AFTER_ATTEMPT),
    reraise=True,
)
def _latest_version(model_name: str) -> ModelVersion | None:
    versions = mlflow_client.search_model_versions(f"name='{model_name}'")
    if not versions:
        return None
    return max(versions, key=lambda version: int(version.version))


def load_model_for_app() -> tuple[Pipeline | None, ModelVersion | None]:
    """Load the selected model and its registry entry for the FastAPI app.

    Retrieves the latest registered version from the MLflow Model Registry
    and loads it as a scikit-learn pipeline, so class probabilities stay
    available.

    Returns
    -------
    tuple[Pipeline | None, ModelVersion | None]
        The loaded model and its registry entry, or None if loading failed.
    """
    try:
        model_version = _latest_version(MODEL_NAME)
        if model_version is None:
            raise ValueError(f"No model versions found for {MODEL_NAME}")

        model_uri = f"models:/{MODEL_NAME}/{model_version.version}"
        model = mlflow.sklearn.load_model(model_uri)
        logger.info(f"Loaded model {MODEL_NAME} version {model_version.version}")
    except Exception as e:
        logger.error(f"Failed to load model: {e}")
        model = None
        model_version = None

    return model, model_version


model, model_version = load_model_for_app()


def _predict_frame(df: pd.DataFrame) -> list[PredictionOutput]:
    labels = model.predict(df)
    probabilities = None
    if hasattr(model, "predict_proba"):
        probabilities = np.asarray(model.predict_proba(df))

    outputs = []
    for row, label in enumerate(np.asarray(labels).ravel()):
        class_probabilities = None
        if probabilities is not None:
            class_probabilities = {
                str(native(cls)): float(probabilities[row, column])
                for column, cls in enumerate(model.classes_)
            }
        outputs.append(
            PredictionOutput(
                prediction=native(label), probabilities=class_probabilities
            )
        )
    return outputs


@app.get("/health")
def health():
    global model, model_version
    if model is None:
        model, model_version = load_model_for_app()
        if model is None:
            raise HTTPException(status_code=503, detail="Model not loaded")
    return {"status": "ok"}


@app.get("/model/info")
def model_info_endpoint():
    if model is None or model_version is None:
        raise HTTPException(status_code=503, detail="Model info not available")
    return {
        "model_name": model_version.name,
        "latest_version": model_version.version,
        "run_id": model_version.run_id,
        "classes": [native(cls) for cls in model.classes_],
        "creation_timestamp": model_version.creation_timestamp,
    }


@app.post("/predict", response_model=PredictionOutput)
def predict(input: PredictionInput):
    if model is None:
        raise HTTPException(status_code=503, detail="Model not loaded")
    try:
        df = pd.DataFrame([input.features])
        return _predict_frame(df)[0]
    except ValidationError as ve:
        logger.error(f"Validation error: {ve}")
        raise HTTPException(status_code=422, detail=str(ve))
    except Exception as e:
        logger.error(f"Prediction error: {e}")
        raise HTTPException(status_code=500, detail="Prediction failed")


@app.post("/batch_predict", response_model=BatchPredictionOutput)
def batch_predict(batch: BatchPredictionInput):
    if model is None:
        raise HTTPException(status_code=503, detail="Model not loaded")
    try:
        df = pd.DataFrame([item.features for item in batch.inputs])
        return BatchPredictionOutput(predictions=_predict_frame(df))
    except ValidationError as ve:
        logger.error(f"Validation error: {ve}")
        raise HTTPException(status_code=422, detail=str(ve))
    except Exception as e:
        logger.error(f"Batch prediction error: {e}")
        raise HTTPException(status_code=500, detail="Batch prediction failed")
