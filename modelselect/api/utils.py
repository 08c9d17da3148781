import os

MODEL_NAME = os.environ.get("MODELSELECT_MODEL_NAME", "Segmentation_Quality_Classifier")
RETRY_WAIT = 1
STOP_AFTER_ATTEMPT = 3
