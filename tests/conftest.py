import os

# Recent MLflow releases refuse the filesystem tracking backend used by the
# test fixtures unless explicitly opted in.
os.environ.setdefault("MLFLOW_ALLOW_FILE_STORE", "true")
