import argparse
import copy
import json
import logging
from pathlib import Path

from modelselect.data.dataloader import CustomDataLoader
from modelselect.data.utils import DEFAULT_DATA_PATH, DEFAULT_SCHEMA_PATH
from modelselect.training.models import WorkflowSettings
from modelselect.training.selection import summary_table
from modelselect.training.training import register_model, start_training

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("modelselect")

SETTINGS_PATH = Path(__file__).parent.parent / "model_settings"

parser = argparse.ArgumentParser(
    description="Tune a model family and register the selected model"
)
parser.add_argument(
    "--settings_json_path",
    type=str,
    default="default_settings.json",
    help="Path to the settings JSON file name (default: default_settings.json)",
)
parser.add_argument(
    "--data_path",
    type=Path,
    default=DEFAULT_DATA_PATH,
    help="CSV dataset (default: generated segmentation sample)",
)
parser.add_argument(
    "--schema_path",
    type=Path,
    default=DEFAULT_SCHEMA_PATH,
    help="JSON schema naming the target and identifier columns",
)
parser.add_argument(
    "--no-register",
    dest="register",
    action="store_false",
    help="Skip registering the selected model in the MLflow Model Registry",
)


def load_settings(settings_json_path: str, positive_class=None) -> WorkflowSettings:
    """Load workflow settings from the `model_settings` directory.

    The dataset schema's positive class applies unless the settings
    name one themselves.
    """
    parameters = json.load((SETTINGS_PATH / settings_json_path).open())
    parameters.setdefault("positive_class", positive_class)
    return WorkflowSettings.model_validate(parameters)


def main(argv=None):
    args = parser.parse_args(argv)

    # load data
    data_loader = CustomDataLoader(args.data_path, args.schema_path)
    X = copy.deepcopy(data_loader.load_data())
    y = copy.deepcopy(data_loader.target_column())

    # load training parameters
    settings = load_settings(args.settings_json_path, data_loader.positive_class())

    # start training
    result, model_info = start_training(X, y, settings)
    print(summary_table(result.summaries).to_string())
    print(result.evaluation.confusion_matrix.to_frame().to_string())
    logger.info(
        f"Selected {result.best_params} with test AUC {result.evaluation.auc:.4f}"
    )

    # register the model
    if args.register:
        register_model(model_name=settings.model_name, model_uri=model_info.model_uri)
    return result


if __name__ == "__main__":
    main()
