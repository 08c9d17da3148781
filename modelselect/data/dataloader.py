import json
from logging import getLogger
from pathlib import Path

import pandas as pd

from modelselect.data.preprocessing import make_segmentation_sample
from modelselect.data.utils import DEFAULT_DATA_PATH, DEFAULT_SCHEMA_PATH

logger = getLogger(__name__)


class CustomDataLoader:
    """Custom data loader for loading and processing dataset.

    If no paths are provided, it defaults to loading from the `data` directory.
    When the default dataset is missing, a synthetic segmentation sample is
    generated and saved there first.

    Attributes:
        data_path (Path): Path to the CSV data file
        schema_path (Path): Path to the JSON schema file

    Methods:
        load_data(): Loads the predictors into a pandas DataFrame
        target_column(): Returns the target column as specified in the schema
        positive_class(): Returns the event class as specified in the schema
    """

    def __init__(
        self,
        data_path: Path = DEFAULT_DATA_PATH,
        schema_path: Path = DEFAULT_SCHEMA_PATH,
    ):
        self.data_path = Path(data_path)
        self.schema_path = Path(schema_path)
        if not self.data_path.exists() and self.data_path == DEFAULT_DATA_PATH:
            logger.info(f"Generating sample dataset at {self.data_path}")
            make_segmentation_sample().to_csv(self.data_path, index=False)
        self.df = pd.read_csv(self.data_path)
        self.dataset_scheme = json.load(self.schema_path.open())

    def load_data(self):
        """Load the predictors into a pandas DataFrame.

        Drops the target and every identifier column listed under `drop`
        in the schema.

        Returns
        -------
        pd.DataFrame
            The loaded predictors.
        """
        columns = [self.dataset_scheme["target"], *self.dataset_scheme.get("drop", [])]
        return self.df.drop(columns=columns, errors="ignore")

    def target_column(self):
        """Get the target column from the dataset.

        Reads the target column name from the dataset schema and returns
        corresponding column from the DataFrame.

        Returns
        -------
        pd.Series
            The target column.
        """
        return self.df[self.dataset_scheme["target"]]

    def positive_class(self) -> str | None:
        """Event class of the outcome, or None when the schema leaves it open."""
        return self.dataset_scheme.get("positive_class")
