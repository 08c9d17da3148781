from typing import Iterator

import pandas as pd
from sklearn.model_selection import ParameterGrid

from modelselect.exceptions import PreconditionError


class ConfigurationGrid:
    """An enumerable set of hyperparameter configurations.

    Accepts either a dict mapping parameter names to candidate values
    (expanded into the Cartesian product) or a list of such dicts.
    Enumeration order is fixed: it is the grid order used for logging
    and for breaking ties between equally scored configurations.
    """

    def __init__(self, param_grid: dict | list[dict]):
        if not param_grid:
            raise PreconditionError("Configuration grid is empty")
        if isinstance(param_grid, dict):
            param_grid = [param_grid]
        for grid in param_grid:
            for name, values in grid.items():
                if isinstance(values, (str, bytes)) or not hasattr(values, "__len__"):
                    raise PreconditionError(
                        f"Grid values for {name!r} must be a list, got {values!r}"
                    )
                if len(values) == 0:
                    raise PreconditionError(f"Grid values for {name!r} are empty")

        self.configurations = tuple(ParameterGrid(param_grid))
        if len(self.configurations) == 0:
            raise PreconditionError("Configuration grid is empty")

    def __len__(self) -> int:
        return len(self.configurations)

    def __iter__(self) -> Iterator[dict]:
        return iter(self.configurations)

    def __getitem__(self, index: int) -> dict:
        return self.configurations[index]

    def to_frame(self) -> pd.DataFrame:
        """One row per configuration, indexed by grid position."""
        frame = pd.DataFrame(list(self.configurations))
        frame.index.name = "config_index"
        return frame
