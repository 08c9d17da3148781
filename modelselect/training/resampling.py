import hashlib
from typing import Iterator, NamedTuple

import numpy as np
import pandas as pd
from sklearn.model_selection import RepeatedStratifiedKFold

from modelselect.exceptions import PreconditionError


class Fold(NamedTuple):
    """One held-in / held-out split of the training partition.

    Indices are positional (for `iloc`) and read-only.
    """

    repeat: int
    fold: int
    held_in: np.ndarray
    held_out: np.ndarray


def _read_only(indices: np.ndarray) -> np.ndarray:
    indices = np.array(indices, dtype=np.int64)
    indices.setflags(write=False)
    return indices


class FoldAssignment:
    """Resampling folds generated once per experiment.

    Every configuration in the grid is scored on these same folds, which
    is what makes their aggregate scores comparable.
    """

    def __init__(
        self, folds: list[Fold], n_rows: int, cv_splits: int, cv_repeats: int
    ):
        self.folds = tuple(folds)
        self.n_rows = n_rows
        self.cv_splits = cv_splits
        self.cv_repeats = cv_repeats

    @classmethod
    def generate(
        cls,
        y_train: pd.Series,
        cv_splits: int,
        cv_repeats: int,
        random_state: int,
    ) -> "FoldAssignment":
        """Generate repeated stratified k-fold folds.

        Parameters
        ----------
        y_train : pd.Series
            outcome of the training partition, used for stratification
        cv_splits : int
            number of folds per repetition
        cv_repeats : int
            number of independent repetitions
        random_state : int
            seed, the same seed always yields the same folds

        Returns
        -------
        FoldAssignment
            cv_splits * cv_repeats folds

        Raises
        ------
        PreconditionError
            if a class has fewer rows than there are folds.
        """
        if cv_splits < 2:
            raise PreconditionError(f"cv_splits must be at least 2, got {cv_splits}")
        if cv_repeats < 1:
            raise PreconditionError(f"cv_repeats must be at least 1, got {cv_repeats}")

        smallest_class = int(y_train.value_counts().min()) if len(y_train) else 0
        if smallest_class < cv_splits:
            raise PreconditionError(
                f"Smallest training class has {smallest_class} rows, "
                f"fewer than cv_splits={cv_splits}"
            )

        splitter = RepeatedStratifiedKFold(
            n_splits=cv_splits, n_repeats=cv_repeats, random_state=random_state
        )
        placeholder = np.zeros(len(y_train))
        folds = [
            Fold(
                repeat=position // cv_splits,
                fold=position % cv_splits,
                held_in=_read_only(held_in),
                held_out=_read_only(held_out),
            )
            for position, (held_in, held_out) in enumerate(
                splitter.split(placeholder, np.asarray(y_train))
            )
        ]
        return cls(folds, len(y_train), cv_splits, cv_repeats)

    def __len__(self) -> int:
        return len(self.folds)

    def __iter__(self) -> Iterator[Fold]:
        return iter(self.folds)

    def __getitem__(self, index: int) -> Fold:
        return self.folds[index]

    def __eq__(self, other) -> bool:
        if not isinstance(other, FoldAssignment):
            return NotImplemented
        return self.fingerprint() == other.fingerprint()

    def fingerprint(self) -> str:
        """md5 digest of the held-out rows of every fold."""
        digest = hashlib.md5()
        for fold in self.folds:
            digest.update(f"{fold.repeat}:{fold.fold}:".encode())
            digest.update(np.sort(fold.held_out).tobytes())
        return digest.hexdigest()

    def to_frame(self) -> pd.DataFrame:
        """Long format table with the held-out fold of each row per repetition.

        Returns
        -------
        pd.DataFrame
            columns `row`, `repeat`, `fold`
        """
        return pd.DataFrame(
            [
                {"row": int(row), "repeat": fold.repeat, "fold": fold.fold}
                for fold in self.folds
                for row in fold.held_out
            ]
        ).sort_values(["repeat", "row"], ignore_index=True)
