from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, Sequence, Tuple

import numpy as np

from .errors import PreconditionViolation

__all__ = ["Covariate", "Label", "Dataset", "SolverState", "StepResult"]

# A covariate is the flattened per-position feature blocks of one example,
# a label is one integer state per position.
Covariate = np.ndarray
Label = np.ndarray


def _frozen(arr: np.ndarray) -> np.ndarray:
    arr = arr.ravel()
    arr.flags.writeable = False
    return arr


def _as_label(y: Sequence[int], index: int) -> np.ndarray:
    """Converts a state sequence to a fresh int array, rejecting fractional states."""
    raw = np.asarray(y)
    if raw.size and raw.dtype.kind not in "biuf":
        raise PreconditionViolation(f"Label at index {index} holds non-numeric states.")
    if raw.dtype.kind == "f" and not np.all(np.mod(raw, 1) == 0):
        raise PreconditionViolation(f"Label at index {index} holds non-integer states.")
    return np.array(raw, dtype=int)


@dataclass(frozen=True, eq=False)
class Dataset:
    """
    An ordered, read-only collection of (covariate, label) training pairs.

    The dataset is loaded once and never mutated by the solver. Every
    covariate is split into ``len(label)`` equally sized blocks, one per
    position of the chain, and all examples share the same block size
    (``per_unit_dim``).

    Attributes:
        covariates: Tuple of 1-D float arrays, one per example.
        labels: Tuple of 1-D integer arrays, parallel to ``covariates``.
        num_states: Size of the label alphabet; every label value lies in
                    ``[0, num_states)``.
    """
    covariates: Tuple[Covariate, ...]
    labels: Tuple[Label, ...]
    num_states: int

    @classmethod
    def from_sequences(
        cls,
        covariates: Sequence[Sequence[float]],
        labels: Sequence[Sequence[int]],
        num_states: int,
    ) -> "Dataset":
        """
        Builds a validated dataset from plain Python or numpy sequences.

        The arrays are copied and marked read-only, so later changes to the
        inputs do not reach the dataset.
        """
        xs = tuple(_frozen(np.array(x, dtype=float)) for x in covariates)
        ys = tuple(_frozen(_as_label(y, i)) for i, y in enumerate(labels))
        dataset = cls(covariates=xs, labels=ys, num_states=int(num_states))
        dataset.validate()
        return dataset

    def __len__(self) -> int:
        return len(self.labels)

    def __iter__(self) -> Iterator[Tuple[Covariate, Label]]:
        return iter(zip(self.covariates, self.labels))

    @property
    def per_unit_dim(self) -> int:
        """Feature dimension of one chain position (taken from the first example)."""
        if not self.labels:
            raise PreconditionViolation("An empty dataset has no per-unit dimension.")
        return len(self.covariates[0]) // len(self.labels[0])

    @property
    def feature_dim(self) -> int:
        """Length of the joint feature vector for this dataset's chains."""
        k = self.num_states
        return k * self.per_unit_dim + 2 * k + k * k

    def validate(self) -> None:
        """
        Checks the partition and dimension invariants of every example.

        Raises:
            PreconditionViolation: If the collections differ in length, a label
                is empty or holds out-of-range states, a covariate cannot be
                split evenly over its label, or the per-position dimension
                differs between examples.
        """
        if self.num_states <= 0:
            raise PreconditionViolation(f"num_states must be positive, got {self.num_states}.")
        if len(self.covariates) != len(self.labels):
            raise PreconditionViolation(
                f"Got {len(self.covariates)} covariates but {len(self.labels)} labels."
            )

        unit_dim = None
        for i, (x, y) in enumerate(self):
            if len(y) == 0:
                raise PreconditionViolation(f"Label at index {i} is empty.")
            if len(x) % len(y) != 0:
                raise PreconditionViolation(
                    f"Covariate at index {i} has length {len(x)}, "
                    f"which is not a multiple of its label length {len(y)}."
                )
            if y.min() < 0 or y.max() >= self.num_states:
                raise PreconditionViolation(
                    f"Label at index {i} has states outside [0, {self.num_states})."
                )
            dim = len(x) // len(y)
            if unit_dim is None:
                unit_dim = dim
            elif dim != unit_dim:
                raise PreconditionViolation(
                    f"Example {i} has per-unit dimension {dim}, expected {unit_dim}."
                )

    def subset(self, indices: Sequence[int]) -> "Dataset":
        """Returns a new dataset holding only the examples at ``indices``, in that order."""
        return Dataset(
            covariates=tuple(self.covariates[i] for i in indices),
            labels=tuple(self.labels[i] for i in indices),
            num_states=self.num_states,
        )


class SolverState(str, Enum):
    """Lifecycle of a `BCFWSolver`."""
    INITIALIZED = "initialized"
    RUNNING = "running"
    CONVERGED = "converged"
    MAX_ITERATIONS_REACHED = "max_iterations_reached"


@dataclass(frozen=True)
class StepResult:
    """What happened during one block-coordinate step."""
    index: int
    step_size: float
    block_gap: float
    loss: float
    prediction: Label = field(repr=False)
