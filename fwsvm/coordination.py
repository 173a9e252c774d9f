"""The surface a distributed coordinator needs from the solver core.

Transport (how snapshots travel between machines) is left to the caller.
What lives here is the local half of the protocol: split a dataset into
disjoint shards, and merge per-shard weight vectors by snapshot-average-copy
back. The merge touches solvers only through `get_weight_vector` and
`set_weight_vector`, and must be called between steps, never during one.
"""
from __future__ import annotations
from typing import List, Optional, Sequence

import numpy as np

from .errors import ConfigurationError, PreconditionViolation
from .solver import BCFWSolver
from .types import Dataset


def shard_dataset(dataset: Dataset, n_shards: int, seed: Optional[int] = None) -> List[Dataset]:
    """
    Splits ``dataset`` into ``n_shards`` disjoint, nearly equal shards.

    Args:
        dataset: The full training set.
        n_shards: Number of shards; at most ``len(dataset)``.
        seed: When given, examples are shuffled before splitting; otherwise
              each shard is a contiguous slice in dataset order.

    Returns:
        A list of `Dataset` objects whose examples partition the input.

    Raises:
        ConfigurationError: If ``n_shards`` is not in ``[1, len(dataset)]``.
    """
    if not 1 <= n_shards <= len(dataset):
        raise ConfigurationError(
            f"n_shards must be between 1 and {len(dataset)}, got {n_shards}."
        )
    order = np.arange(len(dataset))
    if seed is not None:
        order = np.random.default_rng(seed).permutation(len(dataset))
    return [dataset.subset(part.tolist()) for part in np.array_split(order, n_shards)]


def average_weights(snapshots: Sequence[np.ndarray]) -> np.ndarray:
    """Elementwise mean of equally sized weight vectors."""
    if not snapshots:
        raise PreconditionViolation("Cannot average an empty list of weight vectors.")
    shapes = {np.shape(s) for s in snapshots}
    if len(shapes) != 1:
        raise PreconditionViolation(f"Weight vectors differ in shape: {sorted(shapes)}.")
    return np.mean(np.stack(snapshots), axis=0)


def synchronize(solvers: Sequence[BCFWSolver]) -> np.ndarray:
    """
    Averages the weight vectors of ``solvers`` and hands the mean back to each.

    Every solver receives its own copy of the average.

    Returns:
        The averaged weight vector.
    """
    merged = average_weights([s.get_weight_vector() for s in solvers])
    for s in solvers:
        s.set_weight_vector(merged)
    return merged
