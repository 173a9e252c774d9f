"""Test configuration helpers for ensuring local imports resolve."""
from __future__ import annotations

import sys
from pathlib import Path

import numpy as np
import pytest


def _ensure_project_root_on_path() -> None:
    project_root = Path(__file__).resolve().parents[1]
    if str(project_root) not in sys.path:
        sys.path.insert(0, str(project_root))


_ensure_project_root_on_path()

from fwsvm.types import Dataset  # noqa: E402


def make_chain_dataset(n_examples: int = 12, num_states: int = 3, per_unit_dim: int = 4,
                       length_range=(1, 5), noise: float = 0.3, seed: int = 0) -> Dataset:
    """Random chains whose covariates are noisy one-hot prototypes of their states."""
    rng = np.random.default_rng(seed)
    prototypes = rng.normal(size=(num_states, per_unit_dim))
    covariates, labels = [], []
    for _ in range(n_examples):
        length = int(rng.integers(length_range[0], length_range[1] + 1))
        y = rng.integers(num_states, size=length)
        x = prototypes[y] + noise * rng.normal(size=(length, per_unit_dim))
        covariates.append(x.ravel())
        labels.append(y)
    return Dataset.from_sequences(covariates, labels, num_states)


@pytest.fixture
def chain_dataset() -> Dataset:
    return make_chain_dataset()


@pytest.fixture
def make_dataset():
    return make_chain_dataset
