"""The contract every structured-prediction problem implements for the solver.

`BCFWSolver` never looks at the shape of a label. It only needs three
operations, bundled here as `SVMOracle`:

1.  `generate_feature_map`: the joint feature vector phi(x, y).
2.  `loss`: the task loss between a ground-truth and a candidate label.
3.  `max_oracle`: the loss-augmented decoding problem
    ``argmax_y <w, phi(x, y)> + loss(y_truth, y)`` (eq. (2) of Lacoste-Julien
    et al., ICML 2013).

A new structure (chain, tree, general graph) is added by writing another
subclass and handing an instance to the solver. Operations a subclass leaves
alone raise `OracleNotImplementedError` on first use, so an incomplete oracle
shows up in integration tests instead of silently producing zero vectors.
"""
from __future__ import annotations

import numpy as np

from .errors import OracleNotImplementedError
from .types import Covariate, Label


class SVMOracle:
    """
    Base class for structure-specific oracles.

    Attributes:
        num_states: Number of states each label position can take; states
                    range over ``0 .. num_states - 1``.
    """
    num_states: int

    @property
    def dim(self) -> int:
        """Dimension of the feature vectors (and of the weight vector)."""
        raise OracleNotImplementedError(f"{type(self).__name__} does not define 'dim'.")

    def generate_feature_map(self, x: Covariate, y: Label) -> np.ndarray:
        """Returns phi(x, y) as a dense vector of length `dim`."""
        raise OracleNotImplementedError(
            f"{type(self).__name__} does not implement 'generate_feature_map'."
        )

    def loss(self, y_truth: Label, y_predict: Label) -> float:
        """Returns the structured loss of predicting ``y_predict`` when ``y_truth`` holds."""
        raise OracleNotImplementedError(f"{type(self).__name__} does not implement 'loss'.")

    def max_oracle(self, w: np.ndarray, x: Covariate, y_truth: Label, num_states: int) -> Label:
        """Returns the label maximizing ``<w, phi(x, y)> + loss(y_truth, y)``."""
        raise OracleNotImplementedError(f"{type(self).__name__} does not implement 'max_oracle'.")

    def predict(self, w: np.ndarray, x: Covariate) -> Label:
        """Returns the label maximizing ``<w, phi(x, y)>`` (plain decoding)."""
        raise OracleNotImplementedError(f"{type(self).__name__} does not implement 'predict'.")
