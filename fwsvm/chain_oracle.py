"""The `SVMOracle` implementation for chain-structured labels.

A chain label assigns one of ``num_states`` states to every position of a
sequence (for OCR: one letter per character image). The joint feature vector
of a (covariate, label) pair has three blocks, laid out one after another:

*   **unary** (``num_states * per_unit_dim``): the covariate block of every
    position is accumulated into the sub-block of the state it is labelled
    with.
*   **bias** (``2 * num_states``): indicator counts for the state at the first
    and at the last position. Both land in the leading ``num_states`` entries,
    so a length-1 chain scores its single state twice.
*   **pairwise** (``num_states ** 2``): transition counts, bucket
    ``a + num_states * b`` for state ``a`` followed by state ``b``.

Decoding scores are the same quantities read back out of a weight vector, so
``<w, phi(x, y)>`` equals the score `decoding.path_score` assigns to ``y``
under `ChainOracle.potentials`.
"""
from __future__ import annotations
from typing import Tuple

import numpy as np

from .decoding import viterbi_decode
from .errors import ConfigurationError, PreconditionViolation
from .oracle import SVMOracle
from .types import Covariate, Dataset, Label


class ChainOracle(SVMOracle):
    """
    Feature map, Hamming loss and Viterbi max-oracle for chain labels.

    Attributes:
        num_states: Size of the label alphabet.
        per_unit_dim: Number of covariate features per chain position.
    """
    def __init__(self, num_states: int, per_unit_dim: int):
        if num_states <= 0:
            raise ConfigurationError(f"num_states must be positive, got {num_states}.")
        if per_unit_dim <= 0:
            raise ConfigurationError(f"per_unit_dim must be positive, got {per_unit_dim}.")
        self.num_states = int(num_states)
        self.per_unit_dim = int(per_unit_dim)

    @classmethod
    def for_dataset(cls, dataset: Dataset) -> "ChainOracle":
        """Builds an oracle sized for ``dataset``."""
        return cls(dataset.num_states, dataset.per_unit_dim)

    @property
    def dim(self) -> int:
        k = self.num_states
        return k * self.per_unit_dim + 2 * k + k * k

    @property
    def _bias_offset(self) -> int:
        return self.num_states * self.per_unit_dim

    @property
    def _pair_offset(self) -> int:
        return self._bias_offset + 2 * self.num_states

    def _blocks(self, x: Covariate, length: int) -> np.ndarray:
        """Reshapes a covariate into ``(length, per_unit_dim)`` position blocks."""
        x = np.asarray(x, dtype=float).ravel()
        if length <= 0:
            raise PreconditionViolation("Chain length must be at least 1.")
        if len(x) % length != 0:
            raise PreconditionViolation(
                f"Covariate of length {len(x)} cannot be split into {length} equal blocks."
            )
        if len(x) // length != self.per_unit_dim:
            raise PreconditionViolation(
                f"Covariate blocks have {len(x) // length} features, expected {self.per_unit_dim}."
            )
        return x.reshape(length, self.per_unit_dim)

    def _check_label(self, y: Label) -> np.ndarray:
        y = np.asarray(y, dtype=int).ravel()
        if len(y) == 0:
            raise PreconditionViolation("Label must not be empty.")
        if y.min() < 0 or y.max() >= self.num_states:
            raise PreconditionViolation(f"Label states must lie in [0, {self.num_states}).")
        return y

    def _check_weights(self, w: np.ndarray) -> np.ndarray:
        w = np.asarray(w, dtype=float).ravel()
        if len(w) != self.dim:
            raise PreconditionViolation(f"Weight vector has length {len(w)}, expected {self.dim}.")
        return w

    def generate_feature_map(self, x: Covariate, y: Label) -> np.ndarray:
        """
        Computes the joint feature vector phi(x, y).

        Args:
            x: The covariate, ``len(y) * per_unit_dim`` floats.
            y: The label sequence.

        Returns:
            A dense vector of length `dim`.

        Raises:
            PreconditionViolation: If ``y`` is empty or out of range, or ``x``
                cannot be split into ``len(y)`` blocks of ``per_unit_dim``.
        """
        y = self._check_label(y)
        blocks = self._blocks(x, len(y))
        k = self.num_states

        phi = np.zeros(self.dim)
        unary = np.zeros((k, self.per_unit_dim))
        # Positions sharing a state accumulate into the same sub-block.
        np.add.at(unary, y, blocks)
        phi[: self._bias_offset] = unary.ravel()

        phi[self._bias_offset + y[0]] += 1.0
        phi[self._bias_offset + y[-1]] += 1.0

        if len(y) > 1:
            np.add.at(phi, self._pair_offset + y[:-1] + k * y[1:], 1.0)
        return phi

    def loss(self, y_truth: Label, y_predict: Label) -> float:
        """
        Normalized Hamming distance: the fraction of positions that disagree.

        Raises:
            PreconditionViolation: If the truth is empty or the lengths differ.
        """
        y_truth = np.asarray(y_truth).ravel()
        y_predict = np.asarray(y_predict).ravel()
        if len(y_truth) == 0:
            raise PreconditionViolation("Ground-truth label must not be empty.")
        if len(y_truth) != len(y_predict):
            raise PreconditionViolation(
                f"Label lengths differ: truth has {len(y_truth)}, prediction has {len(y_predict)}."
            )
        return float(np.count_nonzero(y_truth != y_predict)) / len(y_truth)

    def potentials(self, w: np.ndarray, x: Covariate, length: int) -> Tuple[np.ndarray, np.ndarray]:
        """
        Reads the chain potentials for one example out of a weight vector.

        Returns:
            ``(theta_unary, theta_pair)`` of shapes ``(length, num_states)``
            and ``(num_states, num_states)``.
        """
        w = self._check_weights(w)
        blocks = self._blocks(x, length)
        k = self.num_states

        w_unary = w[: self._bias_offset].reshape(k, self.per_unit_dim)
        w_bias = w[self._bias_offset : self._bias_offset + k]
        # Bucket a + k * b lives at row b, column a of the reshaped block.
        theta_pair = w[self._pair_offset :].reshape(k, k).T.copy()

        theta_unary = blocks @ w_unary.T
        theta_unary[0] += w_bias
        theta_unary[-1] += w_bias
        return theta_unary, theta_pair

    def max_oracle(self, w: np.ndarray, x: Covariate, y_truth: Label, num_states: int) -> Label:
        """
        Solves loss-augmented decoding for one example.

        Finds ``argmax_y <w, phi(x, y)> + loss(y_truth, y)``. The Hamming loss
        splits over positions, so it is folded into the unary potentials:
        every entry gains ``1 / length`` except the ground-truth state of each
        position.

        Args:
            w: Current weight vector of length `dim`.
            x: Covariate of the example.
            y_truth: Ground-truth label of the example.
            num_states: Size of the label alphabet; must match the oracle.

        Returns:
            The most violating label sequence.

        Raises:
            ConfigurationError: If ``num_states`` is not positive or does not
                match this oracle.
            PreconditionViolation: If the example or ``w`` is malformed.
        """
        if num_states <= 0:
            raise ConfigurationError(f"num_states must be positive, got {num_states}.")
        if num_states != self.num_states:
            raise ConfigurationError(
                f"Oracle was built for {self.num_states} states, called with {num_states}."
            )
        y_truth = self._check_label(y_truth)
        length = len(y_truth)

        theta_unary, theta_pair = self.potentials(w, x, length)
        theta_unary += 1.0 / length
        theta_unary[np.arange(length), y_truth] -= 1.0 / length

        path, _ = viterbi_decode(theta_unary, theta_pair)
        return path

    def predict(self, w: np.ndarray, x: Covariate) -> Label:
        """Decodes the highest-scoring label for ``x`` without loss augmentation."""
        x = np.asarray(x, dtype=float).ravel()
        if len(x) == 0 or len(x) % self.per_unit_dim != 0:
            raise PreconditionViolation(
                f"Covariate of length {len(x)} is not a whole number of {self.per_unit_dim}-feature blocks."
            )
        theta_unary, theta_pair = self.potentials(w, x, len(x) // self.per_unit_dim)
        path, _ = viterbi_decode(theta_unary, theta_pair)
        return path
