"""Exact max-sum decoding over chain-structured potentials.

The chain oracle reduces both plain prediction and loss-augmented decoding to
one problem: given unary potentials ``theta_unary[pos, state]`` and pairwise
potentials ``theta_pair[prev, state]`` (shared by all adjacent positions),
find the state sequence with the highest total score. Scores are additive
log-domain quantities, so the forward recursion is

    alpha[0]   = theta_unary[0]
    alpha[pos] = theta_unary[pos] + max_prev(alpha[pos - 1, prev] + theta_pair[prev, :])

with the arg-max predecessor of every ``(pos, state)`` cell recorded in a
backpointer table. The best sequence is recovered by walking that table from
the best final state back to position 0.

Ties are always resolved towards the lowest state index, so decoding is
reproducible for a given set of potentials.
"""
from __future__ import annotations
from typing import Tuple

import numpy as np

from .errors import PreconditionViolation


def viterbi_decode(theta_unary: np.ndarray, theta_pair: np.ndarray) -> Tuple[np.ndarray, float]:
    """
    Finds the highest-scoring state sequence of a chain.

    Args:
        theta_unary: Array of shape ``(length, num_states)``.
        theta_pair: Array of shape ``(num_states, num_states)``; entry
                    ``[a, b]`` scores the transition from state ``a`` at one
                    position to state ``b`` at the next.

    Returns:
        A ``(path, score)`` tuple: the integer state sequence of shape
        ``(length,)`` and its total score.

    Raises:
        PreconditionViolation: If the chain is empty or the shapes disagree.
    """
    theta_unary = np.asarray(theta_unary, dtype=float)
    theta_pair = np.asarray(theta_pair, dtype=float)
    if theta_unary.ndim != 2 or theta_unary.shape[0] == 0:
        raise PreconditionViolation("Unary potentials must be a non-empty (length, num_states) array.")
    length, num_states = theta_unary.shape
    if theta_pair.shape != (num_states, num_states):
        raise PreconditionViolation(
            f"Pairwise potentials have shape {theta_pair.shape}, expected {(num_states, num_states)}."
        )

    alpha = theta_unary[0].copy()
    backpointers = np.zeros((length, num_states), dtype=int)

    for pos in range(1, length):
        # candidates[prev, state]; argmax over axis 0 returns the first maximum.
        candidates = alpha[:, np.newaxis] + theta_pair
        best_prev = np.argmax(candidates, axis=0)
        backpointers[pos] = best_prev
        alpha = theta_unary[pos] + candidates[best_prev, np.arange(num_states)]

    path = np.empty(length, dtype=int)
    path[-1] = int(np.argmax(alpha))
    for pos in range(length - 1, 0, -1):
        path[pos - 1] = backpointers[pos, path[pos]]

    return path, float(alpha[path[-1]])


def path_score(theta_unary: np.ndarray, theta_pair: np.ndarray, path: np.ndarray) -> float:
    """Total score of ``path`` under the given potentials."""
    theta_unary = np.asarray(theta_unary, dtype=float)
    path = np.asarray(path, dtype=int)
    score = float(theta_unary[np.arange(len(path)), path].sum())
    if len(path) > 1:
        score += float(np.asarray(theta_pair, dtype=float)[path[:-1], path[1:]].sum())
    return score
