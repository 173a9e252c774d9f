import itertools

import numpy as np
import pytest

from fwsvm.decoding import path_score, viterbi_decode
from fwsvm.errors import PreconditionViolation


def test_viterbi_matches_exhaustive_search():
    rng = np.random.default_rng(7)
    for length in (1, 2, 3, 5):
        unary = rng.normal(size=(length, 3))
        pair = rng.normal(size=(3, 3))

        path, score = viterbi_decode(unary, pair)

        best = max(
            itertools.product(range(3), repeat=length),
            key=lambda p: path_score(unary, pair, np.array(p)),
        )
        np.testing.assert_array_equal(path, best)
        assert score == pytest.approx(path_score(unary, pair, path))


def test_viterbi_follows_transitions_against_unary_preference():
    unary = np.array([[1.0, 0.0], [1.0, 0.0], [1.0, 0.0]])
    pair = np.array([[-5.0, 3.0], [3.0, -5.0]])

    path, score = viterbi_decode(unary, pair)

    np.testing.assert_array_equal(path, [0, 1, 0])
    assert score == pytest.approx(2.0 + 6.0)


def test_viterbi_single_position_is_argmax_with_first_tie():
    path, score = viterbi_decode(np.array([[0.5, 2.0, 2.0]]), np.zeros((3, 3)))

    np.testing.assert_array_equal(path, [1])
    assert score == 2.0


def test_viterbi_rejects_bad_shapes():
    with pytest.raises(PreconditionViolation):
        viterbi_decode(np.zeros((0, 2)), np.zeros((2, 2)))
    with pytest.raises(PreconditionViolation):
        viterbi_decode(np.zeros((3, 2)), np.zeros((3, 3)))
