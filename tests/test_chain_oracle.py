import itertools

import numpy as np
import pytest

from fwsvm.chain_oracle import ChainOracle
from fwsvm.errors import ConfigurationError, OracleNotImplementedError, PreconditionViolation
from fwsvm.oracle import SVMOracle


def _brute_force_best(oracle: ChainOracle, w, x, y_truth):
    best = -np.inf
    for candidate in itertools.product(range(oracle.num_states), repeat=len(y_truth)):
        y = np.array(candidate)
        score = w @ oracle.generate_feature_map(x, y) + oracle.loss(y_truth, y)
        best = max(best, score)
    return best


def test_feature_map_accumulates_unary_blocks_and_counts_transitions():
    oracle = ChainOracle(num_states=2, per_unit_dim=1)

    phi = oracle.generate_feature_map([1.0, 0.0, 1.0], [0, 1, 0])

    # unary [2, 0] | bias [2, 0, 0, 0] | pairwise buckets 0->1 (2) and 1->0 (1)
    np.testing.assert_array_equal(phi, [2, 0, 2, 0, 0, 0, 0, 1, 1, 0])
    assert oracle.dim == 10


def test_feature_map_single_position_counts_bias_twice():
    oracle = ChainOracle(num_states=3, per_unit_dim=2)

    for state in range(3):
        phi = oracle.generate_feature_map([0.5, -1.0], [state])
        bias = phi[6:12]
        expected = np.zeros(6)
        expected[state] = 2.0
        np.testing.assert_array_equal(bias, expected)
        assert not phi[12:].any()


def test_feature_map_places_blocks_per_state():
    oracle = ChainOracle(num_states=3, per_unit_dim=2)

    phi = oracle.generate_feature_map([1, 2, 3, 4, 5, 6], [2, 0, 2])

    np.testing.assert_array_equal(phi[:6], [3, 4, 0, 0, 6, 8])
    assert phi[6 + 2] == 2.0  # first and last are both state 2
    pair = phi[12:]
    assert pair[2 + 3 * 0] == 1.0
    assert pair[0 + 3 * 2] == 1.0
    assert pair.sum() == 2.0


@pytest.mark.parametrize(
    "x, y",
    [
        ([1.0, 2.0], []),
        ([1.0, 2.0, 3.0], [0, 1]),
        ([1.0, 2.0], [0, 5]),
        ([1.0, 2.0, 3.0, 4.0], [0, 1]),  # two features per position, oracle expects one
    ],
)
def test_feature_map_rejects_malformed_examples(x, y):
    oracle = ChainOracle(num_states=2, per_unit_dim=1)
    with pytest.raises(PreconditionViolation):
        oracle.generate_feature_map(x, y)


def test_loss_is_normalized_hamming():
    oracle = ChainOracle(num_states=4, per_unit_dim=1)

    assert oracle.loss([1, 1, 1, 1, 1], [1, 1, 2, 3, 1]) == pytest.approx(0.4)
    assert oracle.loss([3, 0, 2], [3, 0, 2]) == 0.0
    assert oracle.loss([0, 0], [1, 1]) == 1.0


def test_loss_rejects_bad_lengths():
    oracle = ChainOracle(num_states=2, per_unit_dim=1)
    with pytest.raises(PreconditionViolation):
        oracle.loss([], [])
    with pytest.raises(PreconditionViolation):
        oracle.loss([0, 1], [0])


def test_max_oracle_recovers_dominant_path():
    num_states, length = 3, 4
    oracle = ChainOracle(num_states=num_states, per_unit_dim=num_states)
    target = np.array([2, 0, 1, 1])
    x = np.eye(num_states)[target].ravel()

    w = np.zeros(oracle.dim)
    w[: num_states * num_states] = 10.0 * np.eye(num_states).ravel()

    y_truth = np.array([0, 1, 2, 0])
    np.testing.assert_array_equal(oracle.max_oracle(w, x, y_truth, num_states), target)
    np.testing.assert_array_equal(oracle.predict(w, x), target)
    assert len(target) == length


def test_max_oracle_matches_exhaustive_search():
    rng = np.random.default_rng(3)
    oracle = ChainOracle(num_states=3, per_unit_dim=2)

    for length in (1, 2, 4):
        w = rng.normal(size=oracle.dim)
        x = rng.normal(size=length * 2)
        y_truth = rng.integers(3, size=length)

        y_hat = oracle.max_oracle(w, x, y_truth, 3)
        score = w @ oracle.generate_feature_map(x, y_hat) + oracle.loss(y_truth, y_hat)

        assert score == pytest.approx(_brute_force_best(oracle, w, x, y_truth))


def test_max_oracle_breaks_ties_towards_lowest_state():
    oracle = ChainOracle(num_states=3, per_unit_dim=1)
    w = np.zeros(oracle.dim)

    # Only the loss term matters: the lowest state that disagrees with the truth wins.
    y_hat = oracle.max_oracle(w, [0.0, 0.0, 0.0], [0, 0, 1], 3)

    np.testing.assert_array_equal(y_hat, [1, 1, 0])
    np.testing.assert_array_equal(oracle.predict(w, [0.0, 0.0, 0.0]), [0, 0, 0])


def test_max_oracle_single_position_is_argmax():
    oracle = ChainOracle(num_states=3, per_unit_dim=1)
    w = np.zeros(oracle.dim)
    w[:3] = [0.2, 0.9, 0.5]

    # theta = [0.2, 0.9, 0.5] + loss [1, 0, 1] -> [1.2, 0.9, 1.5]
    np.testing.assert_array_equal(oracle.max_oracle(w, [1.0], [1], 3), [2])


def test_max_oracle_rejects_bad_configuration():
    oracle = ChainOracle(num_states=2, per_unit_dim=1)
    w = np.zeros(oracle.dim)
    with pytest.raises(ConfigurationError):
        oracle.max_oracle(w, [1.0], [0], 0)
    with pytest.raises(ConfigurationError):
        oracle.max_oracle(w, [1.0], [0], 3)
    with pytest.raises(PreconditionViolation):
        oracle.max_oracle(w, [1.0, 2.0, 3.0], [0, 1], 2)
    with pytest.raises(PreconditionViolation):
        oracle.max_oracle(np.zeros(3), [1.0], [0], 2)


def test_oracle_construction_validates_sizes():
    with pytest.raises(ConfigurationError):
        ChainOracle(num_states=0, per_unit_dim=1)
    with pytest.raises(ConfigurationError):
        ChainOracle(num_states=2, per_unit_dim=0)


def test_base_oracle_reports_missing_operations():
    class HalfDoneOracle(SVMOracle):
        num_states = 2

        def loss(self, y_truth, y_predict):
            return 0.0

    oracle = HalfDoneOracle()
    assert oracle.loss([0], [1]) == 0.0
    with pytest.raises(OracleNotImplementedError):
        oracle.generate_feature_map([1.0], [0])
    with pytest.raises(NotImplementedError):
        oracle.max_oracle(np.zeros(1), [1.0], [0], 2)
    with pytest.raises(OracleNotImplementedError):
        _ = oracle.dim
