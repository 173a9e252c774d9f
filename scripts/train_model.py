import argparse
import sys
from pathlib import Path
from typing import List, Optional

import pandas as pd

# Add project root to path
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from fwsvm.chain_oracle import ChainOracle
from fwsvm.config import SolverConfig, load_config
from fwsvm.coordination import shard_dataset, synchronize
from fwsvm.errors import FWError
from fwsvm.io_utils import load_dataset
from fwsvm.solver import BCFWSolver
from fwsvm.types import Dataset


def build_solvers(dataset: Dataset, cfg: SolverConfig, n_shards: int = 1) -> List[BCFWSolver]:
    """
    Creates one solver per shard of ``dataset``, all sharing one oracle type.

    With ``n_shards == 1`` a single solver over the whole dataset is returned.
    Shards are shuffled with the configured seed so that each worker sees a
    representative slice of the data.
    """
    oracle = ChainOracle.for_dataset(dataset)
    if n_shards == 1:
        return [BCFWSolver(dataset, oracle, cfg)]
    shards = shard_dataset(dataset, n_shards, seed=cfg.seed)
    return [BCFWSolver(shard, ChainOracle.for_dataset(shard), cfg) for shard in shards]


def train_sharded(solvers: List[BCFWSolver], rounds: int, full_dataset: Dataset) -> pd.DataFrame:
    """
    Runs synchronized rounds over several shard solvers.

    Each round every solver takes one local pass over its shard, after which
    the weight vectors are averaged and handed back. The merged model is
    scored on the full dataset after each round.

    Args:
        solvers: One solver per shard.
        rounds: Number of synchronization rounds.
        full_dataset: The unsharded training set, used for the error rate.

    Returns:
        A DataFrame with one row per round.
    """
    records = []
    for r in range(rounds):
        estimates = [s.run_steps(s.n) for s in solvers]
        merged = synchronize(solvers)
        records.append({
            "round": r + 1,
            "gap_estimate": float(sum(estimates)),
            "train_error": solvers[0].error_rate(full_dataset, weights=merged),
        })
        print(f"Round {r + 1}/{rounds}: gap estimate {records[-1]['gap_estimate']:.4g}, "
              f"train error {records[-1]['train_error']:.2%}")
    return pd.DataFrame(records)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the command-line training script.

    This script:
    1.  Loads the solver configuration and the training set (and, optionally,
        a test set).
    2.  Trains a single BCFW solver, or ``--shards`` solvers whose weight
        vectors are averaged after every pass.
    3.  Prints the objective history and the final train/test error rates.
    """
    parser = argparse.ArgumentParser(
        description="Train a chain structural SVM with Block-Coordinate Frank-Wolfe.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    parser.add_argument("--data", type=str, required=True, help="Path to the training dataset JSON file.")
    parser.add_argument("--test", type=str, default=None, help="Optional path to a test dataset JSON file.")
    parser.add_argument("--config", default="config.yaml", help="Path to the configuration YAML file.")
    parser.add_argument("--passes", type=int, default=None, help="Override the pass budget from the config.")
    parser.add_argument("--shards", type=int, default=1, help="Number of shard solvers to synchronize.")
    args = parser.parse_args(argv)

    try:
        print(f"Loading configuration from {args.config}...")
        cfg = load_config(args.config)
        passes = cfg.max_passes if args.passes is None else args.passes

        print(f"Loading training data from {args.data}...")
        train_set = load_dataset(args.data)
        test_set = load_dataset(args.test) if args.test else None
        print(f"Loaded {len(train_set)} examples with {train_set.num_states} states "
              f"and {train_set.per_unit_dim} features per position.")

        solvers = build_solvers(train_set, cfg, args.shards)
        if len(solvers) == 1:
            solver = solvers[0]
            print(f"\n--- Training for at most {passes} passes (lambda={cfg.lambda_}) ---")
            state = solver.train(max_passes=passes)
            print(solver.history_frame().to_string(index=False))
            print(f"Finished in state '{state.value}' after {solver.iteration} steps.")
        else:
            print(f"\n--- Training {len(solvers)} shard solvers for {passes} rounds ---")
            train_sharded(solvers, passes, train_set)
            solver = solvers[0]

        w = solver.get_weight_vector()
        print(f"Train error: {solver.error_rate(train_set, weights=w):.2%}")
        if test_set is not None:
            print(f"Test error: {solver.error_rate(test_set, weights=w):.2%}")
    except (FileNotFoundError, ValueError, TypeError, FWError) as e:
        print(f"\n[ERROR] {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
