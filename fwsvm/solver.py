"""Block-Coordinate Frank-Wolfe training of structural SVMs.

This implements Algorithm 4 of Lacoste-Julien, Jaggi, Schmidt and Pletscher,
"Block-Coordinate Frank-Wolfe Optimization for Structural SVMs" (ICML 2013).
In a distributed run, one `BCFWSolver` works on each machine or thread, on its
own shard of the data.

The dual of the n-slack structural SVM splits into one block per training
example. The solver keeps, for every example ``i``, a block weight vector
``w_i`` and a block loss term ``ell_i``. The model is their sum,
``w = sum_i w_i`` and ``ell = sum_i ell_i``. One step:

1.  picks an example ``i`` (uniformly, round-robin, or by random permutation),
2.  asks the oracle for the most violating label ``y*``,
3.  forms the corner of block ``i``:
    ``w_s = (phi(x_i, y_i) - phi(x_i, y*)) / (lambda * n)`` and
    ``ell_s = loss(y_i, y*) / n``,
4.  takes the exact line-search step ``gamma`` towards that corner, and
5.  applies the same delta to ``w`` and ``ell``, so no resummation is needed.

Only block ``i`` changes during the step. The block gap computed in step 4 is
this example's share of the duality gap at the current ``w``. The solver keeps
the last gap seen for each block and reports their sum as a cheap estimate of
the full gap.
"""
from __future__ import annotations
import threading
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd
from tqdm import tqdm

from .config import SolverConfig
from .errors import ConfigurationError, PreconditionViolation
from .oracle import SVMOracle
from .types import Dataset, Label, SolverState, StepResult

HISTORY_COLUMNS = [
    "pass",
    "iteration",
    "dual_objective",
    "primal_objective",
    "duality_gap",
    "gap_estimate",
    "train_error",
]


class BCFWSolver:
    """Single-machine BCFW solver over one dataset (or one shard of it).

    The solver owns its weight vector. Callers get copies out of
    `get_weight_vector` and hand copies in through `set_weight_vector`; the
    live arrays are never shared.

    Attributes
    ----------
    dataset:
        The training examples. Never mutated.
    oracle:
        The structure-specific `SVMOracle`.
    cfg:
        The validated `SolverConfig`.
    state:
        Current `SolverState`.
    iteration:
        Number of steps taken so far.
    block_gaps:
        Most recent block gap of every example, ``inf`` for blocks not yet
        visited.
    history:
        One dict per exact gap evaluation made by `train`.
    """
    def __init__(self, dataset: Dataset, oracle: SVMOracle, config: Optional[SolverConfig] = None):
        cfg = config if config is not None else SolverConfig()
        cfg.validate()
        if len(dataset) == 0:
            raise ConfigurationError("Cannot train on an empty dataset.")
        if oracle.num_states != dataset.num_states:
            raise ConfigurationError(
                f"Oracle has {oracle.num_states} states but the dataset has {dataset.num_states}."
            )
        try:
            phi = oracle.generate_feature_map(dataset.covariates[0], dataset.labels[0])
        except PreconditionViolation as e:
            raise ConfigurationError(f"Oracle does not fit the dataset: {e}") from e
        if phi.shape != (oracle.dim,):
            raise ConfigurationError(
                f"Oracle produced a feature map of shape {phi.shape}, expected ({oracle.dim},)."
            )

        self.dataset = dataset
        self.oracle = oracle
        self.cfg = cfg
        self.lam = float(cfg.lambda_)
        self.n = len(dataset)
        self.dim = oracle.dim

        self.w = np.zeros(self.dim)
        self.ell = 0.0
        self.w_blocks = np.zeros((self.n, self.dim))
        self.ell_blocks = np.zeros(self.n)
        # Difference between a synchronized w and the sum of the local blocks.
        self.offset = np.zeros(self.dim)
        self.w_avg = np.zeros(self.dim) if cfg.weighted_averaging else None

        self.block_gaps = np.full(self.n, np.inf)
        self.iteration = 0
        self.passes = 0
        self.state = SolverState.INITIALIZED
        self.history: List[Dict[str, Any]] = []

        self._rng = np.random.default_rng(cfg.seed)
        self._order = np.arange(self.n)
        self._cursor = 0
        self._stop = threading.Event()

    # --- Sampling -----------------------------------------------------------
    def _next_index(self) -> int:
        if self.cfg.sampling == "uniform":
            return int(self._rng.integers(self.n))
        if self._cursor == 0 and self.cfg.sampling == "permutation":
            self._order = self._rng.permutation(self.n)
        idx = int(self._order[self._cursor])
        self._cursor = (self._cursor + 1) % self.n
        return idx

    # --- Single step --------------------------------------------------------
    def _corner(self, i: int, y_star: Label):
        """Returns ``(w_s, ell_s, loss)`` for example ``i`` and oracle answer ``y_star``."""
        x, y = self.dataset.covariates[i], self.dataset.labels[i]
        psi = self.oracle.generate_feature_map(x, y) - self.oracle.generate_feature_map(x, y_star)
        loss = self.oracle.loss(y, y_star)
        return psi / (self.lam * self.n), loss / self.n, loss

    def step(self, index: Optional[int] = None) -> StepResult:
        """
        Performs one block-coordinate Frank-Wolfe step.

        Args:
            index: Example to update. Drawn from the sampling policy when
                   omitted.

        Returns:
            A `StepResult` describing the update.

        Raises:
            PreconditionViolation: If ``index`` is out of range, or the oracle
                rejects the example.
            OracleNotImplementedError: If the oracle lacks an operation.
        """
        if index is None:
            i = self._next_index()
        else:
            if not 0 <= index < self.n:
                raise PreconditionViolation(f"Example index {index} is out of range [0, {self.n}).")
            i = int(index)

        x, y = self.dataset.covariates[i], self.dataset.labels[i]
        y_star = self.oracle.max_oracle(self.w, x, y, self.oracle.num_states)
        w_s, ell_s, loss = self._corner(i, y_star)

        diff = self.w_blocks[i] - w_s
        block_gap = self.lam * float(diff @ self.w) - self.ell_blocks[i] + ell_s
        denom = self.lam * float(diff @ diff)
        if denom > 0.0:
            gamma = min(1.0, max(0.0, block_gap / denom))
        else:
            # Objective is linear along a zero-length direction.
            gamma = 1.0 if block_gap > 0.0 else 0.0

        delta_w = -gamma * diff
        delta_ell = gamma * (ell_s - self.ell_blocks[i])
        self.w_blocks[i] += delta_w
        self.ell_blocks[i] += delta_ell
        self.w += delta_w
        self.ell += delta_ell

        self.block_gaps[i] = block_gap
        self.iteration += 1
        if self.w_avg is not None:
            k = self.iteration - 1
            self.w_avg = (k / (k + 2.0)) * self.w_avg + (2.0 / (k + 2.0)) * self.w

        return StepResult(index=i, step_size=gamma, block_gap=block_gap, loss=loss, prediction=y_star)

    # --- Running ------------------------------------------------------------
    def _run(self, n_steps: int) -> bool:
        """
        Runs up to ``n_steps`` steps, checking the stop flag between steps only.

        Returns True if a stop request ended the run. The request is consumed
        so the next call starts normally.
        """
        if self.state == SolverState.INITIALIZED:
            self.state = SolverState.RUNNING
        done = 0
        while not self._stop.is_set():
            if done >= n_steps:
                return False
            self.step()
            done += 1
        self._stop.clear()
        return True

    def run_steps(self, n_steps: int) -> float:
        """
        Runs ``n_steps`` local steps and returns the current gap estimate.

        This is the entry point a coordinator drives between synchronizations.
        A `stop` request ends it before the next step, whether it arrives
        while this runs or before the call starts.
        """
        if n_steps < 0:
            raise PreconditionViolation(f"n_steps must be non-negative, got {n_steps}.")
        self._run(n_steps)
        return self.gap_estimate

    def stop(self) -> None:
        """
        Asks `train` or `run_steps` to return before the next step.

        A request made while the solver is idle ends the next call before
        its first step. Each request stops one call.
        """
        self._stop.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    def train(self, max_passes: Optional[int] = None, gap_threshold: Optional[float] = None) -> SolverState:
        """
        Runs passes over the data until convergence or the budget is spent.

        The exact duality gap is evaluated every ``cfg.gap_check_every``
        passes (counted over the solver's lifetime, so resumed training keeps
        the cadence) and after the last pass of the call; each evaluation
        appends a row to `history`. Training converges once that gap is at most
        ``gap_threshold``.

        Args:
            max_passes: Pass budget, defaults to ``cfg.max_passes``.
            gap_threshold: Convergence threshold, defaults to
                           ``cfg.gap_threshold``.

        Returns:
            The final `SolverState`. It stays ``RUNNING`` if `stop` was
            called, so training can be resumed.
        """
        max_passes = self.cfg.max_passes if max_passes is None else int(max_passes)
        gap_threshold = self.cfg.gap_threshold if gap_threshold is None else float(gap_threshold)

        self.state = SolverState.RUNNING
        with tqdm(total=max_passes, desc="Training", unit="pass", disable=not self.cfg.show_progress) as bar:
            for p in range(max_passes):
                if self._run(self.n):
                    return self.state
                self.passes += 1
                bar.update(1)

                if self.passes % self.cfg.gap_check_every == 0 or p == max_passes - 1:
                    row = self._record()
                    bar.set_postfix(gap=f"{row['duality_gap']:.4g}")
                    if gap_threshold is not None and row["duality_gap"] <= gap_threshold:
                        self.state = SolverState.CONVERGED
                        return self.state

        self.state = SolverState.MAX_ITERATIONS_REACHED
        return self.state

    # --- Objectives ---------------------------------------------------------
    def dual_objective(self) -> float:
        """The BCFW dual objective ``-lambda/2 * ||w||^2 + ell``."""
        return -0.5 * self.lam * float(self.w @ self.w) + self.ell

    def _full_pass(self) -> Dict[str, float]:
        """One read-only oracle pass over every example."""
        hinge = 0.0
        for x, y in self.dataset:
            y_star = self.oracle.max_oracle(self.w, x, y, self.oracle.num_states)
            psi = self.oracle.generate_feature_map(x, y) - self.oracle.generate_feature_map(x, y_star)
            hinge += self.oracle.loss(y, y_star) - float(self.w @ psi)
        primal = 0.5 * self.lam * float(self.w @ self.w) + hinge / self.n
        dual = self.dual_objective()
        return {"primal_objective": primal, "dual_objective": dual, "duality_gap": primal - dual}

    def primal_objective(self) -> float:
        """The structural SVM objective ``lambda/2 * ||w||^2 + mean max-loss hinge``."""
        return self._full_pass()["primal_objective"]

    def duality_gap(self) -> float:
        """Exact duality gap at the current ``w``. Costs one oracle call per example."""
        return self._full_pass()["duality_gap"]

    @property
    def gap_estimate(self) -> float:
        """Sum of the most recent block gaps; ``inf`` until every block was visited."""
        return float(self.block_gaps.sum())

    def _record(self) -> Dict[str, Any]:
        row: Dict[str, Any] = {"pass": self.passes, "iteration": self.iteration}
        row.update(self._full_pass())
        row["gap_estimate"] = self.gap_estimate
        row["train_error"] = self.error_rate()
        self.history.append(row)
        return row

    def history_frame(self) -> pd.DataFrame:
        """Training history as a DataFrame, one row per gap evaluation."""
        return pd.DataFrame(self.history, columns=HISTORY_COLUMNS)

    def error_rate(self, dataset: Optional[Dataset] = None, weights: Optional[np.ndarray] = None) -> float:
        """Mean loss of plain decoding over ``dataset`` (the training set by default)."""
        data = self.dataset if dataset is None else dataset
        w = self.w if weights is None else weights
        if len(data) == 0:
            return 0.0
        losses = [self.oracle.loss(y, self.oracle.predict(w, x)) for x, y in data]
        return float(np.mean(losses))

    # --- Coordinator interface ------------------------------------------------
    def get_weight_vector(self) -> np.ndarray:
        """Returns a snapshot copy of the current weight vector."""
        return self.w.copy()

    def set_weight_vector(self, w: np.ndarray) -> None:
        """
        Replaces the weight vector with a copy of ``w``.

        The local dual blocks are kept; the difference between ``w`` and their
        sum is stored in `offset`, so ``w == offset + sum_i w_i`` keeps holding
        and later steps stay local to their block.

        Raises:
            PreconditionViolation: If ``w`` has the wrong shape.
        """
        w = np.array(w, dtype=float)
        if w.shape != (self.dim,):
            raise PreconditionViolation(f"Weight vector has shape {w.shape}, expected ({self.dim},).")
        self.w = w
        self.offset = w - self.w_blocks.sum(axis=0)

    def averaged_weight_vector(self) -> np.ndarray:
        """
        Returns a copy of the ``2/(k+2)``-weighted average of the iterates.

        Raises:
            ConfigurationError: If weighted averaging is disabled.
        """
        if self.w_avg is None:
            raise ConfigurationError("Weighted averaging is disabled for this solver.")
        return self.w_avg.copy()

    def dual_block(self, index: int) -> np.ndarray:
        """Returns a copy of the dual block ``w_i`` of example ``index``."""
        return self.w_blocks[index].copy()

    def dual_invariant_residual(self) -> float:
        """Largest absolute deviation from ``w == offset + sum_i w_i``."""
        return float(np.max(np.abs(self.w - self.offset - self.w_blocks.sum(axis=0))))
