"""Manages the loading and validation of solver configuration.

This module defines the `SolverConfig` dataclass, the single typed container
for every knob of the BCFW training loop, and the `load_config` function which
reads those knobs from a YAML file. Settings may sit at the root of the file
or under a ``solver:`` section; the section wins when both are present.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Optional
import yaml

from .errors import ConfigurationError

SAMPLING_POLICIES = ("uniform", "round_robin", "permutation")


@dataclass
class SolverConfig:
    """
    A typed configuration object holding all settings for `BCFWSolver`.

    Attributes:
        lambda_: Regularization strength of the structural SVM objective. Must
                 be strictly positive.
        max_passes: Default iteration budget of `BCFWSolver.train`, expressed
                    in passes over the dataset (one pass = n steps).
        gap_threshold: Training stops once the duality gap falls below this
                       value. ``None`` disables the gap test.
        gap_check_every: Number of passes between two exact duality-gap
                         evaluations (each costs a full oracle pass).
        sampling: Example selection policy: ``"uniform"`` draws with
                  replacement, ``"round_robin"`` cycles in dataset order and
                  ``"permutation"`` visits a fresh random order every pass.
        seed: Seed for the random number generator used by the sampler.
        weighted_averaging: Maintain the ``2/(k+2)`` weighted average of the
                            iterates alongside the current weight vector.
        show_progress: Show a tqdm progress bar over training passes.
    """
    lambda_: float = 0.01
    max_passes: int = 50
    gap_threshold: Optional[float] = 0.1
    gap_check_every: int = 5
    sampling: str = "uniform"
    seed: Optional[int] = None
    weighted_averaging: bool = False
    show_progress: bool = False

    def validate(self) -> None:
        """
        Fails fast on settings the solver cannot run with.

        Raises:
            ConfigurationError: If any field is out of its valid range.
        """
        if not self.lambda_ > 0:
            raise ConfigurationError(f"lambda_ must be strictly positive, got {self.lambda_}.")
        if self.max_passes < 0:
            raise ConfigurationError(f"max_passes must be non-negative, got {self.max_passes}.")
        if self.gap_check_every < 1:
            raise ConfigurationError(f"gap_check_every must be at least 1, got {self.gap_check_every}.")
        if self.gap_threshold is not None and self.gap_threshold < 0:
            raise ConfigurationError(f"gap_threshold must be non-negative, got {self.gap_threshold}.")
        if self.sampling not in SAMPLING_POLICIES:
            raise ConfigurationError(
                f"Unknown sampling policy '{self.sampling}'. Expected one of {SAMPLING_POLICIES}."
            )


def load_config(path: str = "config.yaml") -> SolverConfig:
    """
    Loads and validates a YAML file into a `SolverConfig`.

    Args:
        path: The path to the configuration YAML file.

    Returns:
        A fully populated and validated `SolverConfig` object.

    Raises:
        FileNotFoundError: If the specified file cannot be found.
        ValueError: If there is an error parsing the YAML file.
        TypeError: If the root of the YAML file (or its ``solver`` section) is
                   not a dictionary.
        ConfigurationError: If a value is out of range.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            y = yaml.safe_load(f)
    except FileNotFoundError:
        raise FileNotFoundError(f"Configuration file not found at: {path}")
    except yaml.YAMLError as e:
        raise ValueError(f"Error parsing YAML file at {path}: {e}")

    if y is None:
        y = {}
    if not isinstance(y, dict):
        raise TypeError(f"Configuration file {path} must be a dictionary.")

    section = y.get("solver", {})
    if not isinstance(section, dict):
        raise TypeError(f"The 'solver' section of {path} must be a dictionary.")
    settings = {**{k: v for k, v in y.items() if k != "solver"}, **section}

    # "lambda" is a keyword in Python, accept both spellings in the file.
    lam = settings.get("lambda_", settings.get("lambda", SolverConfig.lambda_))
    gap_threshold = settings.get("gap_threshold", SolverConfig.gap_threshold)
    seed = settings.get("seed")

    cfg = SolverConfig(
        lambda_=float(lam),
        max_passes=int(settings.get("max_passes", SolverConfig.max_passes)),
        gap_threshold=None if gap_threshold is None else float(gap_threshold),
        gap_check_every=int(settings.get("gap_check_every", SolverConfig.gap_check_every)),
        sampling=str(settings.get("sampling", SolverConfig.sampling)),
        seed=None if seed is None else int(seed),
        weighted_averaging=bool(settings.get("weighted_averaging", False)),
        show_progress=bool(settings.get("show_progress", False)),
    )
    cfg.validate()
    return cfg
