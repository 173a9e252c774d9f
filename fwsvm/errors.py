"""Exception types raised by the solver and the oracles.

All failures in this package are deterministic functions of the input, so
nothing here is retried. The classes double as the matching builtin
exception (`ValueError` / `NotImplementedError`) so callers that only know the
builtins still catch them.
"""
from __future__ import annotations

__all__ = [
    "FWError",
    "ConfigurationError",
    "PreconditionViolation",
    "OracleNotImplementedError",
]


class FWError(Exception):
    """Base class for every error raised by `fwsvm`."""


class ConfigurationError(FWError, ValueError):
    """
    Raised when a solver or oracle is constructed with invalid settings.

    Examples are a non-positive regularization strength, an unknown sampling
    policy, or an oracle whose feature dimension does not match the dataset.
    These are surfaced immediately and never recovered from.
    """


class PreconditionViolation(FWError, ValueError):
    """
    Raised when a single example (covariate or label) is malformed.

    A corrupted example points at a data or feature-map bug, so the solver
    propagates this instead of skipping the example.
    """


class OracleNotImplementedError(FWError, NotImplementedError):
    """Raised on first use of an oracle operation a structure left unimplemented."""
