"""
Simulation batch runner and batch cleaning.

Runs simulator -> summary over parameter rows (sequentially or on a thread
pool) and prepares the resulting summary matrix for local regression:
- non-finite rows are removed
- zero-variance summary columns are dropped (with the matching s_true entry)
- outlier rows (beyond a multiple of the IQR from the column median) are removed
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from multiprocessing import cpu_count
from typing import Any, Callable, Dict, Optional

import numpy as np

from .errors import DimensionMismatch

logger = logging.getLogger(__name__)


def identity(x: Any) -> Any:
    """Default summary function."""
    return x


@dataclass
class SummaryBatch:
    """Perturbed parameters paired with their summary statistics."""
    theta: np.ndarray  # (n_sim, n_theta)
    s: np.ndarray  # (n_sim, n_s)
    s_true: Optional[np.ndarray] = None  # (n_s,)
    kept_rows: Optional[np.ndarray] = None  # boolean mask over the raw rows
    kept_columns: Optional[np.ndarray] = None  # boolean mask over the raw columns

    def __post_init__(self):
        if self.theta.shape[0] != self.s.shape[0]:
            raise DimensionMismatch(
                f"theta has {self.theta.shape[0]} rows but s has {self.s.shape[0]}"
            )
        if self.s_true is not None and self.s_true.shape[0] != self.s.shape[1]:
            raise DimensionMismatch(
                f"s_true has length {self.s_true.shape[0]} but s has {self.s.shape[1]} columns"
            )

    @property
    def n_sim(self) -> int:
        return self.s.shape[0]

    @property
    def n_s(self) -> int:
        return self.s.shape[1]


def _simulate_one(
    theta: np.ndarray,
    simulator: Callable,
    summary: Callable,
    simulator_kwargs: Dict[str, Any],
    summary_kwargs: Dict[str, Any]
) -> np.ndarray:
    x = simulator(theta, **simulator_kwargs)
    return np.atleast_1d(np.asarray(summary(x, **summary_kwargs), dtype=float))


def simulate_n_s(
    theta: np.ndarray,
    simulator: Callable,
    summary: Callable = identity,
    n_sim: Optional[int] = None,
    simulator_kwargs: Optional[Dict[str, Any]] = None,
    summary_kwargs: Optional[Dict[str, Any]] = None,
    parallel: bool = False,
    n_workers: Optional[int] = None
) -> np.ndarray:
    """
    Simulate summary statistics from the model.

    If theta is a vector, n_sim simulations are run at that fixed parameter.
    If theta is a matrix, one simulation is run per row (n_sim is ignored).

    Args:
        theta: Parameter vector or (n, n_theta) matrix of parameter rows
        simulator: Function theta -> raw simulation output
        summary: Function raw output -> summary vector (default identity)
        n_sim: Number of simulations for a single parameter vector
        simulator_kwargs: Keyword arguments passed to the simulator
        summary_kwargs: Keyword arguments passed to the summary function
        parallel: Run simulations on a thread pool
        n_workers: Pool size (default: number of CPUs)

    Returns:
        (n, n_s) matrix of summaries; row i corresponds to parameter row i
    """
    theta = np.asarray(theta, dtype=float)
    if theta.ndim == 1:
        if n_sim is None:
            raise ValueError("n_sim is required when theta is a single vector")
        rows = np.tile(theta, (n_sim, 1))
    elif theta.ndim == 2:
        rows = theta
    else:
        raise DimensionMismatch(f"theta must be 1-D or 2-D, got {theta.ndim}-D")

    simulator_kwargs = simulator_kwargs or {}
    summary_kwargs = summary_kwargs or {}

    def run(row):
        return _simulate_one(row, simulator, summary, simulator_kwargs, summary_kwargs)

    if parallel:
        workers = n_workers if n_workers is not None else max(1, cpu_count())
        # executor.map yields results in submission order
        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(run, rows))
    else:
        results = [run(row) for row in rows]

    lengths = {len(r) for r in results}
    if len(lengths) > 1:
        raise DimensionMismatch(f"Summary function returned vectors of lengths {sorted(lengths)}")

    return np.vstack(results)


def outlier_mask(s: np.ndarray, iqr_multiple: float) -> np.ndarray:
    """
    Flag rows with any value further than iqr_multiple * IQR from the column median.

    Columns with zero IQR are ignored.

    Returns:
        Boolean mask, True for rows to keep
    """
    median = np.median(s, axis=0)
    q75, q25 = np.percentile(s, [75, 25], axis=0)
    iqr = q75 - q25
    usable = iqr > 0
    if not usable.any():
        return np.ones(s.shape[0], dtype=bool)
    dist = np.abs(s[:, usable] - median[usable])
    return np.all(dist <= iqr_multiple * iqr[usable], axis=1)


def clean_batch(
    theta: np.ndarray,
    s: np.ndarray,
    s_true: Optional[np.ndarray] = None,
    iqr_multiple: Optional[float] = None
) -> SummaryBatch:
    """
    Prepare a simulated batch for local regression.

    Args:
        theta: (n_sim, n_theta) perturbed parameters
        s: (n_sim, n_s) summaries
        s_true: Observed summaries (entries for dropped columns are removed)
        iqr_multiple: Outlier threshold; None disables outlier removal

    Returns:
        SummaryBatch with the retained rows and columns
    """
    theta = np.atleast_2d(np.asarray(theta, dtype=float))
    s = np.asarray(s, dtype=float)
    if s.ndim == 1:
        s = s[:, None]
    if theta.shape[0] != s.shape[0]:
        raise DimensionMismatch(f"theta has {theta.shape[0]} rows but s has {s.shape[0]}")
    if s_true is not None:
        s_true = np.atleast_1d(np.asarray(s_true, dtype=float))
        if s_true.shape[0] != s.shape[1]:
            raise DimensionMismatch(
                f"s_true has length {s_true.shape[0]} but s has {s.shape[1]} columns"
            )

    rows = np.all(np.isfinite(s), axis=1)
    if not rows.all():
        logger.debug("Removed %d simulations with non-finite summaries", int((~rows).sum()))

    columns = np.var(s[rows], axis=0) > 0
    if not columns.all():
        logger.debug("Dropped zero-variance summary columns %s", np.flatnonzero(~columns).tolist())

    if iqr_multiple is not None and rows.any() and columns.any():
        keep = outlier_mask(s[rows][:, columns], iqr_multiple)
        n_outliers = int((~keep).sum())
        if n_outliers:
            logger.debug("Removed %d outlier simulations", n_outliers)
        rows[np.flatnonzero(rows)[~keep]] = False

    return SummaryBatch(
        theta=theta[rows],
        s=s[rows][:, columns],
        s_true=s_true[columns] if s_true is not None else None,
        kept_rows=rows,
        kept_columns=columns
    )
