"""Seeded random streams and recruitment deviation series.

Uses NumPy's SeedSequence → PCG64 hierarchy so that:
  - Replicates draw from statistically independent streams
  - The same master seed replays bit-exactly
  - Adding replicates doesn't change earlier replicates' streams

The projection itself is deterministic; randomness only enters through the
recruitment deviation series generated here.
"""

from __future__ import annotations

from typing import Dict

import numpy as np


def create_rng_hierarchy(
    master_seed: int,
    n_replicates: int,
) -> Dict[str, np.random.Generator]:
    """Create one 'global' stream plus one stream per replicate.

    Args:
        master_seed: Master RNG seed (non-negative integer).
        n_replicates: Number of simulation replicates.

    Returns:
        Dictionary mapping 'global' and 'rep_0' .. 'rep_{n-1}' to Generators.

    Example:
        >>> rngs = create_rng_hierarchy(42, n_replicates=100)
        >>> devs = make_recruitment_deviations(50, 20, 0.6, rngs['rep_0'])
    """
    if master_seed < 0:
        raise ValueError(f"master_seed must be non-negative, got {master_seed}")
    ss = np.random.SeedSequence(master_seed)
    child_seeds = ss.spawn(n_replicates + 1)

    rngs: Dict[str, np.random.Generator] = {
        'global': np.random.Generator(np.random.PCG64(child_seeds[0])),
    }
    for i in range(n_replicates):
        rngs[f'rep_{i}'] = np.random.Generator(np.random.PCG64(child_seeds[1 + i]))
    return rngs


def get_replicate_rng(
    rngs: Dict[str, np.random.Generator],
    replicate: int,
) -> np.random.Generator:
    """Stream for one replicate.

    Raises:
        KeyError: If the replicate has no stream.
    """
    key = f'rep_{replicate}'
    if key not in rngs:
        n = sum(1 for k in rngs if k.startswith('rep_'))
        raise KeyError(f"No RNG stream for replicate {replicate}; have {n} replicates")
    return rngs[key]


def make_recruitment_deviations(
    n_years: int,
    maxage: int,
    sigma: float,
    rng: np.random.Generator,
    autocorrelation: float = 0.0,
    bias_correct: bool = True,
) -> np.ndarray:
    """Multiplicative lognormal recruitment deviations.

    The series has n_years + maxage entries: the projection reads entry
    y + maxage when producing recruits for year y + 1, so the first
    maxage entries belong to the cohorts already present at year 0.

    log-deviations follow an AR(1) process with marginal sd `sigma`:
        ε[t] = ρ·ε[t−1] + sqrt(1−ρ²)·N(0, σ)
    and, with bias correction, dev = exp(ε − σ²/2) so E[dev] = 1.

    Args:
        n_years: Projection years.
        maxage: Number of age classes.
        sigma: Standard deviation of log recruitment deviations (>= 0).
        rng: Generator (e.g. from create_rng_hierarchy).
        autocorrelation: Lag-1 autocorrelation ρ in (−1, 1).
        bias_correct: Subtract σ²/2 in log space.

    Returns:
        (n_years + maxage,) array of positive deviations.
    """
    if sigma < 0:
        raise ValueError(f"sigma must be >= 0, got {sigma}")
    if not -1 < autocorrelation < 1:
        raise ValueError(f"autocorrelation must lie in (-1, 1), got {autocorrelation}")
    n = n_years + maxage
    innov = rng.normal(0.0, sigma, size=n)
    eps = np.empty(n)
    eps[0] = innov[0]
    scale = np.sqrt(1 - autocorrelation ** 2)
    for t in range(1, n):
        eps[t] = autocorrelation * eps[t - 1] + scale * innov[t]
    if bias_correct:
        eps -= sigma ** 2 / 2
    return np.exp(eps)
