"""
Per-batch prevalence tests for contaminant identification.

Each test asks, for every feature at once, whether the feature is present in a
larger fraction of the batch's negative controls than of its true samples.
Small p-values therefore point at contaminants.
"""
# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from typing import Tuple

# Third-Party Imports
import numpy as np
from scipy.stats import chi2, hypergeom, norm

# Local Imports
from decontam_16s import constants
from decontam_16s.errors import DegenerateBatch

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger('decontam_16s')

# ==================================== FUNCTIONS ===================================== #

def check_prevalence_batch(batch: str, is_control: np.ndarray) -> None:
    """Raise ``DegenerateBatch`` if a batch cannot support a prevalence test.

    Args:
        batch:      Batch identifier.
        is_control: Boolean control flags of the batch's samples.
    """
    n_samples = len(is_control)
    n_controls = int(np.sum(is_control))
    if n_samples < 2:
        raise DegenerateBatch(batch, constants.REASON_TOO_FEW_SAMPLES)
    if n_controls == 0:
        raise DegenerateBatch(batch, constants.REASON_NO_CONTROLS)
    if n_controls == n_samples:
        raise DegenerateBatch(batch, constants.REASON_NO_TRUE_SAMPLES)


def presence_counts(
    counts: np.ndarray,
    is_control: np.ndarray
) -> Tuple[np.ndarray, int, np.ndarray, int]:
    """Number of controls / true samples in which each feature is present.

    Args:
        counts:     Features × samples counts of one batch.
        is_control: Boolean control flags aligned with the columns of ``counts``.

    Returns:
        (present_in_controls, n_controls, present_in_true, n_true)
    """
    presence = np.asarray(counts) > 0
    is_control = np.asarray(is_control, dtype=bool)
    x_control = presence[:, is_control].sum(axis=1)
    x_true = presence[:, ~is_control].sum(axis=1)
    return x_control, int(is_control.sum()), x_true, int((~is_control).sum())


def prevalence_chisq(
    x_control: np.ndarray,
    n_control: int,
    x_true: np.ndarray,
    n_true: int
) -> np.ndarray:
    """One-sided two-proportion z-test (Pearson chi-square without continuity
    correction) of higher prevalence in controls than in true samples.

    Returns:
        p-values; NaN for features present in all or none of the batch's samples.
    """
    x_control = np.asarray(x_control, dtype=float)
    x_true = np.asarray(x_true, dtype=float)
    pooled = (x_control + x_true) / (n_control + n_true)
    se = np.sqrt(pooled * (1.0 - pooled) * (1.0 / n_control + 1.0 / n_true))

    p = np.full(x_control.shape, np.nan)
    informative = se > 0
    z = (x_control[informative] / n_control - x_true[informative] / n_true) / se[informative]
    p[informative] = norm.sf(z)
    return p


def prevalence_fisher(
    x_control: np.ndarray,
    n_control: int,
    x_true: np.ndarray,
    n_true: int
) -> np.ndarray:
    """One-sided hypergeometric (Fisher exact) mid-p test of higher prevalence in
    controls than in true samples: P(X > x) + P(X = x) / 2.

    Returns:
        p-values; NaN for features present in all or none of the batch's samples.
    """
    x_control = np.asarray(x_control, dtype=int)
    n_present = x_control + np.asarray(x_true, dtype=int)
    n_total = n_control + n_true

    p = np.full(x_control.shape, np.nan)
    informative = (n_present > 0) & (n_present < n_total)
    x = x_control[informative]
    k = n_present[informative]
    p[informative] = (
        hypergeom.sf(x, n_total, k, n_control)
        + 0.5 * hypergeom.pmf(x, n_total, k, n_control)
    )
    return np.clip(p, 0.0, 1.0)


PREVALENCE_TESTS = {
    'chisq': prevalence_chisq,
    'fisher': prevalence_fisher,
}


def batch_prevalence_pvalues(
    batch: str,
    counts: np.ndarray,
    is_control: np.ndarray,
    test: str = constants.DEFAULT_PREVALENCE_TEST
) -> np.ndarray:
    """Prevalence p-values of every feature within one batch.

    Raises:
        DegenerateBatch: If the batch has too few samples, no controls or no
                         true samples.
        ValueError:      For an unknown test name.
    """
    if test not in PREVALENCE_TESTS:
        raise ValueError(
            f"Unknown prevalence test: {test}. Expected one of {list(PREVALENCE_TESTS)}"
        )
    check_prevalence_batch(batch, is_control)
    return PREVALENCE_TESTS[test](*presence_counts(counts, is_control))


def combine_pvalues_fisher(pvalues: np.ndarray) -> np.ndarray:
    """Fisher's method across batches, row by row.

    Args:
        pvalues: Features × batches p-values; NaN marks an excluded batch.

    Returns:
        Combined p-value per feature, NaN where no batch contributed. A single
        contributing batch returns its own p-value.
    """
    pvalues = np.atleast_2d(np.asarray(pvalues, dtype=float))
    valid = ~np.isnan(pvalues)
    k = valid.sum(axis=1)
    clipped = np.clip(np.where(valid, pvalues, 1.0), np.finfo(float).tiny, 1.0)
    statistic = -2.0 * np.log(clipped).sum(axis=1)

    combined = np.full(pvalues.shape[0], np.nan)
    contributing = k > 0
    combined[contributing] = chi2.sf(statistic[contributing], 2 * k[contributing])
    return np.clip(combined, 0.0, 1.0)
