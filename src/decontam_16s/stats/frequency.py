"""
Frequency-based contaminant test (optional; needs per-sample DNA concentration).

Contaminant DNA is added in roughly constant amounts, so its relative frequency
falls as total input DNA rises: log(freq) ≈ a - log(conc). Authentic features
have frequencies independent of concentration: log(freq) ≈ b. The score is the
F(1, n-1) CDF of the ratio of residual sums of squares SS_contaminant / SS_null,
small when the contaminant model fits much better.
"""
# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging

# Third-Party Imports
import numpy as np
from scipy.stats import f as f_dist

# Local Imports
from decontam_16s import constants
from decontam_16s.errors import DegenerateBatch

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger('decontam_16s')

# ==================================== FUNCTIONS ===================================== #

def check_frequency_batch(
    batch: str,
    is_control: np.ndarray,
    concentration: np.ndarray
) -> np.ndarray:
    """Mask of usable samples (true samples with positive concentration).

    Raises:
        DegenerateBatch: If fewer than two usable samples remain.
    """
    concentration = np.asarray(concentration, dtype=float)
    usable = ~np.asarray(is_control, dtype=bool)
    has_conc = np.isfinite(concentration) & (concentration > 0)
    if not (usable & has_conc).any():
        raise DegenerateBatch(batch, constants.REASON_NO_CONCENTRATION)
    usable &= has_conc
    if usable.sum() < 2:
        raise DegenerateBatch(batch, constants.REASON_TOO_FEW_SAMPLES)
    return usable


def frequency_pvalue(freq: np.ndarray, concentration: np.ndarray) -> float:
    """Score one feature from its frequencies in the samples where it is present."""
    present = freq > 0
    n = int(present.sum())
    if n < 2:
        return np.nan
    log_freq = np.log(freq[present])
    log_conc = np.log(concentration[present])

    ss_null = np.sum((log_freq - log_freq.mean()) ** 2)
    shifted = log_freq + log_conc
    ss_contaminant = np.sum((shifted - shifted.mean()) ** 2)

    if ss_null == 0 and ss_contaminant == 0:
        return np.nan
    if ss_null == 0:
        return 1.0
    return float(f_dist.cdf(ss_contaminant / ss_null, 1, n - 1))


def batch_frequency_pvalues(
    batch: str,
    counts: np.ndarray,
    is_control: np.ndarray,
    concentration: np.ndarray,
    library_sizes: np.ndarray
) -> np.ndarray:
    """Frequency p-values of every feature within one batch.

    Args:
        batch:         Batch identifier.
        counts:        Features × samples counts of the batch.
        is_control:    Boolean control flags of the batch's samples.
        concentration: DNA concentration of each sample.
        library_sizes: Total reads of each sample over the full feature set.

    Returns:
        p-values; NaN for features present in fewer than two usable samples.

    Raises:
        DegenerateBatch: If the batch has no usable concentration values.
    """
    usable = check_frequency_batch(batch, is_control, concentration)
    usable &= np.asarray(library_sizes) > 0
    if usable.sum() < 2:
        raise DegenerateBatch(batch, constants.REASON_TOO_FEW_SAMPLES)

    counts = np.asarray(counts, dtype=float)[:, usable]
    freq = counts / np.asarray(library_sizes, dtype=float)[usable]
    conc = np.asarray(concentration, dtype=float)[usable]
    return np.array([frequency_pvalue(row, conc) for row in freq])
