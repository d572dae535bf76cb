# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from dataclasses import dataclass
from typing import Any, Dict

# Third-Party Imports
import numpy as np
import pandas as pd

# Local Imports
from decontam_16s import constants
from decontam_16s.amplicon_data.dataset import StudyDataset

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger("decontam_16s")

# ==================================== CLASSES ======================================= #

@dataclass(frozen=True)
class DepthReport:
    """Per-sample sequencing depth after pruning."""
    library_sizes: pd.Series
    mean: float
    std: float
    histogram: pd.DataFrame

    def summary(self) -> Dict[str, Any]:
        sizes = self.library_sizes
        return {
            'n_samples': int(len(sizes)),
            'total_reads': int(sizes.sum()),
            'mean_depth': self.mean,
            'std_depth': self.std,
            'min_depth': int(sizes.min()) if len(sizes) else 0,
            'max_depth': int(sizes.max()) if len(sizes) else 0,
        }

# ==================================== FUNCTIONS ===================================== #

def depth_report(
    dataset: StudyDataset,
    bins: int = constants.DEFAULT_DEPTH_BINS
) -> DepthReport:
    """Library sizes of the surviving samples with mean, sample standard deviation
    and a histogram.

    Args:
        dataset: Pruned study.
        bins:    Number of histogram bins.

    Returns:
        DepthReport. Mean/std are NaN for fewer than one/two samples.
    """
    sizes = dataset.library_sizes
    mean = float(sizes.mean()) if len(sizes) else float('nan')
    std = float(sizes.std(ddof=1)) if len(sizes) > 1 else float('nan')

    if len(sizes):
        counts, edges = np.histogram(sizes.to_numpy(), bins=bins)
    else:
        counts, edges = np.zeros(bins, dtype=int), np.linspace(0, 1, bins + 1)
    histogram = pd.DataFrame({
        'bin_left': edges[:-1],
        'bin_right': edges[1:],
        'count': counts.astype(int),
    })

    logger.info(
        f"Sequencing depth over {len(sizes)} samples: "
        f"mean {mean:,.1f}, sd {std:,.1f}"
    )
    zero = sizes.index[sizes == 0].tolist()
    if zero:
        logger.warning(f"{len(zero)} samples have no reads left after pruning: {zero[:10]}")
    return DepthReport(library_sizes=sizes, mean=mean, std=std, histogram=histogram)
