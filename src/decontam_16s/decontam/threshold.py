# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

# Third-Party Imports
import numpy as np
import pandas as pd
from scipy.signal import find_peaks

# Local Imports
from decontam_16s import constants
from decontam_16s.config import validate_threshold
from decontam_16s.decontam.classifier import ContaminantScores

# ========================== INITIALISATION & CONFIGURATION ========================== #

logger = logging.getLogger("decontam_16s")

# =================================== DATA CLASSES =================================== #

@dataclass(frozen=True)
class ThresholdChoice:
    """The threshold the filter stage will use, and where it came from."""
    value: float
    source: str

    def __post_init__(self):
        if self.source not in constants.THRESHOLD_SOURCES:
            raise ValueError(f"Unknown threshold source: {self.source}")
        object.__setattr__(self, 'value', validate_threshold(self.value))

    def as_dict(self) -> Dict[str, Any]:
        return {'threshold': self.value, 'threshold_source': self.source}

# ==================================== FUNCTIONS ===================================== #

def _valid_scores(scores: pd.Series) -> np.ndarray:
    values = np.asarray(scores, dtype=float)
    return values[~np.isnan(values)]


def score_histogram(
    scores: Union[ContaminantScores, pd.Series],
    bins: int = constants.DEFAULT_HISTOGRAM_BINS
) -> pd.DataFrame:
    """Histogram of contamination scores over [0, 1].

    Undetermined features (NaN scores) are left out and counted in the log.

    Returns:
        DataFrame with columns 'bin_left', 'bin_right', 'count'.
    """
    if isinstance(scores, ContaminantScores):
        scores = scores.scores
    values = _valid_scores(scores)
    n_missing = len(scores) - len(values)
    if n_missing:
        logger.info(f"{n_missing} undetermined features excluded from the score histogram")
    counts, edges = np.histogram(values, bins=bins, range=(0.0, 1.0))
    return pd.DataFrame({
        'bin_left': edges[:-1],
        'bin_right': edges[1:],
        'count': counts.astype(int),
    })


def find_valley(
    scores: Union[ContaminantScores, pd.Series],
    bins: int = constants.DEFAULT_HISTOGRAM_BINS,
    prominence: float = 1.0
) -> Optional[float]:
    """Centre of the lowest histogram bin between the two most prominent modes.

    A heuristic only: returns None when fewer than two modes are found, and the
    value it returns is a suggestion, not a reproduction of any manual choice.
    Ties for the lowest bin go to the one nearest the lower mode.
    """
    hist = score_histogram(scores, bins)
    counts = hist['count'].to_numpy()
    if counts.sum() == 0:
        return None

    # Pad with zeros so modes in the first/last bin are detected
    padded = np.concatenate([[0], counts, [0]])
    peaks, properties = find_peaks(padded, prominence=prominence)
    if len(peaks) < 2:
        logger.info("Score distribution is not bimodal; no valley threshold suggested")
        return None

    top_two = peaks[np.argsort(properties['prominences'])[::-1][:2]]
    lower, upper = sorted(top_two)
    valley = lower + int(np.argmin(padded[lower:upper + 1]))
    i = valley - 1  # back to histogram bin index
    value = float((hist['bin_left'].iloc[i] + hist['bin_right'].iloc[i]) / 2)
    logger.info(f"Score histogram valley at {value:g}")
    return value


def select_threshold(
    manual: Optional[float] = None,
    configured: Optional[float] = None,
    scores: Optional[Union[ContaminantScores, pd.Series]] = None,
    auto: bool = False,
    bins: int = constants.DEFAULT_HISTOGRAM_BINS
) -> ThresholdChoice:
    """Resolve the threshold to apply.

    Precedence: manual (command line) > configured > histogram valley (only when
    ``auto`` is set and a valley exists) > the 0.1 default. The choice and its
    source are always logged.

    Raises:
        InvalidThreshold: If the manual or configured value is outside [0, 1].
    """
    if manual is not None:
        choice = ThresholdChoice(manual, 'manual')
    elif configured is not None:
        choice = ThresholdChoice(configured, 'config')
    else:
        valley = find_valley(scores, bins) if (auto and scores is not None) else None
        if valley is not None:
            choice = ThresholdChoice(valley, 'valley')
        else:
            choice = ThresholdChoice(constants.DEFAULT_THRESHOLD, 'default')

    log = logger.warning if choice.source == 'default' else logger.info
    log(f"Contaminant threshold: {choice.value:g} (source: {choice.source})")
    return choice
