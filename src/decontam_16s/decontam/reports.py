# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from typing import Iterable, Optional

# Third-Party Imports
import numpy as np
import pandas as pd

# Local Imports
from decontam_16s import constants

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger("decontam_16s")

REPORT_COLUMNS = ['feature_id', *constants.TAXONOMIC_RANKS, 'score']

# ==================================== FUNCTIONS ===================================== #

def feature_report(
    features: pd.DataFrame,
    scores: pd.Series,
    feature_ids: Optional[Iterable[str]] = None,
    sort_by_score: bool = False
) -> pd.DataFrame:
    """One row per feature: id, the six ranks, then the contamination score.

    The removed-contaminant and final-dataset reports share this layout.

    Args:
        features:      Rank table indexed by feature id.
        scores:        Contamination score by feature id (NaN if undetermined).
        feature_ids:   Features to report (default: every row of ``features``).
        sort_by_score: Order rows by score, then id, instead of table order.
    """
    ids = list(features.index if feature_ids is None else feature_ids)
    report = features.loc[ids, constants.TAXONOMIC_RANKS].copy()
    report['score'] = scores.reindex(ids).astype(float).to_numpy()
    report.index.name = 'feature_id'
    report = report.reset_index()
    if sort_by_score:
        report = report.sort_values(['score', 'feature_id'], na_position='last',
                                    kind='mergesort')
        report = report.reset_index(drop=True)
    return report[REPORT_COLUMNS]


def decision_counts(decisions: pd.DataFrame) -> dict:
    """Number of features per decision, for run metadata."""
    counts = decisions['decision'].value_counts()
    return {str(k): int(v) for k, v in counts.items()}


def score_summary(scores: pd.Series) -> dict:
    values = scores.astype(float)
    valid = values.dropna()
    return {
        'n_scored': int(len(valid)),
        'n_undetermined': int(values.isna().sum()),
        'min': float(valid.min()) if len(valid) else np.nan,
        'median': float(valid.median()) if len(valid) else np.nan,
        'max': float(valid.max()) if len(valid) else np.nan,
    }
