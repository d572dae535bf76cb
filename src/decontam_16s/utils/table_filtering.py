# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
import warnings
from typing import List, Tuple

# Third-Party Imports
import pandas as pd

# ================================== LOCAL IMPORTS =================================== #

from decontam_16s import constants
from decontam_16s.amplicon_data.dataset import StudyDataset
from decontam_16s.decontam.classifier import Decision
from decontam_16s.decontam.reports import feature_report
from decontam_16s.errors import EmptyResult, OrphanFeature

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger("decontam_16s")

# ================================ TABLE FILTERING =================================== #

def flag_empty(dataset: StudyDataset, stage: str) -> bool:
    """Warn (``EmptyResult``) when a stage leaves no features or no samples."""
    if not dataset.is_empty:
        return False
    message = (
        f"No {'features' if dataset.n_features == 0 else 'samples'} survived "
        f"{stage}; the whole study likely needs operator attention"
    )
    logger.warning(message)
    warnings.warn(EmptyResult(message), stacklevel=3)
    return True


def remove_contaminants(
    decisions: pd.DataFrame,
    dataset: StudyDataset
) -> Tuple[StudyDataset, List[str]]:
    """Drop every feature whose decision is 'contaminant'.

    Raises:
        OrphanFeature: If a dataset feature has no decision.
    """
    missing = dataset.feature_ids.difference(decisions.index, sort=False)
    if len(missing):
        raise OrphanFeature(missing.tolist(), what="classification decision")

    decided = decisions.loc[dataset.feature_ids, 'decision'].astype(str)
    contaminants = decided.index[decided == Decision.CONTAMINANT.value].tolist()
    n_undetermined = int((decided == Decision.UNDETERMINED.value).sum())
    if n_undetermined:
        logger.info(f"Keeping {n_undetermined} undetermined features for manual review")
    return dataset.drop_features(contaminants), contaminants


def remove_controls(dataset: StudyDataset) -> StudyDataset:
    """Drop every negative-control sample."""
    controls = dataset.control_ids.tolist()
    logger.info(f"Removing {len(controls)} negative-control samples")
    return dataset.drop_samples(controls)


def apply(
    decisions: pd.DataFrame,
    dataset: StudyDataset
) -> Tuple[StudyDataset, pd.DataFrame]:
    """Remove contaminant features, then control samples.

    Args:
        decisions: Output of ``classify`` (columns 'score', 'decision').
        dataset:   Study the decisions were made on.

    Returns:
        (clean_dataset, removed_report). The report lists every contaminant with
        its taxonomy and score, ordered by score.
    """
    without_contaminants, contaminants = remove_contaminants(decisions, dataset)
    removed_report = feature_report(
        dataset.features, decisions['score'], contaminants, sort_by_score=True
    )
    clean = remove_controls(without_contaminants)
    logger.info(
        f"Removed {len(contaminants)} contaminant features; "
        f"{clean.n_features} features × {clean.n_samples} samples remain"
    )
    flag_empty(clean, "contaminant filtering")
    return clean, removed_report


def prune(
    dataset: StudyDataset,
    min_count: int = constants.DEFAULT_MIN_COUNT
) -> Tuple[StudyDataset, List[str]]:
    """Remove features whose total count over the remaining samples is below
    ``min_count`` (the default of 10 keeps totals > 9).

    Returns:
        (pruned_dataset, ids_of_pruned_features)
    """
    if min_count < 0:
        raise ValueError(f"min_count must be non-negative, got {min_count}")
    totals = dataset.feature_totals
    pruned = totals.index[totals < min_count].tolist()
    result = dataset.drop_features(pruned)
    logger.info(
        f"Pruned {len(pruned)} features with fewer than {min_count} reads; "
        f"{result.n_features} features remain"
    )
    flag_empty(result, "low-abundance pruning")
    return result, pruned
