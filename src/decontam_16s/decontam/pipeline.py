# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

# Third-Party Imports
import pandas as pd

# Local Imports
from decontam_16s import constants
from decontam_16s.amplicon_data.dataset import StudyDataset
from decontam_16s.decontam.classifier import (
    ContaminantClassifier, ContaminantScores, classify
)
from decontam_16s.decontam.reports import (
    decision_counts, feature_report, score_summary
)
from decontam_16s.decontam.threshold import ThresholdChoice, select_threshold
from decontam_16s.errors import OrphanFeature
from decontam_16s.utils.feature_table_stats import DepthReport, depth_report
from decontam_16s.utils.table_filtering import apply, prune

# ========================== INITIALISATION & CONFIGURATION ========================== #

logger = logging.getLogger("decontam_16s")

# =================================== DATA CLASSES =================================== #

@dataclass(frozen=True)
class DecontamResult:
    """Every artifact of the apply phase, from decisions to the final dataset."""
    threshold: ThresholdChoice
    decisions: pd.DataFrame
    clean: StudyDataset
    removed_report: pd.DataFrame
    final: StudyDataset
    pruned_ids: List[str]
    pruned_report: pd.DataFrame
    final_report: pd.DataFrame
    depth: DepthReport
    min_count: int
    n_samples_input: int
    flags: List[str] = field(default_factory=list)

    def metadata(self, scores: Optional[ContaminantScores] = None) -> Dict[str, Any]:
        """Run summary written next to the reports, including the threshold policy."""
        meta = {
            **self.threshold.as_dict(),
            'min_count': self.min_count,
            'decisions': decision_counts(self.decisions),
            'n_features_input': int(len(self.decisions)),
            'n_contaminants_removed': int(len(self.removed_report)),
            'n_controls_removed': self.n_samples_input - self.clean.n_samples,
            'n_features_after_filter': self.clean.n_features,
            'n_features_pruned': len(self.pruned_ids),
            'n_features_final': self.final.n_features,
            'n_samples_final': self.final.n_samples,
            'depth': self.depth.summary(),
            'flags': list(self.flags),
        }
        if scores is not None:
            meta['method'] = scores.method
            meta['scores'] = score_summary(scores.scores)
        return meta

# ==================================== FUNCTIONS ===================================== #

def apply_threshold(
    dataset: StudyDataset,
    scores: ContaminantScores,
    threshold: ThresholdChoice,
    min_count: int = constants.DEFAULT_MIN_COUNT,
    depth_bins: int = constants.DEFAULT_DEPTH_BINS
) -> DecontamResult:
    """Apply phase: classify, filter, prune and report, for an explicit threshold.

    Args:
        dataset:    Study the scores were computed on.
        scores:     Scoring-phase output.
        threshold:  Resolved threshold (see ``select_threshold``).
        min_count:  Minimum total reads for a feature to be kept.
        depth_bins: Bins of the depth histogram.
    """
    missing = dataset.feature_ids.difference(scores.feature_ids, sort=False)
    if len(missing):
        raise OrphanFeature(missing.tolist(), what="contamination score")
    decisions = classify(scores.scores.reindex(dataset.feature_ids), threshold.value)
    flags = []

    clean, removed_report = apply(decisions, dataset)
    if clean.is_empty:
        flags.append('empty_after_contaminant_filter')

    final, pruned_ids = prune(clean, min_count)
    if final.is_empty and not clean.is_empty:
        flags.append('empty_after_pruning')

    pruned_report = feature_report(clean.features, decisions['score'], pruned_ids)
    final_report = feature_report(final.features, decisions['score'])
    depth = depth_report(final, depth_bins)

    return DecontamResult(
        threshold=threshold,
        decisions=decisions,
        clean=clean,
        removed_report=removed_report,
        final=final,
        pruned_ids=pruned_ids,
        pruned_report=pruned_report,
        final_report=final_report,
        depth=depth,
        min_count=min_count,
        n_samples_input=dataset.n_samples,
        flags=flags,
    )


def decontaminate(
    dataset: StudyDataset,
    threshold: Optional[float] = None,
    classifier: Optional[ContaminantClassifier] = None,
    min_count: int = constants.DEFAULT_MIN_COUNT,
    auto_threshold: bool = False
) -> DecontamResult:
    """Score and apply in one call, for in-memory use.

    The threshold is still resolved through ``select_threshold`` so its source is
    logged and recorded in the result.
    """
    classifier = classifier or ContaminantClassifier()
    scores = classifier.score(dataset)
    choice = select_threshold(manual=threshold, scores=scores, auto=auto_threshold)
    return apply_threshold(dataset, scores, choice, min_count)
