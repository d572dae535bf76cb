"""
Contaminant filtering workflow for 16S amplicon studies
----------------------------------------------------------------------------------------
Two explicit phases:

  score  load the study, score every feature for contamination and persist the
         scores with their histogram (and an optional valley suggestion).
  apply  reload the study and the persisted scores, apply an explicit threshold,
         remove contaminants and negative controls, prune low-abundance features
         and write the audit reports, depth statistics and DivNet inputs.

Both phases only read their inputs and write fresh artifacts, so either can be
re-run with the same inputs and threshold to reproduce the same outputs.
"""
# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import argparse
import logging
import sys
import traceback
from pathlib import Path
from typing import Dict, List, Optional

# Third-Party Imports
import pandas as pd

# Local Imports
from decontam_16s import constants
from decontam_16s.amplicon_data.loader import load_study
from decontam_16s.config import get_config, validate_threshold
from decontam_16s.decontam.classifier import ContaminantClassifier, ContaminantScores
from decontam_16s.decontam.pipeline import DecontamResult, apply_threshold
from decontam_16s.decontam.threshold import find_valley, score_histogram, select_threshold
from decontam_16s.diversity.divnet import expand_comparisons, export_divnet_inputs
from decontam_16s.errors import DecontamError
from decontam_16s.logger import setup_logging
from decontam_16s.utils.dir_utils import SubDirs
from decontam_16s.utils.io import export_h5py, write_tsv, write_yaml

# ========================== INITIALIZATION & CONFIGURATION ========================== #

pd.set_option('display.max_colwidth', None)

logger = logging.getLogger("decontam_16s")

# =================================== MAIN WORKFLOW ================================== #

class WorkflowError(Exception):
    """Custom exception for workflow-related errors."""
    pass


class DecontamWorkflow:
    def __init__(
        self,
        config_path: Path = constants.DEFAULT_CONFIG,
        config: Optional[Dict] = None
    ) -> None:
        self.config = config if config is not None else get_config(config_path)
        self.dirs = SubDirs(self.config.get("project_dir", constants.DEFAULT_PROJECT_DIR))
        self.logger = setup_logging(self.dirs.logs)
        self.cls_cfg = self.config.get("classifier", {})

    # ------------------------------------------------------------------ #
    # Phase 1
    # ------------------------------------------------------------------ #

    def score(self) -> ContaminantScores:
        """Score every feature and persist the score distribution."""
        dataset = load_study(self.config)
        scores = ContaminantClassifier.from_config(self.config).score(dataset)
        scores.to_tsv(self.dirs.scores_tsv)

        bins = self.cls_cfg.get("histogram_bins", constants.DEFAULT_HISTOGRAM_BINS)
        write_tsv(score_histogram(scores, bins), self.dirs.score_histogram_tsv)
        valley = find_valley(scores, bins)
        write_yaml({
            'method': scores.method,
            'n_features': int(len(scores.table)),
            'n_undetermined': int(scores.scores.isna().sum()),
            'suggested_valley_threshold': valley,
            'histogram_bins': bins,
        }, self.dirs.score_summary_yaml)

        self.logger.info(f"Scores written → {self.dirs.scores_tsv}")
        if valley is not None:
            self.logger.info(
                f"Histogram valley at {valley:g}; pass it explicitly with "
                "`apply --threshold` or enable auto_threshold to use it"
            )
        return scores

    # ------------------------------------------------------------------ #
    # Phase 2
    # ------------------------------------------------------------------ #

    def apply(
        self,
        threshold: Optional[float] = None,
        auto_threshold: Optional[bool] = None
    ) -> DecontamResult:
        """Apply an explicit threshold to the persisted scores and write reports."""
        if not self.dirs.scores_tsv.exists():
            raise WorkflowError(
                f"No scores found at {self.dirs.scores_tsv}; run the score phase first"
            )
        scores = ContaminantScores.from_tsv(self.dirs.scores_tsv)
        choice = select_threshold(
            manual=threshold,
            configured=self.cls_cfg.get("threshold"),
            scores=scores,
            auto=self.cls_cfg.get("auto_threshold", False)
                 if auto_threshold is None else auto_threshold,
            bins=self.cls_cfg.get("histogram_bins", constants.DEFAULT_HISTOGRAM_BINS),
        )

        dataset = load_study(self.config)
        pruning_cfg = self.config.get("pruning", {})
        result = apply_threshold(
            dataset, scores, choice,
            min_count=pruning_cfg.get("min_count", constants.DEFAULT_MIN_COUNT),
            depth_bins=pruning_cfg.get("depth_bins", constants.DEFAULT_DEPTH_BINS),
        )
        self._write_outputs(result, scores)
        self._export_divnet(result)
        return result

    def _write_outputs(self, result: DecontamResult, scores: ContaminantScores) -> None:
        reports, tables = self.dirs.reports, self.dirs.tables
        write_tsv(result.decisions.reset_index(), reports / 'decisions.tsv')
        write_tsv(result.removed_report, reports / 'removed_contaminants.tsv')
        write_tsv(result.pruned_report, reports / 'pruned_low_abundance.tsv')
        write_tsv(result.final_report, reports / 'final_features.tsv')
        write_tsv(result.depth.library_sizes.rename('library_size').reset_index(),
                  reports / 'sample_depth.tsv')
        write_tsv(result.depth.histogram, reports / 'depth_histogram.tsv')

        write_tsv(result.final.counts, tables / 'final_counts.tsv', index=True)
        write_tsv(result.final.samples, tables / 'final_samples.tsv', index=True)
        if not result.final.is_empty:
            export_h5py(result.final.to_biom(), tables / 'final_counts.biom')

        write_yaml(result.metadata(scores), self.dirs.run_metadata_yaml)
        self.logger.info(
            f"Final dataset: {result.final.n_features} features × "
            f"{result.final.n_samples} samples → {tables}"
        )

    def _export_divnet(self, result: DecontamResult) -> None:
        divnet_cfg = self.config.get("divnet", {})
        if not divnet_cfg.get("enabled", False):
            return
        comparisons = expand_comparisons(
            divnet_cfg.get("comparisons", []) or [], result.final.samples
        )
        export_divnet_inputs(
            result.final,
            comparisons,
            self.dirs.divnet,
            write_config=divnet_cfg.get("write_config", True),
            config_template=divnet_cfg.get("config_template"),
            seed=divnet_cfg.get("seed", constants.DEFAULT_DIVNET_SEED),
        )

    # ------------------------------------------------------------------ #

    def run(
        self,
        command: str,
        threshold: Optional[float] = None,
        auto_threshold: Optional[bool] = None
    ) -> None:
        """Execute one phase ('score', 'apply') or both ('run')."""
        try:
            if threshold is not None:
                validate_threshold(threshold)
            if command in ("score", "run"):
                self.score()
            if command in ("apply", "run"):
                self.apply(threshold, auto_threshold)
        except WorkflowError:
            raise
        except DecontamError as e:
            self.logger.error(f"Workflow execution failed: {e}")
            raise WorkflowError("Workflow aborted due to errors") from e
        except Exception as e:
            self.logger.critical(f"Unexpected error: {e}\n"
                                 f"Traceback: {traceback.format_exc()}")
            raise WorkflowError("Workflow aborted due to errors") from e


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Identify and remove contaminant features from a 16S study."
    )
    parser.add_argument(
        "command",
        choices=["score", "apply", "run"],
        help="Phase to execute: score, apply, or both (run).",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=constants.DEFAULT_CONFIG,
        help="Path to the configuration file.",
    )
    threshold = parser.add_mutually_exclusive_group()
    threshold.add_argument(
        "--threshold",
        type=float,
        default=None,
        help="Contaminant score threshold in [0, 1] (overrides the config).",
    )
    threshold.add_argument(
        "--auto-threshold",
        action="store_true",
        default=None,
        help="Use the score histogram valley when no threshold is given.",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Run the workflow from the command line."""
    args = build_parser().parse_args(argv)
    try:
        workflow = DecontamWorkflow(args.config)
        workflow.run(args.command, args.threshold, args.auto_threshold)
    except (WorkflowError, DecontamError, OSError) as e:
        logger.error(str(e))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
