# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Union

# Third-Party Imports
import numpy as np
import pandas as pd

# Local Imports
from decontam_16s import constants
from decontam_16s.amplicon_data.dataset import (
    BATCH, IS_CONTROL, LIBRARY_SIZE, StudyDataset
)
from decontam_16s.amplicon_data.loader import CONCENTRATION
from decontam_16s.config import validate_threshold
from decontam_16s.errors import ConfigError, DegenerateBatch
from decontam_16s.stats.frequency import batch_frequency_pvalues
from decontam_16s.stats.prevalence import (
    batch_prevalence_pvalues, combine_pvalues_fisher
)
from decontam_16s.utils.io import write_tsv
from decontam_16s.utils.progress import get_progress_bar, _format_task_desc

# ========================== INITIALISATION & CONFIGURATION ========================== #

logger = logging.getLogger("decontam_16s")

PVALUE_PREFIX = 'p__'

# =================================== DATA CLASSES =================================== #

class Decision(str, Enum):
    CONTAMINANT = 'contaminant'
    NOT_CONTAMINANT = 'not-contaminant'
    UNDETERMINED = 'undetermined'

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class BatchExclusion:
    """A batch that did not contribute to a feature's score, and why."""
    batch: str
    reason: str

    def __str__(self):
        return f"{self.batch}:{self.reason}"

    @classmethod
    def parse(cls, text: str) -> "BatchExclusion":
        batch, _, reason = text.rpartition(':')
        return cls(batch, reason)


@dataclass(frozen=True)
class ContaminantScores:
    """Per-feature contamination scores, the persisted output of the scoring phase.

    Attributes:
        table:         Indexed by feature id; columns 'score' (NaN when no batch
                       contributed), 'n_batches' and 'excluded_batches'
                       ('batch:reason' entries joined by ';').
        batch_pvalues: Features × batches p-values, NaN where excluded.
        method:        Mode and test used, e.g. 'prevalence/chisq'.
    """
    table: pd.DataFrame
    batch_pvalues: pd.DataFrame
    method: str

    def __post_init__(self):
        object.__setattr__(self, 'table', self.table.copy())
        object.__setattr__(self, 'batch_pvalues', self.batch_pvalues.copy())

    @property
    def scores(self) -> pd.Series:
        return self.table['score'].copy()

    @property
    def feature_ids(self) -> pd.Index:
        return self.table.index

    def exclusions(self, feature_id: str) -> List[BatchExclusion]:
        text = self.table.loc[feature_id, 'excluded_batches']
        if not isinstance(text, str) or not text:
            return []
        return [BatchExclusion.parse(item) for item in text.split(';')]

    def to_tsv(self, output_path: Union[str, Path]) -> Path:
        df = self.table.copy()
        for batch in self.batch_pvalues.columns:
            df[f"{PVALUE_PREFIX}{batch}"] = self.batch_pvalues[batch]
        df['method'] = self.method
        df.index.name = 'feature_id'
        return write_tsv(df.reset_index(), output_path)

    @classmethod
    def from_tsv(cls, tsv_path: Union[str, Path]) -> "ContaminantScores":
        df = pd.read_csv(
            tsv_path, sep='\t', dtype={'feature_id': str},
            keep_default_na=False, na_values=['']
        ).set_index('feature_id')
        p_cols = [c for c in df.columns if c.startswith(PVALUE_PREFIX)]
        batch_pvalues = df[p_cols].rename(columns=lambda c: c[len(PVALUE_PREFIX):])
        method = str(df['method'].iloc[0]) if len(df) else 'unknown'
        table = df[['score', 'n_batches', 'excluded_batches']].copy()
        table['excluded_batches'] = table['excluded_batches'].fillna('')
        table['n_batches'] = table['n_batches'].astype(int)
        return cls(table=table, batch_pvalues=batch_pvalues, method=method)

# ==================================== CLASSES ======================================= #

class ContaminantClassifier:
    """Scores every feature of a study for contamination, batch by batch.

    Per-batch p-values come from a prevalence test (controls vs. true samples)
    or, in frequency mode, from the concentration model; they are combined
    across batches with Fisher's method. Features are independent, so the work
    is split into chunks that may run on a thread pool; results are assembled
    in input order and do not depend on the worker count.
    """

    def __init__(
        self,
        mode: str = constants.DEFAULT_CLASSIFIER_MODE,
        test: str = constants.DEFAULT_PREVALENCE_TEST,
        chunk_size: int = constants.DEFAULT_CHUNK_SIZE,
        max_workers: int = constants.DEFAULT_MAX_WORKERS,
        verbose: bool = False
    ):
        if mode not in constants.CLASSIFIER_MODES:
            raise ConfigError(
                f"Invalid classifier mode: {mode}. "
                f"Expected one of {list(constants.CLASSIFIER_MODES)}"
            )
        if test not in constants.PREVALENCE_TESTS:
            raise ConfigError(
                f"Invalid prevalence test: {test}. "
                f"Expected one of {list(constants.PREVALENCE_TESTS)}"
            )
        self.mode, self.test = mode, test
        self.chunk_size, self.max_workers = max(1, chunk_size), max(1, max_workers)
        self.verbose = verbose

    @classmethod
    def from_config(cls, config: Dict, verbose: bool = False) -> "ContaminantClassifier":
        cfg = config.get("classifier", {})
        return cls(
            mode=cfg.get("mode", constants.DEFAULT_CLASSIFIER_MODE),
            test=cfg.get("test", constants.DEFAULT_PREVALENCE_TEST),
            chunk_size=cfg.get("chunk_size", constants.DEFAULT_CHUNK_SIZE),
            max_workers=cfg.get("max_workers", constants.DEFAULT_MAX_WORKERS),
            verbose=verbose,
        )

    @property
    def method(self) -> str:
        return f"prevalence/{self.test}" if self.mode == 'prevalence' else 'frequency'

    def _check_batch(self, dataset: StudyDataset, batch: str) -> Optional[str]:
        """Reason the whole batch is degenerate, or None."""
        samples = dataset.samples[dataset.samples[BATCH] == batch]
        empty = np.zeros((0, len(samples)), dtype=np.int64)
        try:
            self._batch_pvalues(batch, empty, samples)
        except DegenerateBatch as e:
            logger.warning(str(e))
            return e.reason
        return None

    def _batch_pvalues(
        self,
        batch: str,
        counts: np.ndarray,
        samples: pd.DataFrame
    ) -> np.ndarray:
        is_control = samples[IS_CONTROL].to_numpy(dtype=bool)
        if self.mode == 'prevalence':
            return batch_prevalence_pvalues(batch, counts, is_control, self.test)
        if CONCENTRATION not in samples.columns:
            raise DegenerateBatch(batch, constants.REASON_NO_CONCENTRATION)
        return batch_frequency_pvalues(
            batch, counts, is_control,
            samples[CONCENTRATION].to_numpy(dtype=float),
            samples[LIBRARY_SIZE].to_numpy(dtype=float),
        )

    def _score_chunk(
        self,
        dataset: StudyDataset,
        feature_ids: pd.Index,
        batches: List[str]
    ) -> np.ndarray:
        pvalues = np.full((len(feature_ids), len(batches)), np.nan)
        counts = dataset.counts.loc[feature_ids]
        for j, batch in enumerate(batches):
            samples = dataset.samples[dataset.samples[BATCH] == batch]
            pvalues[:, j] = self._batch_pvalues(
                batch, counts[samples.index].to_numpy(), samples
            )
        return pvalues

    def score(self, dataset: StudyDataset) -> ContaminantScores:
        """Compute the contamination score of every feature in ``dataset``."""
        batches = dataset.batches
        degenerate = {b: self._check_batch(dataset, b) for b in batches}
        valid_batches = [b for b in batches if degenerate[b] is None]
        logger.info(
            f"Scoring {dataset.n_features} features ({self.method}) across "
            f"{len(valid_batches)}/{len(batches)} usable batches"
        )

        chunks = [
            dataset.feature_ids[i:i + self.chunk_size]
            for i in range(0, dataset.n_features, self.chunk_size)
        ]
        results = []
        if valid_batches and chunks:
            with get_progress_bar(transient=True) as progress, \
                    ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                task = progress.add_task(
                    _format_task_desc("Scoring features"), total=len(chunks)
                )
                for chunk_pvalues in executor.map(
                    lambda ids: self._score_chunk(dataset, ids, valid_batches), chunks
                ):
                    results.append(chunk_pvalues)
                    progress.update(task, advance=1)

        valid_p = (np.vstack(results) if results
                   else np.full((dataset.n_features, len(valid_batches)), np.nan))
        batch_pvalues = pd.DataFrame(np.nan, index=dataset.feature_ids, columns=batches)
        if valid_batches:
            batch_pvalues[valid_batches] = valid_p

        excluded = []
        for feature_id, row in batch_pvalues.iterrows():
            reasons = [
                str(BatchExclusion(b, degenerate[b] or constants.REASON_UNINFORMATIVE))
                for b in batches if np.isnan(row[b])
            ]
            excluded.append(';'.join(reasons))

        table = pd.DataFrame({
            'score': combine_pvalues_fisher(batch_pvalues.to_numpy())
                     if len(batches) else np.full(dataset.n_features, np.nan),
            'n_batches': batch_pvalues.notna().sum(axis=1).astype(int),
            'excluded_batches': excluded,
        }, index=dataset.feature_ids)

        n_undetermined = int(table['score'].isna().sum())
        if n_undetermined:
            logger.warning(
                f"{n_undetermined} features have no contributing batch and "
                "will be left undetermined"
            )
        return ContaminantScores(table=table, batch_pvalues=batch_pvalues, method=self.method)

# ==================================== FUNCTIONS ===================================== #

def classify_score(score: float, threshold: float) -> Decision:
    """Contaminant iff score ≤ threshold; a missing score is undetermined."""
    if score is None or np.isnan(score):
        return Decision.UNDETERMINED
    return Decision.CONTAMINANT if score <= threshold else Decision.NOT_CONTAMINANT


def classify(
    scores: Union[ContaminantScores, pd.Series],
    threshold: float = constants.DEFAULT_THRESHOLD
) -> pd.DataFrame:
    """Turn scores into decisions at an explicit threshold.

    Args:
        scores:    Scoring-phase output or a Series of scores by feature id.
        threshold: Cut-off in [0, 1].

    Returns:
        DataFrame indexed by feature id with columns 'score' and 'decision'.

    Raises:
        InvalidThreshold: Before any feature is classified.
    """
    threshold = validate_threshold(threshold)
    if isinstance(scores, ContaminantScores):
        scores = scores.scores
    decisions = pd.DataFrame({
        'score': scores.astype(float),
        'decision': [classify_score(s, threshold).value for s in scores.astype(float)],
    }, index=scores.index)
    decisions.index.name = 'feature_id'

    tally = decisions['decision'].value_counts()
    logger.info(
        f"Threshold {threshold:g}: "
        + ", ".join(f"{tally.get(d.value, 0)} {d.value}" for d in Decision)
    )
    return decisions
