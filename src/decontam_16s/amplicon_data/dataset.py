# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

# Third-Party Imports
import numpy as np
import pandas as pd
from biom import Table

# Local Imports
from decontam_16s import constants
from decontam_16s.errors import (
    DuplicateIdentifier, InvalidCounts, OrphanFeature, OrphanSample
)
from decontam_16s.utils.table_conversion import to_biom

# ========================== INITIALISATION & CONFIGURATION ========================== #

logger = logging.getLogger("decontam_16s")

# Standardised sample table columns
BATCH = 'batch'
SAMPLE_TYPE = 'sample_type'
IS_CONTROL = 'is_control'
LIBRARY_SIZE = 'library_size'
SAMPLE_COLUMNS = [BATCH, SAMPLE_TYPE, IS_CONTROL]

# ==================================== FUNCTIONS ===================================== #

def validate_counts(counts: pd.DataFrame) -> pd.DataFrame:
    """Return ``counts`` as int64, rejecting missing, negative or fractional cells.

    Raises:
        InvalidCounts: If any cell is not a non-negative integer.
    """
    if counts.empty:
        return counts.astype(np.int64)
    try:
        values = counts.apply(pd.to_numeric, errors='raise')
    except (TypeError, ValueError) as e:
        raise InvalidCounts(f"Feature table holds non-numeric values: {e}") from e

    if values.isna().any().any():
        raise InvalidCounts("Feature table holds missing values")
    arr = values.to_numpy(dtype=float)
    if (arr < 0).any():
        bad = values.index[(arr < 0).any(axis=1)].tolist()
        raise InvalidCounts(f"Feature table holds negative counts for features: {bad[:10]}")
    if not np.array_equal(arr, np.round(arr)):
        raise InvalidCounts("Feature table holds non-integer counts")
    return values.astype(np.int64)


def to_bool(value) -> bool:
    """Interpret a control flag given as a bool, 0/1 or a true/false string."""
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    if isinstance(value, (int, np.integer)) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in constants.TRUE_STRINGS:
            return True
        if text in constants.FALSE_STRINGS:
            return False
    raise ValueError(f"Cannot interpret {value!r} as a control flag")


def _check_unique(index: pd.Index, kind: str) -> None:
    if index.has_duplicates:
        raise DuplicateIdentifier(kind, index[index.duplicated()].unique().tolist())

# ==================================== CLASSES ======================================= #

@dataclass(frozen=True)
class StudyDataset:
    """Abundance matrix joined with its sample and feature tables.

    Every stage of the pipeline returns a new ``StudyDataset``; the constructor
    takes defensive copies and nothing modifies an instance after creation.

    Attributes:
        counts:   Features × samples int64 counts.
        samples:  Indexed by sample id, columns batch, sample_type, is_control,
                  library_size plus any further metadata columns.
        features: Indexed by feature id, one column per taxonomic rank (plus an
                  optional 'anomaly' column).
    """
    counts: pd.DataFrame
    samples: pd.DataFrame
    features: pd.DataFrame

    def __post_init__(self):
        counts = validate_counts(self.counts.copy())
        counts.index = counts.index.astype(str)
        counts.columns = counts.columns.astype(str)
        counts.index.name, counts.columns.name = 'feature_id', 'sample_id'
        _check_unique(counts.index, 'feature')
        _check_unique(counts.columns, 'sample')

        samples = self.samples.copy()
        samples.index = samples.index.astype(str)
        _check_unique(samples.index, 'sample')
        missing = [c for c in SAMPLE_COLUMNS if c not in samples.columns]
        if missing:
            raise KeyError(f"Sample table is missing required columns: {missing}")
        orphan_samples = counts.columns.difference(samples.index, sort=False)
        if len(orphan_samples):
            raise OrphanSample(orphan_samples.tolist())

        features = self.features.copy()
        features.index = features.index.astype(str)
        _check_unique(features.index, 'feature')
        missing = [c for c in constants.TAXONOMIC_RANKS if c not in features.columns]
        if missing:
            raise KeyError(f"Feature table is missing rank columns: {missing}")
        orphan_features = counts.index.difference(features.index, sort=False)
        if len(orphan_features):
            raise OrphanFeature(orphan_features.tolist())

        # Align both tables to the matrix axes
        samples = samples.loc[counts.columns].copy()
        samples.index.name = 'sample_id'
        samples[IS_CONTROL] = samples[IS_CONTROL].map(to_bool).astype(bool)
        samples[BATCH] = samples[BATCH].astype(str)
        samples[LIBRARY_SIZE] = counts.sum(axis=0).astype(np.int64)
        features = features.loc[counts.index].copy()
        features.index.name = 'feature_id'

        object.__setattr__(self, 'counts', counts)
        object.__setattr__(self, 'samples', samples)
        object.__setattr__(self, 'features', features)

    # ------------------------------------------------------------------ #

    @property
    def feature_ids(self) -> pd.Index:
        return self.counts.index

    @property
    def sample_ids(self) -> pd.Index:
        return self.counts.columns

    @property
    def n_features(self) -> int:
        return self.counts.shape[0]

    @property
    def n_samples(self) -> int:
        return self.counts.shape[1]

    @property
    def is_empty(self) -> bool:
        return self.n_features == 0 or self.n_samples == 0

    @property
    def library_sizes(self) -> pd.Series:
        return self.samples[LIBRARY_SIZE].copy()

    @property
    def feature_totals(self) -> pd.Series:
        """Total abundance of each feature over the current samples."""
        totals = self.counts.sum(axis=1).astype(np.int64)
        totals.name = 'total_abundance'
        return totals

    @property
    def control_ids(self) -> pd.Index:
        return self.samples.index[self.samples[IS_CONTROL]]

    @property
    def batches(self) -> list:
        return sorted(self.samples[BATCH].unique().tolist())

    def subset(
        self,
        feature_ids: Optional[Iterable[str]] = None,
        sample_ids: Optional[Iterable[str]] = None
    ) -> "StudyDataset":
        """New dataset restricted to the given ids (order of this dataset kept)."""
        rows = self.feature_ids if feature_ids is None else \
            self.feature_ids[self.feature_ids.isin(list(feature_ids))]
        cols = self.sample_ids if sample_ids is None else \
            self.sample_ids[self.sample_ids.isin(list(sample_ids))]
        return StudyDataset(
            counts=self.counts.loc[rows, cols],
            samples=self.samples.loc[cols].drop(columns=[LIBRARY_SIZE]),
            features=self.features.loc[rows],
        )

    def drop_features(self, feature_ids: Iterable[str]) -> "StudyDataset":
        drop = set(feature_ids)
        return self.subset(feature_ids=[f for f in self.feature_ids if f not in drop])

    def drop_samples(self, sample_ids: Iterable[str]) -> "StudyDataset":
        drop = set(sample_ids)
        return self.subset(sample_ids=[s for s in self.sample_ids if s not in drop])

    def to_biom(self) -> Table:
        """Counts as a BIOM Table with the taxonomy as observation metadata."""
        table = to_biom(self.counts)
        taxonomy = {
            fid: {'taxonomy': list(row)}
            for fid, row in self.features[constants.TAXONOMIC_RANKS].iterrows()
        }
        table.add_metadata(taxonomy, axis='observation')
        return table

    def summary(self) -> str:
        return (
            f"{self.n_features} features × {self.n_samples} samples "
            f"({len(self.control_ids)} controls, {len(self.batches)} batches)"
        )
