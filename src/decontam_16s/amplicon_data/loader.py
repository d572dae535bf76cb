# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from pathlib import Path
from typing import Dict, List, Optional, Union

# Third‑Party Imports
import pandas as pd

# Local Imports
from decontam_16s import constants
from decontam_16s.amplicon_data.dataset import (
    BATCH, IS_CONTROL, SAMPLE_TYPE, StudyDataset, to_bool
)
from decontam_16s.errors import (
    ConfigError, DuplicateIdentifier, OrphanFeature, OrphanSample
)
from decontam_16s.utils.io import import_metadata, import_table
from decontam_16s.utils.taxonomy_utils import Taxonomy, normalize_taxonomy_table

# ========================== INITIALISATION & CONFIGURATION ========================== #

logger = logging.getLogger("decontam_16s")

CONCENTRATION = 'concentration'

# ==================================== FUNCTIONS ===================================== #

def orient_table(
    table: pd.DataFrame,
    sample_ids: pd.Index,
    orientation: str = constants.DEFAULT_ORIENTATION
) -> pd.DataFrame:
    """Return the abundance table as features × samples.

    With ``orientation='auto'`` the axis sharing more ids with the sample
    metadata is taken as the sample axis (columns win ties).
    """
    if orientation not in constants.ORIENTATIONS:
        raise ConfigError(f"Invalid orientation: {orientation}")
    if orientation == 'auto':
        in_columns = table.columns.isin(sample_ids).sum()
        in_index = table.index.isin(sample_ids).sum()
        orientation = ('samples_x_features' if in_index > in_columns
                       else 'features_x_samples')
        logger.debug(f"Detected feature table orientation: {orientation}")
    return table.T if orientation == 'samples_x_features' else table


def standardize_metadata(
    metadata: pd.DataFrame,
    sample_id_column: str = constants.DEFAULT_SAMPLE_ID_COLUMN,
    batch_column: Optional[str] = constants.DEFAULT_BATCH_COLUMN,
    sample_type_column: Optional[str] = constants.DEFAULT_SAMPLE_TYPE_COLUMN,
    control_column: Optional[str] = constants.DEFAULT_CONTROL_COLUMN,
    control_types: List[str] = constants.DEFAULT_CONTROL_TYPES,
    concentration_column: Optional[str] = constants.DEFAULT_CONCENTRATION_COLUMN,
) -> pd.DataFrame:
    """Index sample metadata by sample id and add the standard columns.

    Args:
        metadata:             Raw sample metadata, one row per sample.
        sample_id_column:     Column holding the sample id.
        batch_column:         Processing batch (plate/run). Missing → one batch.
        sample_type_column:   Free-text sample type.
        control_column:       Negative-control flag. If absent the flag is derived
                              from ``sample_type`` ∈ ``control_types``.
        control_types:        Sample types that mark a negative control.
        concentration_column: Optional DNA concentration (frequency mode).

    Returns:
        DataFrame indexed by sample id with 'batch', 'sample_type', 'is_control'
        (and 'concentration' if configured) followed by the original columns.
    """
    df = metadata.copy()
    if sample_id_column not in df.columns:
        raise KeyError(f"Sample id column '{sample_id_column}' not found in metadata")
    df[sample_id_column] = df[sample_id_column].astype(str).str.strip()
    df = df.set_index(sample_id_column)
    df.index.name = 'sample_id'
    if df.index.has_duplicates:
        raise DuplicateIdentifier('sample', df.index[df.index.duplicated()].unique())

    original = df.columns.tolist()
    standard = pd.DataFrame(index=df.index)

    if batch_column and batch_column in df.columns:
        standard[BATCH] = df[batch_column].astype(str)
    else:
        logger.info("No batch column in metadata; treating all samples as one batch")
        standard[BATCH] = constants.DEFAULT_SINGLE_BATCH

    if sample_type_column and sample_type_column in df.columns:
        standard[SAMPLE_TYPE] = df[sample_type_column].astype(str)
    else:
        standard[SAMPLE_TYPE] = ''

    if control_column and control_column in df.columns:
        try:
            standard[IS_CONTROL] = df[control_column].map(to_bool).astype(bool)
        except ValueError as e:
            raise ConfigError(f"Column '{control_column}': {e}") from e
    elif sample_type_column and sample_type_column in df.columns:
        wanted = {str(t).lower() for t in control_types}
        standard[IS_CONTROL] = standard[SAMPLE_TYPE].str.lower().isin(wanted)
    else:
        raise ConfigError(
            "Metadata has neither a control column nor a sample type column; "
            "negative controls cannot be identified"
        )

    if concentration_column:
        if concentration_column not in df.columns:
            raise KeyError(
                f"Concentration column '{concentration_column}' not found in metadata"
            )
        standard[CONCENTRATION] = pd.to_numeric(df[concentration_column], errors='coerce')

    extra = df[[c for c in original if c not in standard.columns]]
    return pd.concat([standard, extra], axis=1)


def build_study_dataset(
    table: pd.DataFrame,
    metadata: pd.DataFrame,
    taxonomy: Union[pd.DataFrame, pd.Series],
) -> StudyDataset:
    """Join a features × samples table with standardized metadata and taxonomy.

    Args:
        table:    Features × samples counts.
        metadata: Output of ``standardize_metadata``.
        taxonomy: Normalized rank table, or a Series of raw taxonomy strings.

    Raises:
        OrphanSample:  Table columns without metadata.
        OrphanFeature: Table rows without taxonomy.
    """
    if isinstance(taxonomy, pd.Series):
        taxonomy = normalize_taxonomy_table(taxonomy)

    table = table.copy()
    table.index = table.index.astype(str)
    table.columns = table.columns.astype(str)

    orphan_samples = table.columns.difference(metadata.index, sort=False)
    if len(orphan_samples):
        raise OrphanSample(orphan_samples.tolist())
    orphan_features = table.index.difference(taxonomy.index, sort=False)
    if len(orphan_features):
        raise OrphanFeature(orphan_features.tolist())

    unused_samples = metadata.index.difference(table.columns)
    if len(unused_samples):
        logger.debug(
            f"{len(unused_samples)} metadata rows have no column in the feature table"
        )
    unused_features = taxonomy.index.difference(table.index)
    if len(unused_features):
        logger.debug(
            f"{len(unused_features)} taxonomy rows have no row in the feature table"
        )

    dataset = StudyDataset(counts=table, samples=metadata, features=taxonomy)
    logger.info(f"Loaded study: {dataset.summary()}")
    return dataset

# ==================================== CLASSES ======================================= #

class StudyLoader:
    """Loads the feature table, sample metadata and taxonomy named in the config."""

    def __init__(self, config: Dict):
        self.cfg = config
        self.inputs = config.get("inputs", {})
        self.meta_cfg = config.get("metadata", {})
        self.tax_cfg = config.get("taxonomy", {})

    # Type hints
    metadata: pd.DataFrame
    taxonomy: pd.DataFrame
    table: pd.DataFrame

    def _input_path(self, key: str) -> Path:
        value = self.inputs.get(key)
        if not value:
            raise ConfigError(f"`inputs.{key}` is not set")
        return Path(value)

    def _load_metadata(self) -> None:
        raw = import_metadata(self._input_path("metadata"), self.inputs.get("delimiter"))
        self.metadata = standardize_metadata(
            raw,
            sample_id_column=self.meta_cfg.get(
                "sample_id_column", constants.DEFAULT_SAMPLE_ID_COLUMN),
            batch_column=self.meta_cfg.get("batch_column", constants.DEFAULT_BATCH_COLUMN),
            sample_type_column=self.meta_cfg.get(
                "sample_type_column", constants.DEFAULT_SAMPLE_TYPE_COLUMN),
            control_column=self.meta_cfg.get(
                "control_column", constants.DEFAULT_CONTROL_COLUMN),
            control_types=self.meta_cfg.get("control_types", constants.DEFAULT_CONTROL_TYPES),
            concentration_column=self.meta_cfg.get("concentration_column"),
        )
        logger.info(
            f"Loaded metadata for {len(self.metadata)} samples "
            f"({int(self.metadata[IS_CONTROL].sum())} negative controls)"
        )

    def _load_taxonomy(self) -> None:
        path = self._input_path("taxonomy")
        self.taxonomy = Taxonomy(
            path,
            id_column=self.tax_cfg.get("id_column"),
            taxonomy_column=self.tax_cfg.get("taxonomy_column"),
            sep=self.inputs.get("delimiter") or ('\t' if path.suffix != '.csv' else ','),
        ).taxonomy

    def _load_table(self) -> None:
        table = import_table(self._input_path("feature_table"), self.inputs.get("delimiter"))
        orientation = self.inputs.get("orientation", constants.DEFAULT_ORIENTATION)
        if self._input_path("feature_table").suffix.lower() == '.biom':
            orientation = 'features_x_samples'
        self.table = orient_table(table, self.metadata.index, orientation)

    def load(self) -> StudyDataset:
        self._load_metadata()
        self._load_taxonomy()
        self._load_table()
        return build_study_dataset(self.table, self.metadata, self.taxonomy)


def load_study(config: Dict) -> StudyDataset:
    """Build the ``StudyDataset`` from the inputs named in ``config``."""
    return StudyLoader(config).load()
