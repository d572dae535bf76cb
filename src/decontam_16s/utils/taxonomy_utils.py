# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Optional, Pattern, Tuple, Union

# Third-Party Imports
import pandas as pd

# Local Imports
from decontam_16s import constants
from decontam_16s.errors import MalformedTaxonomy

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger('decontam_16s')

TAXONOMY_COLUMN_CANDIDATES = ['Taxonomy', 'taxonomy', 'Taxon', 'taxon']

# ==================================== FUNCTIONS ===================================== #

def build_confidence_pattern(
    values: Iterable[str] = constants.CONFIDENCE_VALUES,
    delimiter: str = constants.TAXONOMY_DELIMITER
) -> Pattern:
    """Compile a regex matching any known confidence annotation at the end of a rank.

    Values are escaped (parentheses are regex metacharacters) and tried longest
    first. A match must be followed by optional whitespace and then the rank
    delimiter or the end of the string, so "(1000)" or "(99)x" are left alone.
    """
    alternation = "|".join(
        re.escape(v) for v in sorted(set(values), key=len, reverse=True)
    )
    return re.compile(rf"(?:{alternation})(?=\s*(?:{re.escape(delimiter)}|$))")


CONFIDENCE_PATTERN = build_confidence_pattern()


@dataclass(frozen=True)
class TaxonomyRecord:
    """Six-rank taxonomy of one feature. Empty ranks are kept as ''."""
    feature_id: str
    ranks: Tuple[str, ...]
    anomalies: Tuple[str, ...] = ()

    def as_dict(self) -> Dict[str, str]:
        return dict(zip(constants.TAXONOMIC_RANKS, self.ranks))


def split_ranks(
    taxonomy: str,
    delimiter: str = constants.TAXONOMY_DELIMITER
) -> list:
    """Split a taxonomy string into rank fields.

    A single trailing delimiter terminates the last rank rather than opening an
    empty one, so 'Bacteria;Firmicutes;;;;;' has six fields.
    """
    if taxonomy.endswith(delimiter):
        taxonomy = taxonomy[:-len(delimiter)]
    return [field.strip() for field in taxonomy.split(delimiter)]


def normalize_taxonomy(
    feature_id: str,
    taxonomy: Optional[str],
    delimiter: str = constants.TAXONOMY_DELIMITER,
    pattern: Pattern = CONFIDENCE_PATTERN,
) -> TaxonomyRecord:
    """Strip confidence annotations and split a taxonomy string into six ranks.

    Args:
        feature_id: Feature identifier, used in error messages.
        taxonomy:   Raw taxonomy string, e.g. 'Bacteria(100);Firmicutes(98);;;;;'.
        delimiter:  Rank delimiter.
        pattern:    Compiled confidence pattern (see ``build_confidence_pattern``).

    Returns:
        TaxonomyRecord with exactly ``N_TAXONOMIC_RANKS`` ranks.

    Raises:
        MalformedTaxonomy: If the string does not hold exactly six ranks.
    """
    if taxonomy is None or (isinstance(taxonomy, float) and pd.isna(taxonomy)):
        raise MalformedTaxonomy(feature_id, 0, constants.N_TAXONOMIC_RANKS, "")

    raw = str(taxonomy).strip()
    fields = split_ranks(pattern.sub("", raw), delimiter) if raw else []
    if len(fields) != constants.N_TAXONOMIC_RANKS:
        raise MalformedTaxonomy(feature_id, len(fields), constants.N_TAXONOMIC_RANKS, raw)

    # Unknown parentheticals stay in the rank name; they are only reported
    anomalies = tuple(
        f"{rank}={value}"
        for rank, value in zip(constants.TAXONOMIC_RANKS, fields)
        if constants.PARENTHETICAL_PATTERN.search(value)
    )
    if anomalies:
        logger.warning(
            f"Unrecognised parenthetical text in taxonomy of '{feature_id}': "
            f"{', '.join(anomalies)}"
        )
    return TaxonomyRecord(feature_id, tuple(fields), anomalies)


def normalize_taxonomy_table(
    taxonomy: pd.Series,
    delimiter: str = constants.TAXONOMY_DELIMITER,
) -> pd.DataFrame:
    """Normalize a Series of taxonomy strings indexed by feature id.

    Returns:
        DataFrame indexed by feature id with one column per rank and an
        'anomaly' column ('' when the taxonomy parsed cleanly).

    Raises:
        MalformedTaxonomy: For the first malformed entry, after every malformed
                           feature has been logged.
    """
    pattern = (CONFIDENCE_PATTERN if delimiter == constants.TAXONOMY_DELIMITER
               else build_confidence_pattern(delimiter=delimiter))
    records, errors = [], []
    for feature_id, raw in taxonomy.items():
        try:
            records.append(normalize_taxonomy(str(feature_id), raw, delimiter, pattern))
        except MalformedTaxonomy as e:
            logger.error(str(e))
            errors.append(e)
    if errors:
        if len(errors) > 1:
            logger.error(f"{len(errors)} features have malformed taxonomy")
        raise errors[0]

    df = pd.DataFrame(
        [r.ranks for r in records],
        index=pd.Index([r.feature_id for r in records], name='feature_id'),
        columns=constants.TAXONOMIC_RANKS,
        dtype=object,
    )
    df['anomaly'] = ['; '.join(r.anomalies) for r in records]
    return df

# ================================== TAXONOMY CLASS ================================== #

class Taxonomy:
    """
    Handler for per-feature taxonomy tables (e.g. mothur .cons.taxonomy or a
    two-column TSV).

    Attributes:
        taxonomy (pd.DataFrame): Normalized taxonomy indexed by feature id with
            columns Kingdom, Phylum, Class, Order, Family, Genus and anomaly.
    """

    def __init__(
        self,
        tsv_path: Union[str, Path],
        id_column: Optional[str] = None,
        taxonomy_column: Optional[str] = None,
        sep: str = '\t',
    ) -> None:
        self.taxonomy: pd.DataFrame = self._import_taxonomy_tsv(
            tsv_path, id_column, taxonomy_column, sep
        )

    def _import_taxonomy_tsv(
        self,
        tsv_path: Union[str, Path],
        id_column: Optional[str],
        taxonomy_column: Optional[str],
        sep: str,
    ) -> pd.DataFrame:
        tsv_path = Path(tsv_path)
        df = pd.read_csv(tsv_path, sep=sep, dtype=str, keep_default_na=False)
        id_column = id_column or df.columns[0]
        if taxonomy_column is None:
            taxonomy_column = next(
                (c for c in TAXONOMY_COLUMN_CANDIDATES if c in df.columns),
                df.columns[-1]
            )
        for column in (id_column, taxonomy_column):
            if column not in df.columns:
                raise KeyError(f"Column '{column}' not found in {tsv_path}")

        raw = df.set_index(id_column)[taxonomy_column]
        logger.debug(f"Loaded {len(raw)} taxonomy entries from {tsv_path}")
        return normalize_taxonomy_table(raw)

    def get_ranks_by_id(self, feature_id: str) -> Optional[Dict[str, str]]:
        """Rank dictionary for a feature, or None if the feature is unknown."""
        if feature_id not in self.taxonomy.index:
            return None
        return self.taxonomy.loc[feature_id, constants.TAXONOMIC_RANKS].to_dict()
