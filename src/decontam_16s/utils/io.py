# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

# Third-Party Imports
import h5py
import pandas as pd
import yaml
from biom import load_table
from biom.table import Table

# Local Imports
from decontam_16s import constants
from decontam_16s.utils.table_conversion import table_to_df, to_biom

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger('decontam_16s')

# ==================================== FUNCTIONS ===================================== #

def infer_delimiter(path: Union[str, Path], delimiter: Optional[str] = None) -> str:
    """Delimiter from an explicit setting or the file extension (TSV by default)."""
    if delimiter is not None:
        return delimiter
    return constants.DELIMITERS.get(Path(path).suffix.lower(), '\t')


def import_biom(biom_path: Union[str, Path]) -> Table:
    """Load a BIOM table from file (HDF5 format first, then JSON/TSV via biom).

    Args:
        biom_path: Path to .biom file.

    Returns:
        BIOM Table object.
    """
    try:
        with h5py.File(biom_path, 'r') as f:
            return Table.from_hdf5(f)
    except OSError:
        logger.debug(f"{biom_path} is not HDF5, falling back to biom.load_table")
        return load_table(str(biom_path))


def import_table(
    table_path: Union[str, Path],
    delimiter: Optional[str] = None
) -> pd.DataFrame:
    """Read an abundance table as a DataFrame with string ids on both axes.

    Delimited text is returned in its on-disk orientation; BIOM tables are
    returned features × samples.
    """
    table_path = Path(table_path)
    if not table_path.exists():
        raise FileNotFoundError(f"Feature table not found: {table_path}")

    if table_path.suffix.lower() == '.biom':
        df = table_to_df(import_biom(table_path))
    else:
        df = pd.read_csv(
            table_path, sep=infer_delimiter(table_path, delimiter), index_col=0,
            keep_default_na=False, na_values=['']
        )
        df.index = df.index.astype(str)
        df.columns = df.columns.astype(str)
        df = df.loc[:, ~df.columns.str.startswith('Unnamed')]
    logger.debug(f"Loaded table {table_path} with shape {df.shape}")
    return df


def import_metadata(
    metadata_path: Union[str, Path],
    delimiter: Optional[str] = None
) -> pd.DataFrame:
    """Read a sample metadata table without interpreting any column."""
    metadata_path = Path(metadata_path)
    if not metadata_path.exists():
        raise FileNotFoundError(f"Metadata file not found: {metadata_path}")
    df = pd.read_csv(
        metadata_path, sep=infer_delimiter(metadata_path, delimiter), dtype=str,
        keep_default_na=False
    )
    return df.loc[:, ~df.columns.str.startswith('Unnamed')]


def export_h5py(
    table: Union[pd.DataFrame, Table],
    output_path: Union[str, Path]
) -> None:
    """Write a features × samples table as an HDF5 BIOM file."""
    table = to_biom(table)
    Path(output_path).parent.mkdir(parents=True, exist_ok=True)
    with h5py.File(output_path, 'w') as f:
        table.to_hdf5(f, generated_by="decontam_16s")


def write_tsv(
    df: pd.DataFrame,
    output_path: Union[str, Path],
    index: bool = False,
    sep: str = '\t'
) -> Path:
    """Write a DataFrame, creating parent directories as needed."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(output_path, sep=sep, index=index)
    logger.debug(f"Wrote {len(df)} rows → {output_path}")
    return output_path


def write_yaml(data: Dict[str, Any], output_path: Union[str, Path]) -> Path:
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, 'w') as f:
        yaml.safe_dump(data, f, sort_keys=False)
    return output_path
