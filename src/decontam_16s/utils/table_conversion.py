# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from typing import Union

# Third-Party Imports
import pandas as pd
from biom import Table

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger("decontam_16s")

# ================================ TABLE CONVERSION ================================== #

def table_to_df(table: Union[Table, pd.DataFrame]) -> pd.DataFrame:
    """Convert a table to a features × samples DataFrame.

    Args:
        table: BIOM Table or features × samples DataFrame.

    Returns:
        Dense DataFrame indexed by feature id with one column per sample.

    Raises:
        TypeError: For unsupported input types
    """
    if isinstance(table, pd.DataFrame):  # features × samples
        return table
    if isinstance(table, Table):         # features × samples
        df = table.to_dataframe(dense=True)
        df.index = df.index.astype(str)
        df.columns = df.columns.astype(str)
        return df
    raise TypeError("Input must be BIOM Table or DataFrame.")


def to_biom(table: Union[Table, pd.DataFrame]) -> Table:
    """Convert a features × samples DataFrame to a BIOM Table.

    Args:
        table: BIOM Table or features × samples DataFrame.

    Returns:
        BIOM Table object.

    Raises:
        TypeError: For unsupported input types.
    """
    if isinstance(table, Table):
        return table
    if isinstance(table, pd.DataFrame):
        return Table(
            data=table.values,
            observation_ids=table.index.astype(str).tolist(),
            sample_ids=table.columns.astype(str).tolist(),
            type="OTU table"
        )
    raise TypeError("Input must be BIOM Table or DataFrame.")


def samples_x_features(table: Union[Table, pd.DataFrame]) -> pd.DataFrame:
    """Samples × features view of a table, as consumed by diversity estimators."""
    df = table_to_df(table).T
    df.index.name = 'sample_id'
    return df
