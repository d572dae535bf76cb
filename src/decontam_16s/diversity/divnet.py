"""
Staging of DivNet inputs.

For every comparison group the diversity estimator expects a directory holding
``counts_<name>.csv`` (samples × features), ``samdata_<name>.csv`` (sample id and
grouping covariate, same sample order) and, optionally, a ``config.toml`` whose
placeholders point at those files. Submitting the estimator jobs happens outside
this package.
"""
# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import itertools
import logging
import re
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

# Third‑Party Imports
import pandas as pd

# Local Imports
from decontam_16s import constants
from decontam_16s.amplicon_data.dataset import StudyDataset
from decontam_16s.errors import ConfigError, EmptyResult
from decontam_16s.utils.table_conversion import samples_x_features

# ========================== INITIALISATION & CONFIGURATION ========================== #

logger = logging.getLogger("decontam_16s")


def sanitize(s: str) -> str:
    return re.sub(r"[^a-zA-Z0-9_.-]", "_", str(s))

# =================================== DATA CLASSES =================================== #

@dataclass(frozen=True)
class Comparison:
    """Samples whose ``column`` value is in ``values`` (all non-empty values if None)."""
    name: str
    column: str
    values: Optional[Tuple[str, ...]] = None

# ==================================== FUNCTIONS ===================================== #

def expand_comparisons(
    comparisons: List[Dict],
    samples: pd.DataFrame
) -> List[Comparison]:
    """Build ``Comparison`` objects from the ``divnet.comparisons`` config list.

    Each entry has a ``column``, optional ``values`` and ``name``, and an optional
    ``pairwise`` flag expanding it to one comparison per pair of values
    (``<column>_<a>_vs_<b>``).
    """
    expanded = []
    for cfg in comparisons:
        column = cfg.get("column")
        if column not in samples.columns:
            raise ConfigError(f"Comparison column '{column}' not found in sample metadata")
        values = cfg.get("values")
        values = tuple(str(v) for v in values) if values else None

        if cfg.get("pairwise", False):
            observed = values or tuple(sorted(
                v for v in samples[column].dropna().astype(str).unique() if v != ''
            ))
            for a, b in itertools.combinations(observed, 2):
                expanded.append(Comparison(
                    name=sanitize(f"{column}_{a}_vs_{b}"), column=column, values=(a, b)
                ))
        else:
            name = cfg.get("name") or (
                f"{column}_{'_'.join(values)}" if values else column
            )
            expanded.append(Comparison(name=sanitize(name), column=column, values=values))
    return expanded


def divnet_inputs(
    dataset: StudyDataset,
    comparison: Comparison,
    drop_empty_features: bool = True
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Counts (samples × features) and sample data for one comparison.

    Both frames share the same sample order, taken from the dataset.
    """
    labels = dataset.samples[comparison.column]
    mask = labels.notna() & (labels.astype(str) != '')
    if comparison.values is not None:
        mask &= labels.astype(str).isin(comparison.values)
    sample_ids = dataset.sample_ids[mask.loc[dataset.sample_ids].to_numpy()]

    counts = samples_x_features(dataset.counts.loc[:, sample_ids])
    if drop_empty_features:
        empty = counts.columns[counts.sum(axis=0) == 0]
        if len(empty):
            logger.debug(
                f"{comparison.name}: dropping {len(empty)} features absent from all samples"
            )
            counts = counts.drop(columns=empty)

    samdata = pd.DataFrame(
        {comparison.column: labels.loc[sample_ids].astype(str).to_numpy()},
        index=pd.Index(sample_ids, name='sample_id')
    )
    return counts, samdata


def render_divnet_config(
    template: str,
    count_table: Union[str, Path],
    sample_data: Union[str, Path],
    output: Union[str, Path],
    seed: int = constants.DEFAULT_DIVNET_SEED
) -> str:
    """Fill the DivNet config placeholders."""
    replacements = {
        'count_table': str(count_table),
        'sample_data': str(sample_data),
        'output': str(output),
        'random_seed': str(int(seed)),
    }
    for key, placeholder in constants.DIVNET_PLACEHOLDERS.items():
        if placeholder not in template:
            logger.warning(f"Placeholder '{placeholder}' not found in DivNet config template")
        template = template.replace(placeholder, replacements[key])
    return template


def export_divnet_inputs(
    dataset: StudyDataset,
    comparisons: List[Comparison],
    output_dir: Union[str, Path],
    write_config: bool = True,
    config_template: Optional[Union[str, Path]] = None,
    seed: int = constants.DEFAULT_DIVNET_SEED
) -> Dict[str, Dict[str, Path]]:
    """Write the DivNet input files of every comparison.

    Args:
        dataset:         Final (pruned) study.
        comparisons:     Comparison groups to export.
        output_dir:      Parent directory; one subdirectory per comparison.
        write_config:    Also render ``config.toml``.
        config_template: Path to a template file (built-in template if None).
        seed:            Random seed written into every config.

    Returns:
        Mapping of comparison name to the paths written.
    """
    output_dir = Path(output_dir)
    template = (Path(config_template).read_text() if config_template
                else constants.DEFAULT_DIVNET_CONFIG_TEMPLATE)

    written = {}
    for comparison in comparisons:
        counts, samdata = divnet_inputs(dataset, comparison)
        if counts.empty:
            message = f"Comparison '{comparison.name}' has no samples or features; skipped"
            logger.warning(message)
            warnings.warn(EmptyResult(message), stacklevel=2)
            continue

        comp_dir = output_dir / comparison.name
        comp_dir.mkdir(parents=True, exist_ok=True)
        paths = {
            'counts': comp_dir / f"counts_{comparison.name}.csv",
            'samdata': comp_dir / f"samdata_{comparison.name}.csv",
        }
        counts.to_csv(paths['counts'])
        samdata.to_csv(paths['samdata'])

        if write_config:
            paths['config'] = comp_dir / "config.toml"
            paths['config'].write_text(render_divnet_config(
                template,
                count_table=paths['counts'].resolve(),
                sample_data=paths['samdata'].resolve(),
                output=(comp_dir / f"{comparison.name}_output.csv").resolve(),
                seed=seed,
            ))
        written[comparison.name] = paths
        logger.info(
            f"DivNet inputs for '{comparison.name}': "
            f"{counts.shape[0]} samples × {counts.shape[1]} features → {comp_dir}"
        )
    return written
