"""
Shared fixtures: a small two-batch study with one control and one true sample
per batch.

    feature  c1  t1  c2  t2
    A        20   0  15   0   present only in controls
    B         0  50   0  40   absent from every control
    C         3   5   0   4   9 reads left once the controls are removed
"""
# ===================================== IMPORTS ====================================== #

import pandas as pd
import pytest

from decontam_16s.amplicon_data.dataset import StudyDataset
from decontam_16s.utils.taxonomy_utils import normalize_taxonomy_table

# ==================================== FIXTURES ====================================== #

SCENARIO_COUNTS = {
    'c1': [20, 0, 3],
    't1': [0, 50, 5],
    'c2': [15, 0, 0],
    't2': [0, 40, 4],
}

SCENARIO_TAXONOMY = {
    'A': 'Bacteria(100);Proteobacteria(99);Gammaproteobacteria(97);'
         'Pseudomonadales(90);Moraxellaceae(88);Acinetobacter(85);',
    'B': 'Bacteria(100);Firmicutes(98);Bacilli(95);Lactobacillales(92);'
         'Lactobacillaceae(90);Lactobacillus(80);',
    'C': 'Bacteria(100);Bacteroidetes(96);;;;;',
}


def scenario_samples() -> pd.DataFrame:
    return pd.DataFrame(
        {
            'batch': ['1', '1', '2', '2'],
            'sample_type': ['blank', 'stool', 'blank', 'stool'],
            'is_control': [True, False, True, False],
            'treatment': ['none', 'diet', 'none', 'control'],
        },
        index=pd.Index(['c1', 't1', 'c2', 't2'], name='sample_id'),
    )


@pytest.fixture
def scenario_counts() -> pd.DataFrame:
    return pd.DataFrame(SCENARIO_COUNTS, index=['A', 'B', 'C'])


@pytest.fixture
def scenario_taxonomy() -> pd.DataFrame:
    return normalize_taxonomy_table(pd.Series(SCENARIO_TAXONOMY))


@pytest.fixture
def scenario_dataset(scenario_counts, scenario_taxonomy) -> StudyDataset:
    return StudyDataset(
        counts=scenario_counts,
        samples=scenario_samples(),
        features=scenario_taxonomy,
    )


@pytest.fixture
def scenario_files(tmp_path):
    """The same study written to disk, with a config pointing at it."""
    inputs = tmp_path / 'inputs'
    inputs.mkdir()

    table = pd.DataFrame(SCENARIO_COUNTS, index=['A', 'B', 'C'])
    table.index.name = 'feature_id'
    table.to_csv(inputs / 'feature-table.tsv', sep='\t')

    metadata = scenario_samples().reset_index().rename(columns={'sample_id': '#sampleid'})
    metadata.to_csv(inputs / 'metadata.tsv', sep='\t', index=False)

    pd.DataFrame({
        'Feature ID': list(SCENARIO_TAXONOMY),
        'Taxon': list(SCENARIO_TAXONOMY.values()),
    }).to_csv(inputs / 'taxonomy.tsv', sep='\t', index=False)

    config_path = tmp_path / 'config.yaml'
    config_path.write_text(
        "project_dir: ./project\n"
        "inputs:\n"
        "  feature_table: ./inputs/feature-table.tsv\n"
        "  taxonomy: ./inputs/taxonomy.tsv\n"
        "  metadata: ./inputs/metadata.tsv\n"
        "divnet:\n"
        "  enabled: true\n"
        "  seed: 42\n"
        "  comparisons:\n"
        "    - column: treatment\n"
    )
    return config_path
