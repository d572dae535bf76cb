"""
Tests for staging DivNet inputs from the final dataset.
"""
import pandas as pd
import pytest

from decontam_16s import constants
from decontam_16s.diversity.divnet import (
    Comparison, divnet_inputs, expand_comparisons, export_divnet_inputs,
    render_divnet_config
)
from decontam_16s.errors import ConfigError, EmptyResult


@pytest.fixture
def true_samples(scenario_dataset):
    return scenario_dataset.drop_samples(['c1', 'c2'])


def test_expand_single_and_pairwise(scenario_dataset):
    samples = scenario_dataset.samples
    comparisons = expand_comparisons(
        [
            {'column': 'treatment'},
            {'column': 'treatment', 'values': ['diet', 'control'], 'name': 'diet vs control'},
            {'column': 'treatment', 'pairwise': True},
        ],
        samples,
    )
    names = [c.name for c in comparisons]
    assert names == [
        'treatment',
        'diet_vs_control',
        'treatment_control_vs_diet',
        'treatment_control_vs_none',
        'treatment_diet_vs_none',
    ]
    assert comparisons[1].values == ('diet', 'control')
    assert comparisons[2].values == ('control', 'diet')


def test_unknown_comparison_column(scenario_dataset):
    with pytest.raises(ConfigError):
        expand_comparisons([{'column': 'site'}], scenario_dataset.samples)


def test_inputs_share_sample_order(true_samples):
    counts, samdata = divnet_inputs(true_samples, Comparison('treatment', 'treatment'))
    assert counts.index.tolist() == samdata.index.tolist() == ['t1', 't2']
    # A has no reads outside the controls
    assert counts.columns.tolist() == ['B', 'C']
    assert samdata['treatment'].tolist() == ['diet', 'control']


def test_inputs_restricted_to_values(true_samples):
    counts, samdata = divnet_inputs(
        true_samples, Comparison('diet', 'treatment', ('diet',)), drop_empty_features=False
    )
    assert counts.index.tolist() == ['t1']
    assert counts.columns.tolist() == ['A', 'B', 'C']
    assert counts.loc['t1', 'B'] == 50


def test_render_config_fills_every_placeholder():
    text = render_divnet_config(
        constants.DEFAULT_DIVNET_CONFIG_TEMPLATE,
        count_table='/data/counts.csv', sample_data='/data/samdata.csv',
        output='/data/out.csv', seed=7,
    )
    for placeholder in constants.DIVNET_PLACEHOLDERS.values():
        assert placeholder not in text
    assert '/data/counts.csv' in text
    assert '7' in text


def test_export_writes_csvs_and_config(true_samples, tmp_path):
    written = export_divnet_inputs(
        true_samples, [Comparison('treatment', 'treatment')], tmp_path, seed=11
    )
    paths = written['treatment']
    assert paths['counts'] == tmp_path / 'treatment' / 'counts_treatment.csv'
    assert paths['samdata'].name == 'samdata_treatment.csv'

    counts = pd.read_csv(paths['counts'], index_col=0)
    samdata = pd.read_csv(paths['samdata'], index_col=0)
    assert counts.index.tolist() == samdata.index.tolist()
    assert counts.loc['t2', 'B'] == 40

    config = paths['config'].read_text()
    assert str(paths['counts'].resolve()) in config
    assert 'replace_me' not in config


def test_export_is_reproducible(true_samples, tmp_path):
    first = export_divnet_inputs(true_samples, [Comparison('t', 'treatment')], tmp_path / 'a')
    second = export_divnet_inputs(true_samples, [Comparison('t', 'treatment')], tmp_path / 'b')
    assert first['t']['counts'].read_text() == second['t']['counts'].read_text()


def test_export_without_config(true_samples, tmp_path):
    written = export_divnet_inputs(
        true_samples, [Comparison('treatment', 'treatment')], tmp_path, write_config=False
    )
    assert 'config' not in written['treatment']
    assert not (tmp_path / 'treatment' / 'config.toml').exists()


def test_empty_comparison_is_skipped(true_samples, tmp_path):
    with pytest.warns(EmptyResult):
        written = export_divnet_inputs(
            true_samples, [Comparison('none', 'treatment', ('none',))], tmp_path
        )
    assert written == {}
