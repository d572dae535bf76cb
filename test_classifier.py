"""
Tests for contamination scoring: per-batch prevalence and frequency tests,
Fisher combination across batches, degenerate batches and score persistence.
"""
import numpy as np
import pandas as pd
import pytest
from scipy.stats import chi2

from decontam_16s.amplicon_data.dataset import StudyDataset
from decontam_16s.decontam.classifier import (
    BatchExclusion, ContaminantClassifier, ContaminantScores, Decision, classify
)
from decontam_16s.errors import ConfigError, DegenerateBatch, InvalidThreshold
from decontam_16s.stats.frequency import batch_frequency_pvalues
from decontam_16s.stats.prevalence import (
    batch_prevalence_pvalues, combine_pvalues_fisher, prevalence_chisq, prevalence_fisher
)
from decontam_16s.utils.taxonomy_utils import normalize_taxonomy_table


def taxonomy_for(feature_ids) -> pd.DataFrame:
    return normalize_taxonomy_table(
        pd.Series({f: 'Bacteria;Firmicutes;;;;;' for f in feature_ids})
    )


# ------------------------------------------------------------------------ #
# Per-batch statistics
# ------------------------------------------------------------------------ #

def test_chisq_direction():
    p = prevalence_chisq(np.array([1, 0]), 1, np.array([0, 1]), 1)
    assert p[0] == pytest.approx(0.0786, abs=1e-3)
    assert p[1] == pytest.approx(0.9214, abs=1e-3)


def test_uniform_presence_is_uninformative():
    p = prevalence_chisq(np.array([0, 2]), 2, np.array([0, 3]), 3)
    assert np.isnan(p).all()
    p = prevalence_fisher(np.array([0, 2]), 2, np.array([0, 3]), 3)
    assert np.isnan(p).all()


def test_prevalence_monotonic_in_control_presence():
    """More control presence at fixed true-sample presence never raises the p-value."""
    x_control = np.arange(0, 6)
    x_true = np.full(6, 2)
    for test in (prevalence_chisq, prevalence_fisher):
        p = test(x_control, 5, x_true, 10)
        assert np.all(np.diff(p) <= 1e-12)


def test_fisher_mid_p_bounds():
    p = prevalence_fisher(np.array([1, 0]), 1, np.array([0, 1]), 1)
    assert p[0] == pytest.approx(0.25)
    assert p[1] == pytest.approx(0.75)


@pytest.mark.parametrize('is_control,reason', [
    ([True], 'too_few_samples'),
    ([False, False, False], 'no_controls'),
    ([True, True], 'no_true_samples'),
])
def test_degenerate_prevalence_batch(is_control, reason):
    counts = np.ones((2, len(is_control)), dtype=int)
    with pytest.raises(DegenerateBatch) as excinfo:
        batch_prevalence_pvalues('plate1', counts, np.array(is_control))
    assert excinfo.value.reason == reason
    assert excinfo.value.batch == 'plate1'
    assert str(excinfo.value) == f"Batch 'plate1' excluded: {reason}"


def test_fisher_combination():
    p = np.array([
        [0.0786, 0.0786],
        [0.5, np.nan],
        [np.nan, np.nan],
    ])
    combined = combine_pvalues_fisher(p)
    expected = chi2.sf(-2 * 2 * np.log(0.0786), 4)
    assert combined[0] == pytest.approx(expected)
    assert combined[1] == pytest.approx(0.5)
    assert np.isnan(combined[2])


def test_frequency_model():
    """A feature diluted by input DNA scores low; a constant-frequency one scores high."""
    conc = np.array([1, 2, 4, 8, 16, 32, np.nan], dtype=float)
    is_control = np.array([False] * 6 + [True])
    counts = np.array([
        [320, 160, 80, 40, 20, 10, 50],                     # contaminant
        [1000, 1100, 900, 1000, 1050, 950, 0],              # authentic
        [100000] * 6 + [10],                                # background
    ])
    lib = counts.sum(axis=0)
    p = batch_frequency_pvalues('1', counts, is_control, conc, lib)
    assert p[0] < 0.1
    assert p[1] > 0.9


def test_frequency_needs_concentration():
    with pytest.raises(DegenerateBatch) as excinfo:
        batch_frequency_pvalues(
            '1', np.ones((1, 3)), np.array([False, False, True]),
            np.array([np.nan, 0.0, 1.0]), np.array([10, 10, 10])
        )
    assert excinfo.value.reason == 'no_concentration'

# ------------------------------------------------------------------------ #
# Classifier
# ------------------------------------------------------------------------ #

def test_scenario_scores(scenario_dataset):
    scores = ContaminantClassifier().score(scenario_dataset)
    assert scores.method == 'prevalence/chisq'
    assert scores.scores['A'] == pytest.approx(0.0376, abs=1e-3)
    assert scores.scores['B'] == pytest.approx(0.988, abs=1e-3)
    # C is present in both samples of batch 1, so only batch 2 contributes
    assert scores.scores['C'] == pytest.approx(0.9214, abs=1e-3)
    assert scores.table.loc['C', 'n_batches'] == 1
    assert scores.exclusions('C') == [BatchExclusion('1', 'uninformative')]
    assert scores.exclusions('A') == []

    decisions = classify(scores, 0.1)
    assert decisions['decision'].to_dict() == {
        'A': 'contaminant', 'B': 'not-contaminant', 'C': 'not-contaminant'
    }


def test_scores_are_probabilities(scenario_dataset):
    scores = ContaminantClassifier(test='fisher').score(scenario_dataset)
    valid = scores.scores.dropna()
    assert ((valid >= 0) & (valid <= 1)).all()
    assert scores.scores['A'] < scores.scores['B']


def test_worker_count_does_not_change_scores(scenario_dataset):
    serial = ContaminantClassifier(chunk_size=500, max_workers=1).score(scenario_dataset)
    parallel = ContaminantClassifier(chunk_size=1, max_workers=4).score(scenario_dataset)
    pd.testing.assert_frame_equal(serial.table, parallel.table)
    pd.testing.assert_frame_equal(serial.batch_pvalues, parallel.batch_pvalues)


def test_rescoring_is_deterministic(scenario_dataset):
    first = ContaminantClassifier().score(scenario_dataset)
    second = ContaminantClassifier().score(scenario_dataset)
    pd.testing.assert_frame_equal(first.table, second.table)


def test_degenerate_batches_are_excluded():
    counts = pd.DataFrame(
        {
            'c1': [10, 0], 't1': [0, 10],       # batch 1: usable
            'c2': [5, 0], 'c3': [4, 1],         # batch 2: controls only
            't4': [3, 3],                       # batch 3: one sample
        },
        index=['X', 'Y'],
    )
    samples = pd.DataFrame(
        {
            'batch': ['1', '1', '2', '2', '3'],
            'sample_type': [''] * 5,
            'is_control': [True, False, True, True, False],
        },
        index=['c1', 't1', 'c2', 'c3', 't4'],
    )
    dataset = StudyDataset(counts, samples, taxonomy_for(['X', 'Y']))
    scores = ContaminantClassifier().score(dataset)

    assert scores.batch_pvalues[['2', '3']].isna().all().all()
    assert (scores.table['n_batches'] == 1).all()
    reasons = {str(e) for e in scores.exclusions('X')}
    assert reasons == {'2:no_true_samples', '3:too_few_samples'}
    assert scores.scores['X'] == pytest.approx(scores.batch_pvalues.loc['X', '1'])


def test_no_usable_batch_leaves_features_undetermined(scenario_counts, scenario_taxonomy):
    samples = pd.DataFrame(
        {'batch': ['1'] * 4, 'sample_type': [''] * 4, 'is_control': [False] * 4},
        index=['c1', 't1', 'c2', 't2'],
    )
    dataset = StudyDataset(scenario_counts, samples, scenario_taxonomy)
    scores = ContaminantClassifier().score(dataset)
    assert scores.scores.isna().all()
    assert scores.exclusions('A') == [BatchExclusion('1', 'no_controls')]

    decisions = classify(scores, 0.5)
    assert set(decisions['decision']) == {Decision.UNDETERMINED.value}


def test_frequency_mode_without_concentration(scenario_dataset):
    scores = ContaminantClassifier(mode='frequency').score(scenario_dataset)
    assert scores.method == 'frequency'
    assert scores.scores.isna().all()
    assert {str(e) for e in scores.exclusions('B')} == {'1:no_concentration',
                                                         '2:no_concentration'}


def test_frequency_mode_scores(scenario_taxonomy):
    counts = pd.DataFrame(
        {
            's1': [320, 1000, 100000], 's2': [160, 1100, 100000],
            's3': [80, 900, 100000], 's4': [40, 1000, 100000],
            'blank': [50, 0, 10],
        },
        index=['A', 'B', 'C'],
    )
    samples = pd.DataFrame(
        {
            'batch': ['1'] * 5,
            'sample_type': ['stool'] * 4 + ['blank'],
            'is_control': [False] * 4 + [True],
            'concentration': [1.0, 2.0, 4.0, 8.0, np.nan],
        },
        index=counts.columns,
    )
    dataset = StudyDataset(counts, samples, scenario_taxonomy)
    scores = ContaminantClassifier(mode='frequency').score(dataset)
    assert scores.scores['A'] < 0.1
    assert scores.scores['B'] > scores.scores['A']


def test_invalid_classifier_options():
    with pytest.raises(ConfigError):
        ContaminantClassifier(mode='magic')
    with pytest.raises(ConfigError):
        ContaminantClassifier(test='t-test')


@pytest.mark.parametrize('threshold', [-0.01, 1.01, float('nan'), True, '0.1', None])
def test_classify_rejects_bad_threshold(scenario_dataset, threshold):
    scores = ContaminantClassifier().score(scenario_dataset)
    with pytest.raises(InvalidThreshold):
        classify(scores, threshold)


def test_threshold_boundaries(scenario_dataset):
    scores = ContaminantClassifier().score(scenario_dataset)
    assert (classify(scores, 0.0)['decision'] != 'contaminant').all()
    assert (classify(scores, 1.0)['decision'] == 'contaminant').all()
    exact = scores.scores['B']
    assert classify(scores, exact).loc['B', 'decision'] == 'contaminant'


def test_scores_round_trip(scenario_dataset, tmp_path):
    scores = ContaminantClassifier().score(scenario_dataset)
    path = scores.to_tsv(tmp_path / 'scores.tsv')

    written = pd.read_csv(path, sep='\t')
    assert list(written.columns[:4]) == ['feature_id', 'score', 'n_batches',
                                         'excluded_batches']
    assert {'p__1', 'p__2', 'method'} <= set(written.columns)

    loaded = ContaminantScores.from_tsv(path)
    assert loaded.method == scores.method
    pd.testing.assert_series_equal(loaded.scores, scores.scores, check_names=False)
    assert loaded.exclusions('C') == scores.exclusions('C')
    assert list(loaded.batch_pvalues.columns) == ['1', '2']


def test_scores_round_trip_keeps_na_like_ids(scenario_dataset, tmp_path):
    renamed = StudyDataset(
        counts=scenario_dataset.counts.rename(index={'A': 'NA', 'C': 'null'}),
        samples=scenario_dataset.samples,
        features=scenario_dataset.features.rename(index={'A': 'NA', 'C': 'null'}),
    )
    scores = ContaminantClassifier().score(renamed)
    loaded = ContaminantScores.from_tsv(scores.to_tsv(tmp_path / 'scores.tsv'))
    assert loaded.feature_ids.tolist() == ['NA', 'B', 'null']
    assert loaded.scores['NA'] == pytest.approx(scores.scores['NA'])
    assert loaded.exclusions('null') == scores.exclusions('null')
