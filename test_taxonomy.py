"""
Tests for taxonomy normalization: confidence stripping, rank arity and the
taxonomy table reader.
"""
import pandas as pd
import pytest

from decontam_16s import constants
from decontam_16s.errors import MalformedTaxonomy
from decontam_16s.utils.taxonomy_utils import (
    Taxonomy, build_confidence_pattern, normalize_taxonomy, normalize_taxonomy_table,
    split_ranks
)


def test_confidences_stripped_and_empty_ranks_kept():
    record = normalize_taxonomy('f1', 'Bacteria(100);Firmicutes(98);;;;;')
    assert record.as_dict() == {
        'Kingdom': 'Bacteria', 'Phylum': 'Firmicutes', 'Class': '',
        'Order': '', 'Family': '', 'Genus': '',
    }
    assert record.anomalies == ()


def test_full_lineage_without_trailing_delimiter():
    record = normalize_taxonomy(
        'f2', 'Bacteria(100);Firmicutes(99);Bacilli(97);Bacillales(93);'
              'Staphylococcaceae(88);Staphylococcus(51)'
    )
    assert record.ranks[-1] == 'Staphylococcus'
    assert len(record.ranks) == constants.N_TAXONOMIC_RANKS


def test_normalization_is_idempotent():
    """Annotated and annotation-free versions of a lineage split identically."""
    annotated = normalize_taxonomy('f1', 'Bacteria(100);Firmicutes(98);Bacilli(77);;;;')
    plain = normalize_taxonomy('f1', 'Bacteria;Firmicutes;Bacilli;;;;')
    assert plain.ranks == annotated.ranks
    assert plain.ranks == ('Bacteria', 'Firmicutes', 'Bacilli', '', '', '')


@pytest.mark.parametrize('raw', [
    'Bacteria(100);Firmicutes(98);;;',          # four ranks
    'Bacteria;Firmicutes;Bacilli;A;B;C;D',      # seven ranks
    'Bacteria;Firmicutes;;;;;;',                # two trailing delimiters
    '',
])
def test_wrong_rank_count_raises(raw):
    with pytest.raises(MalformedTaxonomy) as excinfo:
        normalize_taxonomy('bad', raw)
    assert excinfo.value.feature_id == 'bad'
    assert excinfo.value.expected == constants.N_TAXONOMIC_RANKS
    assert excinfo.value.n_fields != constants.N_TAXONOMIC_RANKS


def test_missing_taxonomy_raises():
    with pytest.raises(MalformedTaxonomy):
        normalize_taxonomy('nan', float('nan'))


def test_confidence_pattern_is_literal():
    """Parentheses are matched literally and only at the end of a rank."""
    pattern = build_confidence_pattern()
    assert pattern.sub('', 'Firmicutes(98)') == 'Firmicutes'
    assert pattern.sub('', 'Firmicutes(100);X') == 'Firmicutes;X'
    # Neither a longer number nor trailing text counts as a confidence
    assert pattern.sub('', 'Firmicutes(1000)') == 'Firmicutes(1000)'
    assert pattern.sub('', 'Firmicutes(99)x') == 'Firmicutes(99)x'
    # Confidences below the known range are left in place
    assert pattern.sub('', 'Firmicutes(50)') == 'Firmicutes(50)'
    # No stray characters from an unescaped pattern
    assert pattern.sub('', 'Fir(micutes') == 'Fir(micutes'


def test_unknown_parenthetical_is_flagged():
    record = normalize_taxonomy('f3', 'Bacteria(100);Firmicutes(50);;;;;')
    assert record.ranks[1] == 'Firmicutes(50)'
    assert record.anomalies == ('Phylum=Firmicutes(50)',)


def test_split_ranks_strips_single_terminator():
    assert split_ranks('a;b;') == ['a', 'b']
    assert split_ranks('a; b ;c') == ['a', 'b', 'c']


def test_table_reports_first_malformed_entry():
    raw = pd.Series({
        'ok': 'Bacteria;Firmicutes;;;;;',
        'short': 'Bacteria;Firmicutes',
        'long': 'a;b;c;d;e;f;g',
    })
    with pytest.raises(MalformedTaxonomy) as excinfo:
        normalize_taxonomy_table(raw)
    assert excinfo.value.feature_id == 'short'


def test_table_columns(scenario_taxonomy):
    assert list(scenario_taxonomy.columns) == [*constants.TAXONOMIC_RANKS, 'anomaly']
    assert scenario_taxonomy.loc['C', 'Phylum'] == 'Bacteroidetes'
    assert scenario_taxonomy.loc['C', 'Genus'] == ''
    assert (scenario_taxonomy['anomaly'] == '').all()


def test_taxonomy_reader(tmp_path):
    path = tmp_path / 'taxonomy.tsv'
    path.write_text(
        "Feature ID\tTaxon\tConfidence\n"
        "otu1\tBacteria(100);Firmicutes(98);;;;;\t0.9\n"
        "otu2\tBacteria(100);Proteobacteria(95);;;;;\t0.8\n"
    )
    taxonomy = Taxonomy(path)
    assert list(taxonomy.taxonomy.index) == ['otu1', 'otu2']
    assert taxonomy.get_ranks_by_id('otu2')['Phylum'] == 'Proteobacteria'
    assert taxonomy.get_ranks_by_id('missing') is None
