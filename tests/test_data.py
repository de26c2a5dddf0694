"""Tests for data loading and universe construction."""

import pytest
import polars as pl

from pathway_concord.data import (
    GeneIdentifier,
    build_ranking_statistic,
    build_universe,
    filter_count_matrix,
    load_count_matrix,
    load_de_results,
    load_gene_sets,
    read_gmt,
    validate_de_results,
)
from pathway_concord.exceptions import (
    EmptyGeneListWarning,
    EmptyUniverseError,
    MalformedCatalogError,
    MissingColumnsError,
)


@pytest.fixture
def de_results():
    """Validated DE table with a duplicated symbol and a low-expression gene."""
    df = pl.DataFrame({
        'gene_id': ['ENSG1', 'ENSG2', 'ENSG3', 'ENSG4', 'ENSG5', 'ENSG6', 'ENSG7'],
        'symbol': ['tp53', 'MDM2', 'MDM2', 'EGFR', 'KRAS', 'GAPDH', 'LOWEXP'],
        'baseMean': [500.0, 40.0, 15.0, 250.0, 120.0, 1000.0, 3.0],
        'log2FoldChange': [1.5, -2.0, -0.5, 0.8, -1.1, 0.01, 4.0],
        'pvalue': [1e-6, 1e-5, 0.2, 1e-4, 1e-3, 0.9, 1e-8],
        'padj': [1e-5, 1e-4, 0.4, 1e-3, 0.01, None, 1e-7],
        'stat': [6.0, -5.0, -1.0, 4.0, -3.0, 0.1, 7.0],
    })
    return validate_de_results(df)


def test_gene_identifier_parse():
    """Composite identifiers split into accession and symbol."""
    ident = GeneIdentifier.parse('ENSG00000141510 tp53')
    assert ident.accession == 'ENSG00000141510'
    assert ident.symbol == 'TP53'

    bare = GeneIdentifier.parse('ENSG00000141510')
    assert bare.symbol == 'ENSG00000141510'

    with pytest.raises(ValueError):
        GeneIdentifier.parse('   ')


def test_validate_de_results_requires_columns():
    """Missing DE columns are an input error."""
    df = pl.DataFrame({'gene_id': ['A'], 'baseMean': [1.0]})
    with pytest.raises(MissingColumnsError, match="log2FoldChange"):
        validate_de_results(df)


def test_load_de_results_composite_ids(tmp_path):
    """Composite identifiers and R-style NA values are handled."""
    path = tmp_path / 'de.tsv'
    path.write_text(
        "gene_id\tbaseMean\tlog2FoldChange\tlfcSE\tstat\tpvalue\tpadj\n"
        "ENSG1 TP53\t100.5\t1.2\t0.2\t6.0\t1e-9\t1e-7\n"
        "ENSG2 MDM2\t20.0\t-0.4\t0.3\t-1.3\t0.19\tNA\n"
        "ENSG3 EGFR\t0\tNA\tNA\tNA\tNA\tNA\n"
    )

    df = load_de_results(path)

    assert df['gene_id'].to_list() == ['ENSG1', 'ENSG2', 'ENSG3']
    assert df['symbol'].to_list() == ['TP53', 'MDM2', 'EGFR']
    assert df['padj'].null_count() == 2
    assert df['stat'].dtype == pl.Float64


def test_build_universe(de_results):
    """Universe, up and down lists follow the thresholds."""
    universe, up, down = build_universe(de_results, detection_threshold=10, significance_cutoff=0.05)

    # MDM2 appears twice but counts once; LOWEXP is below threshold
    assert universe == frozenset({'TP53', 'MDM2', 'EGFR', 'KRAS', 'GAPDH'})
    assert up == frozenset({'TP53', 'EGFR'})
    assert down == frozenset({'MDM2', 'KRAS'})
    assert not up & down


def test_universe_monotone_in_threshold(de_results):
    """Raising the detection threshold never grows the universe."""
    sizes = []
    for threshold in [0, 10, 50, 200, 600]:
        universe, _, _ = build_universe(de_results, detection_threshold=threshold)
        sizes.append(len(universe))
    assert sizes == sorted(sizes, reverse=True)
    assert sizes[0] == 6


def test_ambiguous_direction_dropped():
    """A symbol significant in both directions is removed from both lists."""
    df = validate_de_results(pl.DataFrame({
        'gene_id': ['E1', 'E2', 'E3', 'E4'],
        'symbol': ['DUP', 'DUP', 'UPG', 'DOWNG'],
        'baseMean': [100.0, 100.0, 100.0, 100.0],
        'log2FoldChange': [1.0, -1.0, 2.0, -2.0],
        'pvalue': [1e-4] * 4,
        'padj': [1e-3] * 4,
        'stat': [3.0, -3.0, 4.0, -4.0],
    }))

    universe, up, down = build_universe(df)

    assert 'DUP' in universe
    assert up == frozenset({'UPG'})
    assert down == frozenset({'DOWNG'})


def test_empty_universe_raises(de_results):
    with pytest.raises(EmptyUniverseError):
        build_universe(de_results, detection_threshold=1e6)


def test_empty_gene_list_warns():
    """Empty up or down lists warn but still return."""
    df = validate_de_results(pl.DataFrame({
        'gene_id': ['E1', 'E2'],
        'symbol': ['A', 'B'],
        'baseMean': [100.0, 100.0],
        'log2FoldChange': [1.0, 1.0],
        'pvalue': [1e-4, 0.5],
        'padj': [1e-3, 0.6],
        'stat': [3.0, 0.5],
    }))

    with pytest.warns(EmptyGeneListWarning, match="down"):
        universe, up, down = build_universe(df)

    assert up == frozenset({'A'})
    assert down == frozenset()


def test_build_universe_validates_parameters(de_results):
    with pytest.raises(ValueError):
        build_universe(de_results, detection_threshold=-1)
    with pytest.raises(ValueError):
        build_universe(de_results, significance_cutoff=1.5)


def test_build_ranking_statistic(de_results):
    """Duplicate symbols are summed; rows outside the universe can be excluded."""
    statistic = build_ranking_statistic(de_results)
    assert statistic['MDM2'] == pytest.approx(-6.0)
    assert statistic['TP53'] == pytest.approx(6.0)
    assert 'LOWEXP' in statistic
    assert list(statistic) == sorted(statistic)

    restricted = build_ranking_statistic(de_results, universe={'TP53', 'MDM2'})
    assert set(restricted) == {'TP53', 'MDM2'}


def test_ranking_statistic_drops_missing_stat():
    df = validate_de_results(pl.DataFrame({
        'gene_id': ['E1', 'E2'],
        'symbol': ['A', 'B'],
        'baseMean': [100.0, 100.0],
        'log2FoldChange': [1.0, None],
        'pvalue': [0.01, None],
        'padj': [0.02, None],
        'stat': [2.0, None],
    }))
    assert build_ranking_statistic(df) == {'A': 2.0}


def test_read_gmt(tmp_path):
    """GMT lines become term/gene rows."""
    path = tmp_path / 'sets.gmt'
    path.write_text(
        "PATH_A\tR-HSA-1\tTP53\tMDM2\n"
        "\n"
        "PATH_B\tR-HSA-2\tEGFR\tKRAS\tBRAF\t\n"
    )

    df = read_gmt(path)
    assert df.height == 5
    assert df.filter(pl.col('term') == 'PATH_B')['gene'].to_list() == ['EGFR', 'KRAS', 'BRAF']

    catalog = load_gene_sets(path)
    assert catalog['PATH_A'].members == ('TP53', 'MDM2')


def test_read_gmt_without_genes(tmp_path):
    path = tmp_path / 'bad.gmt'
    path.write_text("PATH_A\tdescription\n")
    with pytest.raises(MalformedCatalogError):
        read_gmt(path)


def test_load_gene_sets_table(tmp_path):
    """Two-column tables load with or without term/gene headers."""
    named = tmp_path / 'sets.tsv'
    named.write_text("term\tgene\nPATH_A\tTP53\nPATH_B\tEGFR\nPATH_A\tMDM2\n")
    catalog = load_gene_sets(named)
    assert catalog['PATH_A'].members == ('TP53', 'MDM2')

    positional = tmp_path / 'sets.csv'
    positional.write_text("ont,gene_symbol\nPATH_A,TP53\nPATH_A,MDM2\n")
    assert load_gene_sets(positional)['PATH_A'].members == ('TP53', 'MDM2')


def test_load_gene_sets_missing_gene(tmp_path):
    path = tmp_path / 'sets.tsv'
    path.write_text("term\tgene\nPATH_A\tTP53\nPATH_B\t\n")
    with pytest.raises(MalformedCatalogError):
        load_gene_sets(path)


def test_filter_count_matrix(tmp_path):
    """Genes are kept when their mean count reaches the threshold."""
    path = tmp_path / 'counts.tsv'
    path.write_text(
        "gene\tctrl1\tctrl2\tkd1\tkd2\n"
        "ENSG1 TP53\t10\t12\t8\t10\n"
        "ENSG2 MDM2\t0\t1\t2\t0\n"
        "ENSG3 EGFR\t100\t120\t80\t100\n"
    )

    counts = load_count_matrix(path)
    assert counts['symbol'].to_list() == ['TP53', 'MDM2', 'EGFR']

    filtered = filter_count_matrix(counts, detection_threshold=10)
    assert filtered['gene_id'].to_list() == ['ENSG1', 'ENSG3']

    assert filter_count_matrix(counts, detection_threshold=0).height == 3

    with pytest.raises(ValueError):
        filter_count_matrix(counts, detection_threshold=-1)
