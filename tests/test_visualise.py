import matplotlib
matplotlib.use('Agg')

import matplotlib.pyplot as plt
import pytest

from pathway_concord.ranking import DOWN, FCS, ORA, UP, EnrichmentRecord
from pathway_concord.reconcile import compare_results
from pathway_concord.visualise import plot_overlap, plot_top_enrichment


def make_record(set_id, es, method=ORA, direction=UP):
    return EnrichmentRecord(set_id, method, direction, 12, 40, 1e-5, 1e-4, es)


def test_plot_top_enrichment():
    """Test the top-N bar chart."""
    records = [
        make_record('REACTOME_CELL_CYCLE_CHECKPOINTS', 8.5),
        make_record('REACTOME_DNA_REPLICATION', 6.2),
    ]
    fig = plot_top_enrichment(records, title='ORA, up-regulated genes')

    ax = fig.axes[0]
    assert ax.get_title() == 'ORA, up-regulated genes'
    assert 'background ratio' in ax.get_xlabel()
    labels = [t.get_text() for t in ax.get_yticklabels()]
    assert labels == ['REACTOME_CELL_CYCLE_CHECKPOINTS', 'REACTOME_DNA_REPLICATION']
    plt.close(fig)


def test_plot_top_enrichment_truncates_labels():
    records = [make_record('X' * 100, -0.7, method=FCS, direction=DOWN)]
    fig = plot_top_enrichment(records, max_label_length=20)

    ax = fig.axes[0]
    assert ax.get_xlabel() == 'Enrichment score'
    assert [t.get_text() for t in ax.get_yticklabels()] == ['X' * 20]
    plt.close(fig)


def test_plot_top_enrichment_empty():
    with pytest.raises(ValueError, match="Input data cannot be empty"):
        plot_top_enrichment([])


def test_plot_overlap():
    """Test the method agreement chart."""
    comparison = compare_results(['P1', 'P2'], ['P3'], ['P1'], [])
    fig = plot_overlap(comparison)

    ax = fig.axes[0]
    assert 'Jaccard up=0.50' in ax.get_title()
    assert 'down=0.00' in ax.get_title()
    assert ax.get_ylabel() == 'Significant gene sets'
    plt.close(fig)
