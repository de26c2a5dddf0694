"""
Diagnostic figures for the ORA/FCS comparison.
"""

from typing import List, Optional

import matplotlib.pyplot as plt
import polars as pl
import seaborn as sns

from pathway_concord.ranking import DOWN, FCS, EnrichmentRecord, records_to_frame
from pathway_concord.reconcile import ComparisonResult


def plot_top_enrichment(
    records: List[EnrichmentRecord],
    title: Optional[str] = None,
    max_label_length: int = 60
) -> plt.Figure:
    """
    Horizontal bar chart of enrichment scores for ranked records.

    Args:
        records: Ranked records, typically the top-N of one method and direction
        title: Figure title
        max_label_length: Gene-set names longer than this are truncated

    Returns:
        Matplotlib Figure
    """
    if not records:
        raise ValueError("Input data cannot be empty")

    df = records_to_frame(records).with_columns(
        pl.col('set_id').str.slice(0, max_label_length).alias('label')
    )
    method = records[0].method
    xlabel = 'Enrichment score' if method == FCS else 'Enrichment (gene ratio / background ratio)'

    fig, ax = plt.subplots(figsize=(8, 0.4 * df.height + 1.5))
    sns.barplot(
        x=df['enrichment_score'].to_list(),
        y=df['label'].to_list(),
        orient='h',
        color='indianred' if records[0].direction == DOWN else 'steelblue',
        ax=ax,
    )
    ax.set_xlabel(xlabel)
    ax.set_ylabel('')
    if title:
        ax.set_title(title)
    fig.tight_layout()
    return fig


def plot_overlap(comparison: ComparisonResult) -> plt.Figure:
    """
    Grouped bars of ORA-only, shared and FCS-only gene sets per direction.

    Args:
        comparison: Result of comparing both methods

    Returns:
        Matplotlib Figure
    """
    rows = []
    for direction, overlap in (('up', comparison.up), ('down', comparison.down), ('pooled', comparison.pooled)):
        for category, count in overlap.counts().items():
            rows.append({'direction': direction, 'category': category, 'count': count})
    df = pl.DataFrame(rows)

    fig, ax = plt.subplots(figsize=(6, 4))
    sns.barplot(
        x=df['direction'].to_list(),
        y=df['count'].to_list(),
        hue=df['category'].to_list(),
        palette='Set2',
        ax=ax,
    )
    ax.set_xlabel('')
    ax.set_ylabel('Significant gene sets')
    jaccards = (
        f"Jaccard up={comparison.jaccard_up:.2f}, "
        f"down={comparison.jaccard_down:.2f}, pooled={comparison.jaccard_pooled:.2f}"
    )
    ax.set_title(jaccards)
    fig.tight_layout()
    return fig
