"""
Over-representation analysis (ORA) of discrete gene lists.
"""

import logging
import warnings
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from pathway_concord.catalog import GeneCatalog, normalise_gene
from pathway_concord.exceptions import (
    CatalogNotAugmentedError,
    EmptyInputWarning,
    StatisticalComputationError,
)
from pathway_concord.ranking import ORA, EnrichmentRecord, rank_records
from pathway_concord.stats import hypergeometric_pvalue, perform_fdr_analysis

logger = logging.getLogger(__name__)

# (set_id, hits, set_size, p-value)
TestedSet = Tuple[str, Tuple[str, ...], int, float]


def _label(direction: Optional[str]) -> str:
    return f" ({direction})" if direction else ""


def _check_background(catalog: GeneCatalog, universe: FrozenSet[str]) -> None:
    background = catalog.background
    if background is None:
        raise CatalogNotAugmentedError(
            "Catalog has no background entry; augment it with the universe before testing"
        )
    if background != universe:
        raise CatalogNotAugmentedError(
            f"Catalog background ({len(background)} genes) does not match the "
            f"tested universe ({len(universe)} genes)"
        )


def _test_gene_sets(
    selected: FrozenSet[str],
    universe: FrozenSet[str],
    catalog: GeneCatalog,
    min_set_size: int,
    max_set_size: int
) -> List[TestedSet]:
    """Raw hypergeometric p-value of every gene set within the size bounds."""
    tested = []
    for set_id in catalog.tested_ids():
        set_size = len(catalog.matched_members(set_id, universe))
        if not min_set_size <= set_size <= max_set_size:
            continue
        hits = tuple(g for g in catalog[set_id].members if g in selected)
        try:
            p_value = hypergeometric_pvalue(len(hits), len(universe), set_size, len(selected))
        except StatisticalComputationError as e:
            logger.warning(f"Skipping gene set {set_id}: {e}")
            continue
        tested.append((set_id, hits, set_size, p_value))
    return tested


def score_ora_directions(
    gene_lists: Mapping[Optional[str], Iterable[str]],
    universe: Iterable[str],
    catalog: GeneCatalog,
    min_set_size: int = 10,
    max_set_size: int = 50000
) -> Dict[Optional[str], List[EnrichmentRecord]]:
    """
    Hypergeometric test of several gene lists with one shared FDR correction.

    Every (direction, gene set) p-value enters a single Benjamini-Hochberg
    correction, so up- and down-regulated lists tested together are corrected
    as one run.

    Args:
        gene_lists: Direction label to discrete gene list
        universe: Background universe the lists were drawn from
        catalog: Catalog augmented with this universe
        min_set_size: Minimum gene-set size within the universe
        max_set_size: Maximum gene-set size within the universe

    Returns:
        Direction label to unfiltered records, in catalog order

    Raises:
        CatalogNotAugmentedError: if the catalog's background is not ``universe``
    """
    universe = frozenset(normalise_gene(g) for g in universe)
    selections = {
        direction: frozenset(normalise_gene(g) for g in genes) & universe
        for direction, genes in gene_lists.items()
    }
    results: Dict[Optional[str], List[EnrichmentRecord]] = {direction: [] for direction in selections}

    tested: Dict[Optional[str], List[TestedSet]] = {}
    for direction, selected in selections.items():
        if not selected:
            logger.info(f"No genes of interest in the universe{_label(direction)}; skipping ORA")
            continue
        _check_background(catalog, universe)
        tested[direction] = _test_gene_sets(selected, universe, catalog, min_set_size, max_set_size)

    p_values = [p for sets in tested.values() for _, _, _, p in sets]
    if not p_values:
        if tested:
            message = f"No gene sets with {min_set_size}-{max_set_size} members in the universe"
            logger.warning(message)
            warnings.warn(message, EmptyInputWarning)
        return results

    corrected = iter(perform_fdr_analysis(p_values)['pvals_corrected'])
    universe_size = len(universe)
    for direction, sets in tested.items():
        draw_size = len(selections[direction])
        for set_id, hits, set_size, p_value in sets:
            gene_ratio = len(hits) / draw_size
            background_ratio = set_size / universe_size
            results[direction].append(EnrichmentRecord(
                set_id=set_id,
                method=ORA,
                direction=direction,
                overlap=len(hits),
                set_size=set_size,
                pvalue=p_value,
                padj=float(next(corrected)),
                enrichment_score=gene_ratio / background_ratio,
                gene_ratio=gene_ratio,
                background_ratio=background_ratio,
                genes=hits,
            ))
        logger.info(
            f"ORA{_label(direction)}: tested {len(sets)} gene sets "
            f"with {draw_size} genes against a universe of {universe_size}"
        )

    if len(tested) > 1:
        logger.info(f"ORA: FDR-corrected {len(p_values)} tests across {len(tested)} gene lists")
    return results


def score_ora(
    genes_of_interest: Iterable[str],
    universe: Iterable[str],
    catalog: GeneCatalog,
    min_set_size: int = 10,
    max_set_size: int = 50000,
    direction: Optional[str] = None
) -> List[EnrichmentRecord]:
    """
    Hypergeometric test of every eligible gene set, FDR-corrected, unfiltered.

    Args:
        genes_of_interest: Discrete gene list (e.g. significant up genes)
        universe: Background universe the list was drawn from
        catalog: Catalog augmented with this universe
        min_set_size: Minimum gene-set size within the universe
        max_set_size: Maximum gene-set size within the universe
        direction: Direction label attached to the records

    Returns:
        One record per tested gene set, in catalog order

    Raises:
        CatalogNotAugmentedError: if the catalog's background is not ``universe``
    """
    return score_ora_directions(
        {direction: genes_of_interest},
        universe,
        catalog,
        min_set_size=min_set_size,
        max_set_size=max_set_size,
    )[direction]


def run_ora(
    genes_of_interest: Iterable[str],
    universe: Iterable[str],
    catalog: GeneCatalog,
    min_set_size: int = 10,
    max_set_size: int = 50000,
    min_overlap: int = 10,
    significance_cutoff: float = 0.05,
    direction: Optional[str] = None
) -> List[EnrichmentRecord]:
    """
    Over-representation analysis returning significant, ranked gene sets.

    Filtering on ``significance_cutoff`` and ``min_overlap`` happens after FDR
    correction over every tested set, so the correction's test count includes
    sets with small overlaps.

    Args:
        genes_of_interest: Discrete gene list
        universe: Background universe
        catalog: Catalog augmented with ``universe``
        min_set_size: Minimum gene-set size within the universe
        max_set_size: Maximum gene-set size within the universe
        min_overlap: Minimum number of genes of interest in a set
        significance_cutoff: Maximum adjusted p-value
        direction: Direction label attached to the records

    Returns:
        Significant records ordered by descending enrichment score
    """
    if min_overlap < 1:
        raise ValueError("min_overlap must be at least 1")

    records = score_ora(
        genes_of_interest,
        universe,
        catalog,
        min_set_size=min_set_size,
        max_set_size=max_set_size,
        direction=direction,
    )
    return filter_ora(records, significance_cutoff=significance_cutoff, min_overlap=min_overlap)


def filter_ora(
    records: List[EnrichmentRecord],
    significance_cutoff: float = 0.05,
    min_overlap: int = 10
) -> List[EnrichmentRecord]:
    """Keep records with ``padj <= significance_cutoff`` and ``overlap >= min_overlap``, ranked."""
    significant = [
        r for r in records
        if r.padj <= significance_cutoff and r.overlap >= min_overlap
    ]
    direction = records[0].direction if records else None
    logger.info(
        f"ORA{_label(direction)}: {len(significant)} gene sets with "
        f"padj <= {significance_cutoff} and overlap >= {min_overlap}"
    )
    return rank_records(significant, top_n=None)
