"""
Functional class scoring (FCS) of a ranked gene statistic.

Genes are ranked by their statistic and every gene set receives a weighted
running-sum enrichment score. Significance comes from a gene-label
permutation null that is shared by all gene sets of the same matched size.
Null distributions for different sizes are computed on a thread pool; each
size has its own seed, so results do not depend on scheduling.
"""

import logging
import threading
import warnings
from concurrent.futures import ThreadPoolExecutor, as_completed
from concurrent.futures import TimeoutError as FuturesTimeoutError
from typing import Dict, List, Mapping, Optional, Set, Tuple

import numpy as np
from tqdm.auto import tqdm

from pathway_concord.catalog import GeneCatalog, normalise_gene
from pathway_concord.exceptions import (
    EmptyInputWarning,
    InsufficientPermutationsError,
    PermutationTimeoutError,
    StatisticalComputationError,
)
from pathway_concord.ranking import DOWN, FCS, UP, EnrichmentRecord, rank_records
from pathway_concord.stats import (
    calculate_significance,
    enrichment_score,
    normalized_enrichment_score,
    perform_fdr_analysis,
    permutation_null,
)
from pathway_concord.utils import tqdm_kwargs

logger = logging.getLogger(__name__)

ON_TIMEOUT_CHOICES = ('partial', 'raise')


def rank_genes(ranking_statistic: Mapping[str, float]) -> Tuple[List[str], np.ndarray]:
    """
    Order genes by descending statistic, breaking ties by symbol.

    Keys that normalise to the same symbol are summed into one entry.

    Returns:
        Tuple of (genes in rank order, statistic in rank order)
    """
    collapsed: Dict[str, float] = {}
    for g, v in ranking_statistic.items():
        symbol = normalise_gene(g)
        collapsed[symbol] = collapsed.get(symbol, 0.0) + float(v)
    ordered = sorted(collapsed.items(), key=lambda item: (-item[1], item[0]))
    genes = [g for g, _ in ordered]
    values = np.array([v for _, v in ordered], dtype=np.float64)
    return genes, values


def compute_null_distributions(
    weights: np.ndarray,
    set_sizes: List[int],
    permutations: int,
    seed: int = 42,
    num_threads: int = 1,
    timeout: Optional[float] = None
) -> Dict[int, np.ndarray]:
    """
    Permutation nulls for each distinct gene-set size.

    Args:
        weights: Absolute ranking statistic in rank order
        set_sizes: Gene-set sizes needing a null distribution
        permutations: Draws per size
        seed: Base random seed
        num_threads: Worker threads
        timeout: Seconds before outstanding work is cancelled; None waits

    Returns:
        Mapping of size to null scores; sizes still pending at the timeout
        are absent
    """
    sizes = sorted(set(set_sizes))
    nulls: Dict[int, np.ndarray] = {}
    if not sizes:
        return nulls

    cancel_event = threading.Event()
    num_threads = max(1, min(num_threads, len(sizes)))
    logger.info(
        f"Computing {permutations} permutations for {len(sizes)} gene-set sizes "
        f"using {num_threads} threads"
    )

    with ThreadPoolExecutor(max_workers=num_threads) as executor:
        futures = {
            executor.submit(
                permutation_null,
                weights,
                size,
                permutations,
                seed=seed,
                cancel_event=cancel_event,
            ): size
            for size in sizes
        }
        try:
            with tqdm(total=len(futures), desc="FCS permutations", unit="size", **tqdm_kwargs) as pbar:
                for future in as_completed(futures, timeout=timeout):
                    nulls[futures[future]] = future.result()
                    pbar.update(1)
        except FuturesTimeoutError:
            cancel_event.set()
            for future in futures:
                future.cancel()
            logger.warning(
                f"Permutation testing timed out after {timeout} seconds; "
                f"{len(nulls)}/{len(sizes)} null distributions completed"
            )

    return nulls


def _nearest_size(size: int, available: List[int]) -> int:
    return min(available, key=lambda s: (abs(s - size), s))


def score_fcs(
    ranking_statistic: Mapping[str, float],
    catalog: GeneCatalog,
    min_set_size: int = 10,
    permutations: int = 10000,
    max_set_size: Optional[int] = None,
    seed: int = 42,
    num_threads: int = 1,
    timeout: Optional[float] = None,
    on_timeout: str = 'partial'
) -> List[EnrichmentRecord]:
    """
    Running-sum enrichment test of every eligible gene set, FDR-corrected, unfiltered.

    Args:
        ranking_statistic: One signed statistic per gene
        catalog: Gene-set catalog
        min_set_size: Minimum number of ranked members
        permutations: Permutation draws per gene-set size
        max_set_size: Optional maximum number of ranked members
        seed: Random seed for the permutation null
        num_threads: Worker threads for the permutation null
        timeout: Seconds allowed for the permutation null; None waits
        on_timeout: ``'partial'`` to fall back to the nearest completed null
            and flag records as approximate, ``'raise'`` to fail

    Returns:
        One record per tested gene set, in catalog order

    Raises:
        InsufficientPermutationsError: if ``permutations`` is not positive
        PermutationTimeoutError: on timeout with ``on_timeout='raise'`` or
            when no null distribution completed
    """
    if permutations <= 0:
        raise InsufficientPermutationsError(
            f"Number of permutations must be positive, got {permutations}"
        )
    if on_timeout not in ON_TIMEOUT_CHOICES:
        raise ValueError(f"on_timeout must be one of {', '.join(ON_TIMEOUT_CHOICES)}")

    genes, values = rank_genes(ranking_statistic)
    if not genes:
        logger.warning("Empty ranking statistic; skipping FCS")
        return []
    weights = np.abs(values)
    position = {gene: i for i, gene in enumerate(genes)}

    observed = []
    for set_id in catalog.tested_ids():
        hits = np.array(
            sorted(position[g] for g in catalog[set_id].members if g in position),
            dtype=np.int64,
        )
        if hits.size < min_set_size or (max_set_size is not None and hits.size > max_set_size):
            continue
        try:
            es, peak = enrichment_score(weights, hits)
        except StatisticalComputationError as e:
            logger.warning(f"Skipping gene set {set_id}: {e}")
            continue
        leading = hits[:peak + 1] if es >= 0 else hits[peak:]
        observed.append((set_id, hits.size, es, tuple(genes[i] for i in leading)))

    if not observed:
        message = f"No gene sets with at least {min_set_size} ranked members"
        logger.warning(message)
        warnings.warn(message, EmptyInputWarning)
        return []

    sizes = sorted({size for _, size, _, _ in observed})
    nulls = compute_null_distributions(
        weights, sizes, permutations, seed=seed, num_threads=num_threads, timeout=timeout
    )
    missing: Set[int] = set(sizes) - set(nulls)
    if missing:
        if not nulls:
            raise PermutationTimeoutError("No permutation null completed before the timeout")
        if on_timeout == 'raise':
            raise PermutationTimeoutError(
                f"{len(missing)} of {len(sizes)} null distributions incomplete after {timeout} seconds"
            )
        logger.warning(
            f"Using the nearest completed null for {len(missing)} gene-set sizes; "
            f"affected results are marked approximate"
        )

    available = sorted(nulls)
    scored = []
    for set_id, size, es, leading in observed:
        approximate = size in missing
        null = nulls[_nearest_size(size, available) if approximate else size]
        p_value, _ = calculate_significance(es, null)
        scored.append((set_id, size, es, leading, p_value, normalized_enrichment_score(es, null), approximate))

    fdr = perform_fdr_analysis([s[4] for s in scored])
    records = []
    for (set_id, size, es, leading, p_value, nes, approximate), padj in zip(scored, fdr['pvals_corrected']):
        if es > 0:
            direction = UP
        elif es < 0:
            direction = DOWN
        else:
            direction = None
        records.append(EnrichmentRecord(
            set_id=set_id,
            method=FCS,
            direction=direction,
            overlap=len(leading),
            set_size=size,
            pvalue=p_value,
            padj=float(padj),
            enrichment_score=es,
            normalized_score=nes,
            genes=leading,
            approximate=approximate,
        ))

    logger.info(f"FCS: tested {len(records)} gene sets over {len(genes)} ranked genes")
    return records


def run_fcs(
    ranking_statistic: Mapping[str, float],
    catalog: GeneCatalog,
    min_set_size: int = 10,
    permutations: int = 10000,
    max_set_size: Optional[int] = None,
    significance_cutoff: float = 0.05,
    seed: int = 42,
    num_threads: int = 1,
    timeout: Optional[float] = None,
    on_timeout: str = 'partial'
) -> List[EnrichmentRecord]:
    """
    Functional class scoring returning significant, ranked gene sets.

    Returns:
        Up-regulated sets by descending enrichment score, then down-regulated
        sets by ascending enrichment score, all with ``padj < significance_cutoff``
    """
    records = score_fcs(
        ranking_statistic,
        catalog,
        min_set_size=min_set_size,
        permutations=permutations,
        max_set_size=max_set_size,
        seed=seed,
        num_threads=num_threads,
        timeout=timeout,
        on_timeout=on_timeout,
    )
    return filter_fcs(records, significance_cutoff=significance_cutoff)


def filter_fcs(records: List[EnrichmentRecord], significance_cutoff: float = 0.05) -> List[EnrichmentRecord]:
    """Keep directional records with ``padj < significance_cutoff``; up first, then down."""
    significant = [
        r for r in records
        if r.padj < significance_cutoff and r.direction is not None
    ]
    logger.info(
        f"FCS: {sum(r.direction == UP for r in significant)} up and "
        f"{sum(r.direction == DOWN for r in significant)} down gene sets with padj < {significance_cutoff}"
    )
    return rank_records(significant, top_n=None)
