"""
Statistical functions for the pathway comparison pipeline.
"""

import threading
from typing import Dict, List, Optional, Tuple

import numba as nb
import numpy as np
from scipy import stats
from statsmodels.stats.multitest import multipletests

from pathway_concord.exceptions import (
    InsufficientPermutationsError,
    PermutationTimeoutError,
    StatisticalComputationError,
)


#  Core numba-optimised functions for the running-sum statistic

@nb.njit(nogil=True)
def _running_sum(weights, hits):
    """
    Weighted running-sum enrichment score over a ranked gene list.

    Args:
        weights: Absolute ranking statistic for every gene, in rank order
        hits: Sorted rank positions of the gene-set members

    Returns:
        Tuple of (enrichment score, index into ``hits`` of the peak)
    """
    n_genes = weights.shape[0]
    n_hits = hits.shape[0]

    hit_total = 0.0
    for k in range(n_hits):
        hit_total += weights[hits[k]]
    uniform = hit_total <= 0.0

    miss_step = 1.0 / (n_genes - n_hits)
    cum_hit = 0.0
    es_max = 0.0
    es_min = 0.0
    peak_max = 0
    peak_min = 0
    for k in range(n_hits):
        misses = hits[k] - k
        # lowest point is reached just before a hit
        value = cum_hit - misses * miss_step
        if value < es_min:
            es_min = value
            peak_min = k
        if uniform:
            cum_hit += 1.0 / n_hits
        else:
            cum_hit += weights[hits[k]] / hit_total
        # highest point is reached just after a hit
        value = cum_hit - misses * miss_step
        if value > es_max:
            es_max = value
            peak_max = k

    if es_max >= -es_min:
        return es_max, peak_max
    return es_min, peak_min


@nb.njit(nogil=True)
def _null_scores(weights, set_size: int, n_permutations: int, seed: int):
    """
    Running-sum scores for random gene sets of a fixed size.

    Gene labels are permuted by a partial Fisher-Yates shuffle of rank
    positions. The generator is seeded per call so a chunk is reproducible
    on any thread.
    """
    np.random.seed(seed)
    n_genes = weights.shape[0]
    pool = np.arange(n_genes)
    scores = np.empty(n_permutations)
    for p in range(n_permutations):
        for i in range(set_size):
            j = np.random.randint(i, n_genes)
            tmp = pool[i]
            pool[i] = pool[j]
            pool[j] = tmp
        hits = np.sort(pool[:set_size])
        es, _ = _running_sum(weights, hits)
        scores[p] = es
    return scores


@nb.njit
def _calculate_significance_counts(observed_score: float, null_scores) -> int:
    """
    Count how many null scores are at least as extreme as the observed score.

    Args:
        observed_score: Observed score
        null_scores: Array of null distribution scores

    Returns:
        Count of scores with magnitude >= |observed|
    """
    magnitude = abs(observed_score)
    count = 0
    for i in range(len(null_scores)):
        if abs(null_scores[i]) >= magnitude:
            count += 1
    return count


def hypergeometric_pvalue(
    overlap: int,
    universe_size: int,
    set_size: int,
    draw_size: int
) -> float:
    """
    Upper-tail hypergeometric p-value P(X >= overlap).

    Args:
        overlap: Genes of interest that fall in the gene set (k)
        universe_size: Size of the background universe (N)
        set_size: Gene-set members inside the universe (K)
        draw_size: Number of genes of interest inside the universe (n)

    Returns:
        P-value

    Raises:
        StatisticalComputationError: if the parameters are outside the
            distribution's support
    """
    if universe_size <= 0:
        raise StatisticalComputationError("Universe size must be positive")
    if not 0 <= set_size <= universe_size:
        raise StatisticalComputationError(
            f"Gene-set size {set_size} outside [0, {universe_size}]"
        )
    if not 0 <= draw_size <= universe_size:
        raise StatisticalComputationError(
            f"Draw size {draw_size} outside [0, {universe_size}]"
        )
    if not 0 <= overlap <= min(set_size, draw_size):
        raise StatisticalComputationError(
            f"Overlap {overlap} exceeds min(set size {set_size}, draw size {draw_size})"
        )
    if overlap == 0:
        return 1.0
    return float(stats.hypergeom.sf(overlap - 1, universe_size, set_size, draw_size))


def perform_fdr_analysis(p_values, alpha: float = 0.05) -> Dict[str, list]:
    """
    Perform Benjamini-Hochberg FDR correction on p-values.

    Args:
        p_values: Array of p-values from one test invocation
        alpha: Significance level

    Returns:
        Dictionary with FDR results
    """
    if len(p_values) == 0:
        raise ValueError("Input p-values array cannot be empty")

    reject, pvals_corrected, _, _ = multipletests(
        p_values,
        alpha=alpha,
        method='fdr_bh'
    )

    return {
        'reject': reject.astype(bool).tolist(),
        'pvals_corrected': pvals_corrected.tolist()
    }


def enrichment_score(weights: np.ndarray, hits: np.ndarray) -> Tuple[float, int]:
    """
    Compute the running-sum enrichment score of one gene set.

    Args:
        weights: Absolute ranking statistic in rank order
        hits: Rank positions of the set members

    Returns:
        Tuple of (enrichment score, index into sorted ``hits`` of the peak)

    Raises:
        StatisticalComputationError: if the set is empty or covers every gene
    """
    hits = np.sort(np.asarray(hits, dtype=np.int64))
    if hits.size == 0:
        raise StatisticalComputationError("Gene set has no ranked members")
    if hits.size >= weights.shape[0]:
        raise StatisticalComputationError("Gene set covers the whole ranked list")
    es, peak = _running_sum(np.asarray(weights, dtype=np.float64), hits)
    return float(es), int(peak)


def chunk_seed(seed: int, set_size: int, chunk: int) -> int:
    """Seed for one permutation chunk, independent of scheduling order."""
    return int(np.random.SeedSequence([seed, set_size, chunk]).generate_state(1)[0])


def permutation_null(
    weights: np.ndarray,
    set_size: int,
    permutations: int,
    seed: int = 42,
    chunk_size: int = 1000,
    cancel_event: Optional[threading.Event] = None
) -> np.ndarray:
    """
    Null distribution of enrichment scores for random sets of ``set_size``.

    Args:
        weights: Absolute ranking statistic in rank order
        set_size: Number of members of the random sets
        permutations: Number of random sets
        seed: Base random seed
        chunk_size: Permutations per compiled call; cancellation is checked
            between chunks
        cancel_event: Optional event that aborts the computation when set

    Returns:
        Array of ``permutations`` null scores

    Raises:
        InsufficientPermutationsError: if ``permutations`` is not positive
        PermutationTimeoutError: if ``cancel_event`` is set before completion
    """
    if permutations <= 0:
        raise InsufficientPermutationsError(
            f"Number of permutations must be positive, got {permutations}"
        )
    weights = np.asarray(weights, dtype=np.float64)
    if not 0 < set_size < weights.shape[0]:
        raise StatisticalComputationError(
            f"Set size {set_size} outside (0, {weights.shape[0]})"
        )

    chunks: List[np.ndarray] = []
    done = 0
    chunk = 0
    while done < permutations:
        if cancel_event is not None and cancel_event.is_set():
            raise PermutationTimeoutError(
                f"Permutation null for set size {set_size} cancelled after {done} draws"
            )
        n = min(chunk_size, permutations - done)
        chunks.append(_null_scores(weights, set_size, n, chunk_seed(seed, set_size, chunk)))
        done += n
        chunk += 1
    return np.concatenate(chunks)


def calculate_significance(
    observed_score: float,
    null_scores,
    alpha: float = 0.05
) -> Tuple[float, bool]:
    """
    Calculate significance of an observed score against a null distribution.

    The p-value is the fraction of null scores whose magnitude reaches the
    observed magnitude, floored at one over the number of null scores.

    Args:
        observed_score: Observed enrichment score
        null_scores: Scores from the null model
        alpha: Significance level

    Returns:
        Tuple of (p-value, is_significant)
    """
    null_scores_array = np.asarray(null_scores, dtype=np.float64)
    if null_scores_array.size == 0:
        raise ValueError("Null scores array cannot be empty")

    count = _calculate_significance_counts(observed_score, null_scores_array)
    p_value = max(count / null_scores_array.size, 1.0 / null_scores_array.size)

    return float(p_value), bool(p_value <= alpha)


def normalized_enrichment_score(observed_score: float, null_scores) -> float:
    """
    Scale an enrichment score by the mean magnitude of same-signed null scores.

    Returns NaN when the null has no score of that sign.
    """
    null_scores_array = np.asarray(null_scores, dtype=np.float64)
    if observed_score >= 0:
        same_sign = null_scores_array[null_scores_array >= 0]
    else:
        same_sign = null_scores_array[null_scores_array < 0]
    if same_sign.size == 0:
        return float('nan')
    scale = float(np.mean(np.abs(same_sign)))
    if scale == 0.0:
        return float('nan')
    return float(observed_score / scale)
