"""
Pathway Concordance
===================

Compare over-representation analysis and functional class scoring of one
differential-expression result, and measure how well they agree.
"""

from .catalog import BACKGROUND_SET_ID, GeneCatalog, GeneSet
from .config import PipelineConfig
from .data import (
    GeneIdentifier as GeneIdentifier,
    build_ranking_statistic as build_ranking_statistic,
    build_universe as build_universe,
    filter_count_matrix as filter_count_matrix,
    load_de_results as load_de_results,
    load_gene_sets as load_gene_sets,
)
from .fcs import run_fcs as run_fcs, score_fcs as score_fcs
from .ora import run_ora as run_ora, score_ora as score_ora, score_ora_directions as score_ora_directions
from .pipeline import ComparisonRun, PathwayComparisonPipeline, compare_methods
from .ranking import EnrichmentRecord, rank_records as rank_records
from .reconcile import ComparisonResult, compare_results as compare_results, jaccard_index as jaccard_index
from .utils import setup_logging as setup_logging, ensure_dir as ensure_dir

__version__ = "0.1.0"

__all__ = [
    "BACKGROUND_SET_ID",
    "GeneCatalog",
    "GeneSet",
    "GeneIdentifier",
    "PipelineConfig",
    "PathwayComparisonPipeline",
    "ComparisonRun",
    "compare_methods",
    "load_de_results",
    "load_gene_sets",
    "filter_count_matrix",
    "build_universe",
    "build_ranking_statistic",
    "run_ora",
    "score_ora",
    "score_ora_directions",
    "run_fcs",
    "score_fcs",
    "EnrichmentRecord",
    "rank_records",
    "ComparisonResult",
    "compare_results",
    "jaccard_index",
    "setup_logging",
    "ensure_dir",
]
