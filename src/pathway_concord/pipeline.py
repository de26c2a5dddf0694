"""Main pipeline comparing over-representation and functional class scoring."""

import json
import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional, Union

import polars as pl

from pathway_concord.catalog import GeneCatalog
from pathway_concord.config import PipelineConfig
from pathway_concord.data import (
    build_ranking_statistic,
    build_universe,
    filter_count_matrix,
    load_count_matrix,
    load_de_results,
    load_gene_sets,
)
from pathway_concord.fcs import filter_fcs, score_fcs
from pathway_concord.ora import filter_ora, score_ora_directions
from pathway_concord.ranking import DOWN, UP, EnrichmentRecord, rank_records, records_to_frame
from pathway_concord.reconcile import ComparisonResult, compare_results
from pathway_concord.utils import DATA_DIR, PLOTS_DIR, output_subdir

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ComparisonRun:
    """Everything one comparison produces."""

    universe: FrozenSet[str]
    up_genes: FrozenSet[str]
    down_genes: FrozenSet[str]
    catalog: GeneCatalog
    ora_up_all: List[EnrichmentRecord]
    ora_down_all: List[EnrichmentRecord]
    fcs_all: List[EnrichmentRecord]
    ora_up: List[EnrichmentRecord]
    ora_down: List[EnrichmentRecord]
    fcs_up: List[EnrichmentRecord]
    fcs_down: List[EnrichmentRecord]
    comparison: ComparisonResult

    def top(self, top_n: int = 10) -> Dict[str, List[EnrichmentRecord]]:
        """Top ``top_n`` significant records per method and direction."""
        return {
            'ora_up': rank_records(self.ora_up, top_n),
            'ora_down': rank_records(self.ora_down, top_n),
            'fcs_up': rank_records(self.fcs_up, top_n),
            'fcs_down': rank_records(self.fcs_down, top_n),
        }


def compare_methods(
    de_results: pl.DataFrame,
    catalog: GeneCatalog,
    detection_threshold: float = 10,
    significance_cutoff: float = 0.05,
    min_overlap: int = 10,
    min_set_size: int = 10,
    max_set_size: int = 50000,
    permutations: int = 10000,
    seed: int = 42,
    num_threads: int = 1,
    permutation_timeout: Optional[float] = None,
    on_timeout: str = 'partial'
) -> ComparisonRun:
    """
    Run ORA and FCS on one differential-expression table and reconcile them.

    The catalog is augmented with the universe exactly once, before either
    tester sees it. With ``num_threads > 1`` ORA and FCS run concurrently.

    Args:
        de_results: Validated differential-expression table
        catalog: Gene-set catalog as loaded (without background entry)
        detection_threshold: Minimum baseMean for the universe
        significance_cutoff: Adjusted p-value cutoff for genes and gene sets
        min_overlap: Minimum ORA overlap for a significant set
        min_set_size: Minimum gene-set size for both testers
        max_set_size: Maximum gene-set size for both testers
        permutations: FCS permutation count
        seed: FCS random seed
        num_threads: Worker threads
        permutation_timeout: Seconds allowed for the FCS permutation null
        on_timeout: FCS timeout behaviour (``'partial'`` or ``'raise'``)

    Returns:
        ComparisonRun
    """
    universe, up_genes, down_genes = build_universe(
        de_results,
        detection_threshold=detection_threshold,
        significance_cutoff=significance_cutoff,
    )
    augmented = catalog.augment_with_background(universe)
    statistic = build_ranking_statistic(de_results, universe=universe)

    def run_ora_both() -> Dict[str, List[EnrichmentRecord]]:
        # one BH correction over both directions
        return score_ora_directions(
            {UP: up_genes, DOWN: down_genes},
            universe,
            augmented,
            min_set_size=min_set_size,
            max_set_size=max_set_size,
        )

    def run_fcs_all() -> List[EnrichmentRecord]:
        return score_fcs(
            statistic,
            augmented,
            min_set_size=min_set_size,
            permutations=permutations,
            max_set_size=max_set_size,
            seed=seed,
            num_threads=max(1, num_threads - 1),
            timeout=permutation_timeout,
            on_timeout=on_timeout,
        )

    if num_threads > 1:
        logger.info("Running ORA and FCS concurrently")
        with ThreadPoolExecutor(max_workers=2) as executor:
            ora_future = executor.submit(run_ora_both)
            fcs_future = executor.submit(run_fcs_all)
            ora_all = ora_future.result()
            fcs_all = fcs_future.result()
    else:
        ora_all = run_ora_both()
        fcs_all = run_fcs_all()

    ora_up = filter_ora(ora_all[UP], significance_cutoff=significance_cutoff, min_overlap=min_overlap)
    ora_down = filter_ora(ora_all[DOWN], significance_cutoff=significance_cutoff, min_overlap=min_overlap)
    fcs_significant = filter_fcs(fcs_all, significance_cutoff=significance_cutoff)
    fcs_up = [r for r in fcs_significant if r.direction == UP]
    fcs_down = [r for r in fcs_significant if r.direction == DOWN]

    comparison = compare_results(ora_up, ora_down, fcs_up, fcs_down)

    return ComparisonRun(
        universe=universe,
        up_genes=up_genes,
        down_genes=down_genes,
        catalog=augmented,
        ora_up_all=ora_all[UP],
        ora_down_all=ora_all[DOWN],
        fcs_all=fcs_all,
        ora_up=ora_up,
        ora_down=ora_down,
        fcs_up=fcs_up,
        fcs_down=fcs_down,
        comparison=comparison,
    )


class PathwayComparisonPipeline:
    """Main class for running the ORA/FCS comparison."""

    def __init__(self, config_path: Union[str, Path]):
        """Initialise the pipeline with a configuration file.

        Args:
            config_path: Path to the TOML configuration file
        """
        self.config = PipelineConfig(config_path)
        self.logger = logging.getLogger(__name__)
        self.results: Optional[ComparisonRun] = None
        self._load_input_data()

    def _load_input_data(self):
        """Load and validate input data files."""
        self.logger.debug("Starting to load input data files")

        for file_key, file_path in self.config.input_files.items():
            if isinstance(file_path, (str, bytes, os.PathLike)) and not Path(file_path).is_file():
                error_msg = f"Input file not found: {file_path} (specified as {file_key})"
                self.logger.error(error_msg)
                raise FileNotFoundError(error_msg)

        self.de_results = load_de_results(self.config.input_files['de_results_file'])
        self.catalog = load_gene_sets(self.config.input_files['gene_sets_file'])

        if 'counts_file' in self.config.input_files:
            counts = load_count_matrix(self.config.input_files['counts_file'])
            detected = filter_count_matrix(counts, self.config.detection_threshold)
            accessions = detected['gene_id'].to_list()
            before = self.de_results.height
            self.de_results = self.de_results.filter(pl.col('gene_id').is_in(accessions))
            self.logger.info(
                f"Restricted differential expression table to {self.de_results.height} of "
                f"{before} genes detected in the count matrix"
            )

        self.logger.info(f"Loaded {self.de_results.height} genes with differential expression results")
        self.logger.info(f"Loaded {len(self.catalog)} gene sets")
        self.logger.debug("Finished loading input data files")

    def run(self) -> ComparisonRun:
        """Run the comparison and save its results."""
        self.logger.info("Starting pathway comparison pipeline")
        start_time = time.time()

        self.results = compare_methods(
            self.de_results,
            self.catalog,
            detection_threshold=self.config.detection_threshold,
            significance_cutoff=self.config.significance_cutoff,
            min_overlap=self.config.min_overlap,
            min_set_size=self.config.min_set_size,
            max_set_size=self.config.max_set_size,
            permutations=self.config.permutations,
            seed=self.config.seed,
            num_threads=self.config.num_threads,
            permutation_timeout=self.config.permutation_timeout,
            on_timeout=self.config.on_timeout,
        )

        self.logger.info("Saving results")
        self.save_results()

        elapsed_time = time.time() - start_time
        self.logger.info(f"Pipeline completed in {elapsed_time:.2f} seconds")
        return self.results

    def save_results(self, output_dir: Optional[str] = None):
        """Save analysis results.

        Args:
            output_dir: Optional output directory path. If not provided,
                        uses the directory from the configuration.
        """
        if self.results is None:
            self.logger.warning("No results to save. Run the pipeline first.")
            return

        output_path = Path(output_dir) if output_dir is not None else self.config.get_output_path()
        data_path = output_subdir(output_path, DATA_DIR)
        results = self.results

        # 1. Full corrected tables for every tested gene set
        full_tables = {
            'ora_up': results.ora_up_all,
            'ora_down': results.ora_down_all,
            'fcs': results.fcs_all,
        }
        for name, records in full_tables.items():
            records_to_frame(records).write_csv(data_path / f'{name}.csv')

        # 2. Significant sets and their top-N per method and direction
        significant = {
            'ora_up': results.ora_up,
            'ora_down': results.ora_down,
            'fcs_up': results.fcs_up,
            'fcs_down': results.fcs_down,
        }
        for name, records in significant.items():
            records_to_frame(records).write_csv(data_path / f'{name}_significant.csv')
        top = results.top(self.config.top_n)
        for name, records in top.items():
            records_to_frame(records).write_csv(data_path / f'{name}_top.csv')
        self.logger.info(f"Saved enrichment tables to {data_path}")

        # 3. Agreement between methods
        summary = {
            'universe_size': len(results.universe),
            'up_genes': len(results.up_genes),
            'down_genes': len(results.down_genes),
            'significant': {name: len(records) for name, records in significant.items()},
            'approximate_fcs_results': sum(r.approximate for r in results.fcs_all),
            'comparison': results.comparison.to_dict(),
        }
        comparison_file = data_path / 'comparison.json'
        with open(comparison_file, 'w') as f:
            json.dump(summary, f, indent=2)
        self.logger.info(f"Saved comparison to {comparison_file}")

        # 4. Effective configuration
        config_file = data_path / 'pipeline_config.json'
        with open(config_file, 'w') as f:
            json.dump(self.config.as_dict(), f, indent=2)
        self.logger.info(f"Saved configuration to {config_file}")

        # 5. Diagnostic figures
        if self.config.output_config.get('plots', False):
            self._save_plots(output_path, top)

        # 6. README describing the output files
        readme_file = output_path / 'README.md'
        with open(readme_file, 'w') as f:
            f.write("# ORA / FCS Pathway Comparison Results\n\n")
            f.write(f"Analysis completed on {time.strftime('%Y-%m-%d %H:%M:%S')}\n\n")
            f.write(f"- Universe: {len(results.universe)} genes\n")
            f.write(f"- Genes of interest: {len(results.up_genes)} up, {len(results.down_genes)} down\n")
            f.write(
                f"- Jaccard index (up / down / pooled): {results.comparison.jaccard_up:.3f} / "
                f"{results.comparison.jaccard_down:.3f} / {results.comparison.jaccard_pooled:.3f}\n\n"
            )
            f.write("## Files\n\n")
            f.write("- `data/ora_up.csv`, `data/ora_down.csv`, `data/fcs.csv`: every tested gene set with FDR-corrected p-values\n")
            f.write("- `data/*_significant.csv`: significant gene sets per method and direction, ranked by enrichment score\n")
            f.write(f"- `data/*_top.csv`: top {self.config.top_n} significant gene sets per method and direction\n")
            f.write("- `data/comparison.json`: Jaccard indices and per-direction overlaps between ORA and FCS\n")
            f.write("- `data/pipeline_config.json`: Configuration used for this analysis\n")
            if self.config.output_config.get('plots', False):
                f.write("- `plots/`: top-N enrichment bar charts and the ORA/FCS overlap chart\n")

        self.logger.info(f"Saved README to {readme_file}")

    def _save_plots(self, output_path: Path, top: Dict[str, List[EnrichmentRecord]]):
        import matplotlib
        matplotlib.use('Agg')
        import matplotlib.pyplot as plt

        from pathway_concord.visualise import plot_overlap, plot_top_enrichment

        plots_path = output_subdir(output_path, PLOTS_DIR)
        titles = {
            'ora_up': 'ORA, up-regulated genes',
            'ora_down': 'ORA, down-regulated genes',
            'fcs_up': 'FCS, positive enrichment',
            'fcs_down': 'FCS, negative enrichment',
        }
        for name, records in top.items():
            if not records:
                self.logger.info(f"No significant gene sets for {name}; skipping plot")
                continue
            fig = plot_top_enrichment(records, title=titles[name])
            fig.savefig(plots_path / f'{name}_top.png', dpi=150, bbox_inches='tight')
            plt.close(fig)

        fig = plot_overlap(self.results.comparison)
        fig.savefig(plots_path / 'overlap.png', dpi=150, bbox_inches='tight')
        plt.close(fig)
        self.logger.info(f"Saved plots to {plots_path}")

