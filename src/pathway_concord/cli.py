#!/usr/bin/env python3
"""
Command line interface for the pathway comparison pipeline.
"""

import argparse
import logging
import sys
from pathlib import Path

import tomli
from tomli_w import dump

from .pipeline import PathwayComparisonPipeline
from .utils import LOGS_DIR, output_subdir, setup_logging


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Compare over-representation and functional class scoring pathway analyses"
    )

    parser.add_argument(
        "config_file",
        type=str,
        help="Path to TOML configuration file"
    )

    input_group = parser.add_argument_group("Input file overrides")
    input_group.add_argument(
        "--de-results",
        type=str,
        help="Override differential expression results file path"
    )
    input_group.add_argument(
        "--gene-sets",
        type=str,
        help="Override gene set (GMT or term/gene table) file path"
    )
    input_group.add_argument(
        "--counts",
        type=str,
        help="Override raw count matrix file path"
    )

    output_group = parser.add_argument_group("Output configuration overrides")
    output_group.add_argument(
        "--output-dir",
        type=str,
        help="Override output directory"
    )
    output_group.add_argument(
        "--plots",
        action="store_true",
        help="Save diagnostic plots"
    )

    analysis_group = parser.add_argument_group("Analysis parameter overrides")
    analysis_group.add_argument(
        "--detection-threshold",
        type=float,
        help="Override minimum mean count for the gene universe"
    )
    analysis_group.add_argument(
        "--significance-cutoff",
        type=float,
        help="Override adjusted p-value cutoff"
    )
    analysis_group.add_argument(
        "--min-overlap",
        type=int,
        help="Override minimum ORA overlap"
    )
    analysis_group.add_argument(
        "--min-set-size",
        type=int,
        help="Override minimum gene set size"
    )
    analysis_group.add_argument(
        "--max-set-size",
        type=int,
        help="Override maximum gene set size"
    )
    analysis_group.add_argument(
        "--top-n",
        type=int,
        help="Override number of top gene sets reported per direction"
    )
    analysis_group.add_argument(
        "--permutations",
        type=int,
        help="Override number of FCS permutations"
    )
    analysis_group.add_argument(
        "--seed",
        type=int,
        help="Override random seed"
    )
    analysis_group.add_argument(
        "--num-threads",
        type=int,
        help="Override number of threads for parallel processing"
    )
    analysis_group.add_argument(
        "--permutation-timeout",
        type=float,
        help="Override permutation timeout in seconds"
    )
    analysis_group.add_argument(
        "--on-timeout",
        choices=["partial", "raise"],
        help="Override behaviour when permutations time out"
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging"
    )

    return parser.parse_args(argv)


ANALYSIS_OVERRIDES = [
    'detection_threshold',
    'significance_cutoff',
    'min_overlap',
    'min_set_size',
    'max_set_size',
    'top_n',
    'permutations',
    'seed',
    'num_threads',
    'permutation_timeout',
    'on_timeout',
]


def update_config(config: dict, args: argparse.Namespace):
    """Update configuration with command line overrides."""
    config.setdefault('input', {})
    config.setdefault('output', {})
    config.setdefault('analysis', {})

    if args.de_results:
        config['input']['de_results_file'] = args.de_results
    if args.gene_sets:
        config['input']['gene_sets_file'] = args.gene_sets
    if args.counts:
        config['input']['counts_file'] = args.counts

    if args.output_dir:
        config['output']['directory'] = args.output_dir
    if args.plots:
        config['output']['plots'] = True

    for name in ANALYSIS_OVERRIDES:
        value = getattr(args, name)
        if value is not None:
            config['analysis'][name] = value

    return config


def main(argv=None):
    """Main entry point for the CLI."""
    args = parse_args(argv)

    try:
        with open(args.config_file, 'rb') as f:
            config = tomli.load(f)
    except Exception as e:
        print(f"Error loading configuration file: {str(e)}")
        sys.exit(1)

    config = update_config(config, args)

    # Set up logging first, before any pipeline operations
    output_dir = Path(config['output'].get('directory', 'results'))
    setup_logging(output_subdir(output_dir, LOGS_DIR), level=logging.DEBUG if args.verbose else logging.INFO)

    logging.info("Starting pathway comparison pipeline")
    logging.info(f"Using configuration file: {args.config_file}")

    # Save updated config to a temporary file
    temp_config_path = Path(args.config_file).parent / "temp_config.toml"
    with open(temp_config_path, 'wb') as f:
        dump(config, f)

    try:
        pipeline = PathwayComparisonPipeline(str(temp_config_path))
        pipeline.run()
        logging.info("Pipeline execution completed successfully")
    except Exception as e:
        logging.error(f"Pipeline execution failed: {str(e)}")
        sys.exit(1)
    finally:
        temp_config_path.unlink()


if __name__ == "__main__":
    main()
