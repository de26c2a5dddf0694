"""
Input loading and gene-universe construction for the pathway comparison pipeline.
"""

import logging
import math
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple, Union

import polars as pl

from pathway_concord.catalog import GeneCatalog, normalise_gene
from pathway_concord.exceptions import (
    EmptyGeneListWarning,
    EmptyUniverseError,
    MalformedCatalogError,
    MissingColumnsError,
)

logger = logging.getLogger(__name__)

DE_REQUIRED_COLUMNS = ["gene_id", "baseMean", "log2FoldChange", "pvalue", "padj", "stat"]
DE_NUMERIC_COLUMNS = ["baseMean", "log2FoldChange", "pvalue", "padj", "stat"]
NULL_VALUES = ["NA", "NaN", ""]


@dataclass(frozen=True)
class GeneIdentifier:
    """Stable accession plus display symbol for one gene."""

    accession: str
    symbol: str

    @classmethod
    def parse(cls, identifier: str) -> "GeneIdentifier":
        """Split a composite ``"<accession> <symbol>"`` identifier.

        Identifiers without a symbol part use the accession as symbol.
        """
        parts = identifier.strip().split(None, 1)
        if not parts:
            raise ValueError("Empty gene identifier")
        accession = parts[0]
        symbol = parts[1] if len(parts) > 1 else parts[0]
        return cls(accession=accession, symbol=normalise_gene(symbol))


def _separator_for(file_path: Path) -> str:
    return ',' if Path(file_path).suffix.lower() == '.csv' else '\t'


def _with_identifiers(df: pl.DataFrame, id_col: str = 'gene_id') -> pl.DataFrame:
    """Populate ``gene_id`` (accession) and ``symbol`` columns from ``id_col``."""
    if 'symbol' in df.columns:
        return df.with_columns(
            pl.col(id_col).cast(pl.Utf8).str.strip_chars().alias('gene_id'),
            pl.col('symbol').cast(pl.Utf8).str.strip_chars().str.to_uppercase().alias('symbol'),
        )

    identifiers = [
        GeneIdentifier.parse(value) if value is not None else None
        for value in df[id_col].cast(pl.Utf8).to_list()
    ]
    return df.with_columns(
        pl.Series('gene_id', [i.accession if i else None for i in identifiers], dtype=pl.Utf8),
        pl.Series('symbol', [i.symbol if i else None for i in identifiers], dtype=pl.Utf8),
    )


def validate_de_results(df: pl.DataFrame) -> pl.DataFrame:
    """
    Check and normalise a differential-expression table.

    Args:
        df: DataFrame produced by the external DE engine

    Returns:
        DataFrame with ``gene_id``, ``symbol`` and Float64 numeric columns

    Raises:
        MissingColumnsError: if a required column is absent
    """
    missing = [col for col in DE_REQUIRED_COLUMNS if col not in df.columns]
    if missing:
        raise MissingColumnsError(
            f"Differential expression table is missing required columns: {', '.join(missing)}"
        )

    df = _with_identifiers(df).with_columns(
        [pl.col(col).cast(pl.Float64, strict=False) for col in DE_NUMERIC_COLUMNS]
    )
    # NaN from the DE engine means "not computed", same as NA
    df = df.with_columns(
        [pl.col(col).fill_nan(None) for col in DE_NUMERIC_COLUMNS]
    )
    return df.filter(pl.col('symbol').is_not_null())


def load_de_results(file_path: Union[str, Path]) -> pl.DataFrame:
    """
    Load a differential-expression result table.

    Args:
        file_path: Path to a tab- or comma-separated file

    Returns:
        Validated DataFrame (see :func:`validate_de_results`)
    """
    df = pl.read_csv(
        file_path,
        separator=_separator_for(file_path),
        has_header=True,
        null_values=NULL_VALUES,
        infer_schema_length=10000,
    )
    df = validate_de_results(df)
    logger.info(f"Loaded {df.height} differential expression rows from {file_path}")
    return df


def read_gmt(file_path: Union[str, Path]) -> pl.DataFrame:
    """Read a GMT file into a flat (term, gene) table."""
    terms: List[str] = []
    genes: List[str] = []
    with open(file_path) as f:
        for line_number, line in enumerate(f, start=1):
            line = line.rstrip('\n')
            if not line.strip():
                continue
            fields = line.split('\t')
            # name, description, then members
            if len(fields) < 3:
                raise MalformedCatalogError(f"GMT line {line_number} has no genes: {fields[0]!r}")
            for gene in fields[2:]:
                if gene.strip():
                    terms.append(fields[0])
                    genes.append(gene)
    return pl.DataFrame({'term': terms, 'gene': genes}, schema={'term': pl.Utf8, 'gene': pl.Utf8})


def load_gene_sets(file_path: Union[str, Path]) -> GeneCatalog:
    """
    Load a gene-set catalog.

    Accepts GMT files and two-column ``term``/``gene`` tables. Tables whose
    header does not name those columns are read positionally.

    Args:
        file_path: Path to the gene-set source

    Returns:
        GeneCatalog (not yet augmented with the background entry)
    """
    if Path(file_path).suffix.lower() == '.gmt':
        df = read_gmt(file_path)
    else:
        df = pl.read_csv(
            file_path,
            separator=_separator_for(file_path),
            has_header=True,
            null_values=NULL_VALUES,
            infer_schema_length=0,
        )
        if 'term' not in df.columns or 'gene' not in df.columns:
            if len(df.columns) < 2:
                raise MalformedCatalogError(f"Gene-set table {file_path} needs two columns")
            df = df.select(df.columns[:2]).rename({df.columns[0]: 'term', df.columns[1]: 'gene'})

    catalog = GeneCatalog.from_frame(df)
    logger.info(f"Loaded {len(catalog)} gene sets from {file_path}")
    return catalog


def load_count_matrix(file_path: Union[str, Path], id_col: Optional[str] = None) -> pl.DataFrame:
    """
    Load a raw genes x samples count matrix.

    Args:
        file_path: Path to the count matrix
        id_col: Identifier column; defaults to the first column

    Returns:
        DataFrame with ``gene_id``, ``symbol`` and one column per sample
    """
    df = pl.read_csv(
        file_path,
        separator=_separator_for(file_path),
        has_header=True,
        null_values=NULL_VALUES,
    )
    id_col = id_col or df.columns[0]
    df = _with_identifiers(df, id_col=id_col)
    if id_col not in ('gene_id', 'symbol'):
        df = df.drop(id_col)
    return df


def filter_count_matrix(counts: pl.DataFrame, detection_threshold: float = 10) -> pl.DataFrame:
    """
    Keep genes whose mean count across samples reaches ``detection_threshold``.

    Args:
        counts: Count matrix with ``gene_id``/``symbol`` and numeric sample columns
        detection_threshold: Minimum mean count

    Returns:
        Filtered count matrix
    """
    if detection_threshold < 0:
        raise ValueError("detection_threshold must be non-negative")
    sample_cols = [
        col for col in counts.columns
        if col not in ('gene_id', 'symbol') and counts.schema[col].is_numeric()
    ]
    if not sample_cols:
        raise MissingColumnsError("Count matrix has no numeric sample columns")

    filtered = counts.filter(pl.mean_horizontal(sample_cols) >= detection_threshold)
    logger.info(
        f"{filtered.height} of {counts.height} genes have mean count >= {detection_threshold}"
    )
    return filtered


def build_universe(
    de_results: pl.DataFrame,
    detection_threshold: float = 10,
    significance_cutoff: float = 0.05
) -> Tuple[FrozenSet[str], FrozenSet[str], FrozenSet[str]]:
    """
    Derive the background universe and the up/down genes of interest.

    Duplicate accessions mapping to one symbol count once in the universe.
    A symbol whose accessions are significant in opposite directions is left
    out of both lists.

    Args:
        de_results: Validated differential-expression table
        detection_threshold: Minimum ``baseMean`` for a gene to be detectable
        significance_cutoff: Maximum adjusted p-value for a gene of interest

    Returns:
        Tuple of (universe, up, down) symbol sets

    Raises:
        EmptyUniverseError: if no gene reaches the detection threshold
    """
    if detection_threshold < 0:
        raise ValueError("detection_threshold must be non-negative")
    if not 0 < significance_cutoff < 1:
        raise ValueError("significance_cutoff must be in (0, 1)")

    expressed = de_results.filter(
        pl.col('baseMean').is_not_null() & (pl.col('baseMean') >= detection_threshold)
    )
    universe = frozenset(expressed['symbol'].drop_nulls().unique().to_list())
    if not universe:
        raise EmptyUniverseError(
            f"No genes with baseMean >= {detection_threshold}; the universe is empty"
        )

    significant = expressed.filter(
        pl.col('padj').is_not_null() & (pl.col('padj') <= significance_cutoff)
    )
    up = set(significant.filter(pl.col('log2FoldChange') > 0)['symbol'].to_list())
    down = set(significant.filter(pl.col('log2FoldChange') < 0)['symbol'].to_list())

    ambiguous = up & down
    if ambiguous:
        logger.warning(
            f"Dropping {len(ambiguous)} symbols significant in both directions: "
            f"{', '.join(sorted(ambiguous)[:10])}"
        )
        up -= ambiguous
        down -= ambiguous

    for label, genes in (('up', up), ('down', down)):
        if not genes:
            message = f"No {label}-regulated genes with padj <= {significance_cutoff}"
            logger.warning(message)
            warnings.warn(message, EmptyGeneListWarning)

    logger.info(
        f"Universe: {len(universe)} genes; {len(up)} up and {len(down)} down at padj <= {significance_cutoff}"
    )
    return universe, frozenset(up), frozenset(down)


def build_ranking_statistic(
    de_results: pl.DataFrame,
    universe: Optional[Iterable[str]] = None
) -> Dict[str, float]:
    """
    Collapse the per-row test statistic to one value per symbol.

    Rows sharing a symbol are summed so multi-accession genes are kept.
    Rows without a statistic are dropped.

    Args:
        de_results: Validated differential-expression table
        universe: Optional set of symbols to restrict to

    Returns:
        Mapping of symbol to ranking statistic, ordered by symbol
    """
    df = de_results.filter(pl.col('stat').is_not_null())
    if universe is not None:
        df = df.filter(pl.col('symbol').is_in(list(universe)))

    collapsed = (
        df.group_by('symbol')
        .agg(pl.col('stat').sum())
        .sort('symbol')
    )
    statistic = {
        symbol: float(value)
        for symbol, value in zip(collapsed['symbol'].to_list(), collapsed['stat'].to_list())
        if value is not None and math.isfinite(value)
    }
    logger.debug(f"Ranking statistic covers {len(statistic)} genes")
    return statistic
