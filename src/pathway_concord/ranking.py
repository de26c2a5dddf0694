"""
Enrichment records and their comparable ordering.

Both testers emit :class:`EnrichmentRecord` values. :func:`rank_records`
applies each method's own effect-size ordering and truncates per direction;
it performs no statistics and is deterministic for identical inputs.
"""

import math
from dataclasses import asdict, dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

import polars as pl

ORA = "ORA"
FCS = "FCS"
UP = "up"
DOWN = "down"

DIRECTION_ORDER = (UP, DOWN, None)


@dataclass(frozen=True)
class EnrichmentRecord:
    """Result of testing one gene set with one method."""

    set_id: str
    method: str
    direction: Optional[str]
    overlap: int
    set_size: int
    pvalue: float
    padj: float
    enrichment_score: float
    gene_ratio: Optional[float] = None
    background_ratio: Optional[float] = None
    normalized_score: Optional[float] = None
    genes: Tuple[str, ...] = field(default_factory=tuple)
    approximate: bool = False

    def to_dict(self) -> Dict:
        d = asdict(self)
        d['genes'] = list(self.genes)
        return d


def _finite(value: float, default: float) -> float:
    return value if value is not None and not math.isnan(value) else default


def ordering_key(record: EnrichmentRecord) -> Tuple:
    """
    Sort key implementing each method's ranking.

    ORA and up-regulated FCS sets sort by descending enrichment score, down-
    regulated FCS sets by ascending (most negative first). Ties fall back to
    ascending adjusted p-value, then set id.
    """
    score = _finite(record.enrichment_score, 0.0)
    if record.method == FCS and record.direction == DOWN:
        primary = score
    else:
        primary = -score
    return (primary, _finite(record.padj, 1.0), record.set_id)


def split_by_direction(records: Iterable[EnrichmentRecord]) -> Dict[Optional[str], List[EnrichmentRecord]]:
    """Group records by direction, keeping input order within a group."""
    groups: Dict[Optional[str], List[EnrichmentRecord]] = {direction: [] for direction in DIRECTION_ORDER}
    for record in records:
        groups.setdefault(record.direction, []).append(record)
    return groups


def rank_records(records: Iterable[EnrichmentRecord], top_n: Optional[int] = 10) -> List[EnrichmentRecord]:
    """
    Order records by effect size and keep the top ``top_n`` per direction.

    Args:
        records: Records from one tester
        top_n: Records to keep per direction; None keeps all

    Returns:
        Up records, then down records, then undirected records
    """
    if top_n is not None and top_n < 1:
        raise ValueError("top_n must be at least 1")

    ranked: List[EnrichmentRecord] = []
    for group in split_by_direction(records).values():
        ordered = sorted(group, key=ordering_key)
        ranked.extend(ordered if top_n is None else ordered[:top_n])
    return ranked


RECORD_SCHEMA = {
    'set_id': pl.Utf8,
    'method': pl.Utf8,
    'direction': pl.Utf8,
    'overlap': pl.Int64,
    'set_size': pl.Int64,
    'pvalue': pl.Float64,
    'padj': pl.Float64,
    'enrichment_score': pl.Float64,
    'gene_ratio': pl.Float64,
    'background_ratio': pl.Float64,
    'normalized_score': pl.Float64,
    'genes': pl.Utf8,
    'approximate': pl.Boolean,
}


def records_to_frame(records: Iterable[EnrichmentRecord]) -> pl.DataFrame:
    """Tabulate records; member genes are joined with ``/`` as in clusterProfiler output."""
    rows = []
    for record in records:
        row = record.to_dict()
        row['genes'] = '/'.join(record.genes)
        rows.append(row)
    if not rows:
        return pl.DataFrame(schema=RECORD_SCHEMA)
    return pl.DataFrame(rows, schema=RECORD_SCHEMA)
