"""Tests for record ordering and tabulation."""

import random

import polars as pl
import pytest

from pathway_concord.ranking import (
    DOWN,
    FCS,
    ORA,
    UP,
    EnrichmentRecord,
    rank_records,
    records_to_frame,
)


def make_record(set_id, es, padj=0.01, method=ORA, direction=UP, genes=()):
    return EnrichmentRecord(
        set_id=set_id,
        method=method,
        direction=direction,
        overlap=len(genes),
        set_size=20,
        pvalue=padj / 2,
        padj=padj,
        enrichment_score=es,
        genes=tuple(genes),
    )


def test_ora_descending_enrichment():
    records = [make_record('A', 2.0), make_record('B', 5.0), make_record('C', 3.5)]
    assert [r.set_id for r in rank_records(records)] == ['B', 'C', 'A']


def test_fcs_down_ascending_enrichment():
    """Most negative scores lead the down-regulated list."""
    records = [
        make_record('UP_WEAK', 0.4, method=FCS, direction=UP),
        make_record('DOWN_WEAK', -0.3, method=FCS, direction=DOWN),
        make_record('DOWN_STRONG', -0.8, method=FCS, direction=DOWN),
        make_record('UP_STRONG', 0.9, method=FCS, direction=UP),
    ]
    ranked = rank_records(records)
    assert [r.set_id for r in ranked] == ['UP_STRONG', 'UP_WEAK', 'DOWN_STRONG', 'DOWN_WEAK']


def test_ties_broken_by_padj_then_id():
    records = [
        make_record('Z', 2.0, padj=0.01),
        make_record('Y', 2.0, padj=0.001),
        make_record('X', 2.0, padj=0.01),
    ]
    assert [r.set_id for r in rank_records(records)] == ['Y', 'X', 'Z']


def test_ranking_is_order_independent():
    records = [make_record(f"S{i}", float(i % 7), padj=0.001 * (i % 3 + 1)) for i in range(30)]
    shuffled = records[:]
    random.Random(1).shuffle(shuffled)
    assert rank_records(records, top_n=None) == rank_records(shuffled, top_n=None)


def test_top_n_per_direction():
    records = [make_record(f"U{i}", float(i), method=FCS, direction=UP) for i in range(5)]
    records += [make_record(f"D{i}", -float(i), method=FCS, direction=DOWN) for i in range(5)]

    ranked = rank_records(records, top_n=2)
    assert [r.set_id for r in ranked] == ['U4', 'U3', 'D4', 'D3']

    assert len(rank_records(records, top_n=None)) == 10
    assert len(rank_records(records, top_n=100)) == 10


@pytest.mark.parametrize('top_n', [0, -3])
def test_top_n_must_be_positive(top_n):
    with pytest.raises(ValueError):
        rank_records([make_record('A', 1.0)], top_n=top_n)


def test_nan_scores_sort_last():
    records = [make_record('NAN', float('nan')), make_record('A', 1.0)]
    assert [r.set_id for r in rank_records(records)] == ['A', 'NAN']


def test_records_to_frame():
    frame = records_to_frame([make_record('A', 1.5, genes=['TP53', 'MDM2'])])
    assert frame.height == 1
    assert frame['genes'][0] == 'TP53/MDM2'
    assert frame['enrichment_score'][0] == 1.5
    assert frame.schema['overlap'] == pl.Int64


def test_records_to_frame_empty():
    frame = records_to_frame([])
    assert frame.height == 0
    assert 'set_id' in frame.columns
    assert 'padj' in frame.columns
