"""
Agreement between ORA and FCS significant gene sets.
"""

import logging
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, Optional, Union

from pathway_concord.exceptions import UndefinedJaccardError
from pathway_concord.ranking import EnrichmentRecord

logger = logging.getLogger(__name__)


def jaccard_index(a: Iterable[str], b: Iterable[str], empty_value: Optional[float] = 0.0) -> float:
    """
    Jaccard index |A ∩ B| / |A ∪ B|.

    Args:
        a: First set of gene-set ids
        b: Second set of gene-set ids
        empty_value: Value returned when both sets are empty; None raises instead

    Returns:
        Jaccard index in [0, 1]

    Raises:
        UndefinedJaccardError: if both sets are empty and ``empty_value`` is None
    """
    a = frozenset(a)
    b = frozenset(b)
    shared = len(a & b)
    union = len(a) + len(b) - shared
    if union == 0:
        if empty_value is None:
            raise UndefinedJaccardError("Jaccard index of two empty sets is undefined")
        return float(empty_value)
    return shared / union


@dataclass(frozen=True)
class SetOverlap:
    """Partition of two id sets into their exclusive and shared parts."""

    ora_only: FrozenSet[str]
    fcs_only: FrozenSet[str]
    shared: FrozenSet[str]

    @classmethod
    def of(cls, ora: FrozenSet[str], fcs: FrozenSet[str]) -> "SetOverlap":
        return cls(ora_only=ora - fcs, fcs_only=fcs - ora, shared=ora & fcs)

    @property
    def jaccard(self) -> float:
        return jaccard_index(self.ora_only | self.shared, self.fcs_only | self.shared)

    def counts(self) -> Dict[str, int]:
        return {
            'ora_only': len(self.ora_only),
            'shared': len(self.shared),
            'fcs_only': len(self.fcs_only),
        }


@dataclass(frozen=True)
class ComparisonResult:
    """Set-level agreement of the two methods, per direction and pooled."""

    up: SetOverlap
    down: SetOverlap
    pooled: SetOverlap

    @property
    def jaccard_up(self) -> float:
        return self.up.jaccard

    @property
    def jaccard_down(self) -> float:
        return self.down.jaccard

    @property
    def jaccard_pooled(self) -> float:
        return self.pooled.jaccard

    def to_dict(self) -> Dict:
        result = {}
        for name, overlap in (('up', self.up), ('down', self.down), ('pooled', self.pooled)):
            result[name] = {
                'jaccard': overlap.jaccard,
                **overlap.counts(),
                'ora_only_ids': sorted(overlap.ora_only),
                'shared_ids': sorted(overlap.shared),
                'fcs_only_ids': sorted(overlap.fcs_only),
            }
        return result


def _ids(items: Iterable[Union[EnrichmentRecord, str]]) -> FrozenSet[str]:
    return frozenset(item.set_id if isinstance(item, EnrichmentRecord) else item for item in items)


def compare_results(
    ora_up: Iterable[Union[EnrichmentRecord, str]],
    ora_down: Iterable[Union[EnrichmentRecord, str]],
    fcs_up: Iterable[Union[EnrichmentRecord, str]],
    fcs_down: Iterable[Union[EnrichmentRecord, str]]
) -> ComparisonResult:
    """
    Compare the full significant sets of both methods.

    Args:
        ora_up: Significant ORA records (or ids) for up-regulated genes
        ora_down: Significant ORA records (or ids) for down-regulated genes
        fcs_up: Significant FCS records (or ids) with positive scores
        fcs_down: Significant FCS records (or ids) with negative scores

    Returns:
        ComparisonResult with up, down and pooled overlaps
    """
    ora_up, ora_down = _ids(ora_up), _ids(ora_down)
    fcs_up, fcs_down = _ids(fcs_up), _ids(fcs_down)

    result = ComparisonResult(
        up=SetOverlap.of(ora_up, fcs_up),
        down=SetOverlap.of(ora_down, fcs_down),
        pooled=SetOverlap.of(ora_up | ora_down, fcs_up | fcs_down),
    )
    logger.info(
        f"ORA/FCS agreement: Jaccard up={result.jaccard_up:.3f}, "
        f"down={result.jaccard_down:.3f}, pooled={result.jaccard_pooled:.3f}"
    )
    return result
