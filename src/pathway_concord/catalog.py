"""
Gene-set catalog for the pathway comparison pipeline.

A catalog maps gene-set identifiers to :class:`GeneSet` values and is never
mutated after construction. Adding the synthetic ``background`` entry returns
a new catalog, so every tester sees the universe it was built for.
"""

import logging
from collections import abc
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, Iterator, List, Mapping, Optional, Tuple

import polars as pl

from pathway_concord.exceptions import MalformedCatalogError

BACKGROUND_SET_ID = "background"

logger = logging.getLogger(__name__)


def normalise_gene(gene: str) -> str:
    """Case-normalise a gene symbol."""
    return gene.strip().upper()


@dataclass(frozen=True)
class GeneSet:
    """A named gene set with ordered, unique, upper-case members."""

    identifier: str
    members: Tuple[str, ...]

    def __post_init__(self):
        if not self.members:
            raise MalformedCatalogError(f"Gene set '{self.identifier}' has no members")
        unique = tuple(dict.fromkeys(normalise_gene(g) for g in self.members))
        object.__setattr__(self, "members", unique)

    @property
    def member_set(self) -> FrozenSet[str]:
        return frozenset(self.members)

    def __len__(self) -> int:
        return len(self.members)


class GeneCatalog(abc.Mapping):
    """Read-only mapping of gene-set identifier to :class:`GeneSet`."""

    def __init__(self, gene_sets: Iterable[GeneSet] = ()):
        sets: Dict[str, GeneSet] = {}
        for gene_set in gene_sets:
            sets[gene_set.identifier] = gene_set
        self._sets = MappingProxyType(sets)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Iterable[str]]) -> "GeneCatalog":
        """Build a catalog from ``{term: [genes]}``."""
        return cls(GeneSet(term, tuple(genes)) for term, genes in mapping.items())

    @classmethod
    def from_frame(
        cls,
        df: pl.DataFrame,
        term_col: str = "term",
        gene_col: str = "gene"
    ) -> "GeneCatalog":
        """
        Group a flat (term, gene) table into a catalog.

        Args:
            df: DataFrame with one row per (term, gene) pair, in any order
            term_col: Name of the term column
            gene_col: Name of the gene column

        Returns:
            GeneCatalog with one entry per distinct term

        Raises:
            MalformedCatalogError: if a column is absent or any row lacks a
                term or gene
        """
        missing = [col for col in (term_col, gene_col) if col not in df.columns]
        if missing:
            raise MalformedCatalogError(f"Gene-set table is missing columns: {', '.join(missing)}")

        grouped: Dict[str, List[str]] = {}
        for row_number, (term, gene) in enumerate(
            zip(df[term_col].to_list(), df[gene_col].to_list()), start=1
        ):
            if term is None or gene is None or not str(term).strip() or not str(gene).strip():
                raise MalformedCatalogError(
                    f"Gene-set table row {row_number} is missing a term or gene: ({term!r}, {gene!r})"
                )
            grouped.setdefault(str(term).strip(), []).append(str(gene))

        catalog = cls.from_mapping(grouped)
        logger.debug(f"Grouped {df.height} rows into {len(catalog)} gene sets")
        return catalog

    def __getitem__(self, set_id: str) -> GeneSet:
        return self._sets[set_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._sets)

    def __len__(self) -> int:
        return len(self._sets)

    def __repr__(self) -> str:
        return f"GeneCatalog({len(self)} gene sets)"

    @property
    def background(self) -> Optional[FrozenSet[str]]:
        """Members of the background entry, or None before augmentation."""
        if BACKGROUND_SET_ID not in self._sets:
            return None
        return self._sets[BACKGROUND_SET_ID].member_set

    def tested_ids(self) -> List[str]:
        """Identifiers of every gene set except the background entry."""
        return [set_id for set_id in self._sets if set_id != BACKGROUND_SET_ID]

    def matched_members(self, set_id: str, genes: FrozenSet[str]) -> FrozenSet[str]:
        """Members of ``set_id`` that are also in ``genes``."""
        return self._sets[set_id].member_set & genes

    def augment_with_background(self, universe: Iterable[str]) -> "GeneCatalog":
        """
        Return a new catalog whose ``background`` entry is exactly ``universe``.

        Any existing background entry is replaced. The receiver is left
        untouched.
        """
        background = GeneSet(BACKGROUND_SET_ID, tuple(sorted(normalise_gene(g) for g in universe)))
        sets = [gs for set_id, gs in self._sets.items() if set_id != BACKGROUND_SET_ID]
        sets.append(background)
        logger.info(f"Augmented catalog with a background entry of {len(background)} genes")
        return GeneCatalog(sets)

    def restricted_to(self, genes: FrozenSet[str]) -> "GeneCatalog":
        """Return a catalog with members outside ``genes`` removed; emptied sets are dropped."""
        kept = []
        for set_id, gene_set in self._sets.items():
            members = tuple(g for g in gene_set.members if g in genes)
            if members:
                kept.append(GeneSet(set_id, members))
        return GeneCatalog(kept)
