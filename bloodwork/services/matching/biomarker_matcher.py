"""Catalog matching for extracted biomarker names.

Rules are tried in a fixed order, and each rule is evaluated against the
whole catalog before the next one runs:

1. case-insensitive exact name
2. case-insensitive exact alias
3. medical synonym groups

There is no edit-distance matching. When several entries satisfy the same
rule, the one with the smallest ``(name.lower(), id)`` wins, so the result
does not depend on catalog order.
"""

from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Sequence, Tuple
from uuid import UUID

from bloodwork.utils.logging import get_logger

LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class CatalogEntry:
    """Detached view of a catalog biomarker."""
    id: UUID
    name: str
    category: str = "other"
    aliases: Tuple[str, ...] = field(default_factory=tuple)
    unit: Optional[str] = None
    optimal_min: Optional[float] = None
    optimal_max: Optional[float] = None

    @classmethod
    def from_model(cls, biomarker: Any) -> "CatalogEntry":
        return cls(
            id=biomarker.id,
            name=biomarker.name,
            category=biomarker.category or "other",
            aliases=tuple(biomarker.aliases or ()),
            unit=biomarker.unit,
            optimal_min=biomarker.optimal_min,
            optimal_max=biomarker.optimal_max,
        )


@dataclass(frozen=True)
class SynonymGroup:
    """Extracted names containing any ``extracted_terms`` match catalog
    names containing any ``catalog_terms``."""
    extracted_terms: Tuple[str, ...]
    catalog_terms: Tuple[str, ...]


MEDICAL_SYNONYMS: Tuple[SynonymGroup, ...] = (
    SynonymGroup(("vitamin d", "25-oh-d", "25(oh)d"), ("25-hydroxyvitamin",)),
    SynonymGroup(("b12", "cobalamin", "cyanocobalamin"), ("vitamin b12", "cobalamin")),
    SynonymGroup(("tsh", "thyroid stimulating"), ("tsh", "thyroid stimulating")),
    SynonymGroup(("free t4", "ft4"), ("free t4", "thyroxine")),
    SynonymGroup(("free t3", "ft3"), ("free t3", "triiodothyronine")),
    SynonymGroup(("hba1c", "a1c", "glycated hemoglobin"), ("hemoglobin a1c",)),
    SynonymGroup(("crp", "c-reactive protein"), ("c-reactive protein",)),
)


def _sort_key(entry: CatalogEntry) -> Tuple[str, str]:
    return (entry.name.lower(), str(entry.id))


def _first(candidates: Iterable[CatalogEntry]) -> Optional[CatalogEntry]:
    ordered = sorted(candidates, key=_sort_key)
    return ordered[0] if ordered else None


class BiomarkerMatcher:
    """Match extracted names against the biomarker catalog."""

    def __init__(self, synonyms: Sequence[SynonymGroup] = MEDICAL_SYNONYMS):
        self.synonyms = tuple(synonyms)

    def match(self, extracted_name: str, catalog: Sequence[CatalogEntry]) -> Optional[CatalogEntry]:
        """Return the catalog entry for ``extracted_name`` or None."""
        name = (extracted_name or "").strip().lower()
        if not name or not catalog:
            return None

        exact = _first(entry for entry in catalog if entry.name.strip().lower() == name)
        if exact is not None:
            return exact

        alias = _first(
            entry for entry in catalog
            if any(a.strip().lower() == name for a in entry.aliases)
        )
        if alias is not None:
            return alias

        for group in self.synonyms:
            if not any(term in name for term in group.extracted_terms):
                continue
            synonym = _first(
                entry for entry in catalog
                if any(term in entry.name.lower() for term in group.catalog_terms)
            )
            if synonym is not None:
                LOGGER.debug(
                    "Matched biomarker via synonym table",
                    extra={"extracted_name": extracted_name, "catalog_name": synonym.name},
                )
                return synonym

        return None
