"""
PropertyMappingRepository -- accounting listing names to property ids.

Responsibility:
    Exact lookups against stored ``PropertyMapping`` rows, reverse lookups,
    and fuzzy suggestions (normalized Levenshtein similarity) for names
    that have no mapping yet.  Suggestions are never applied automatically.

Architecture position:
    Services.  Used by the expense collector and the upload service.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from statement_engines.similarity import best_match
from statement_kernel.domain.policy import ListingInfo
from statement_kernel.logging_config import get_logger
from statement_kernel.models.property_mapping import PropertyMapping, normalize_external_name

logger = get_logger("services.property_mapping")

DEFAULT_SUGGESTION_THRESHOLD = 0.5


class PropertyMappingRepository:
    """Cached (provider, external name) -> property id mappings."""

    def __init__(self, session: Session, provider: str = "accounting"):
        self.session = session
        self.provider = provider
        self._by_name: dict[str, int] | None = None

    def reload(self) -> None:
        rows = self.session.execute(
            select(PropertyMapping).where(PropertyMapping.provider == self.provider)
        ).scalars().all()
        self._by_name = {row.external_name: row.property_id for row in rows}

    def _mappings(self) -> dict[str, int]:
        if self._by_name is None:
            self.reload()
        return self._by_name

    def lookup(self, external_name: str | None) -> int | None:
        if not external_name:
            return None
        return self._mappings().get(normalize_external_name(external_name))

    def reverse_lookup(self, property_id: int) -> tuple[str, ...]:
        return tuple(sorted(
            name for name, pid in self._mappings().items() if pid == property_id
        ))

    def add(self, external_name: str, property_id: int, actor_id: UUID) -> None:
        """Store (or repoint) a mapping.  Caller owns the transaction."""
        key = normalize_external_name(external_name)
        row = self.session.execute(
            select(PropertyMapping).where(
                PropertyMapping.provider == self.provider,
                PropertyMapping.external_name == key,
            )
        ).scalar_one_or_none()
        if row is None:
            self.session.add(PropertyMapping(
                provider=self.provider,
                external_name=key,
                property_id=property_id,
                created_by_id=actor_id,
            ))
        else:
            row.property_id = property_id
            row.touch(actor_id)
        self.session.flush()
        self._mappings()[key] = property_id
        logger.info(
            "property_mapping_saved",
            extra={"provider": self.provider, "external_name": key, "listing_id": property_id},
        )

    def suggest(
        self,
        external_name: str,
        listings: list[ListingInfo],
        threshold: float = DEFAULT_SUGGESTION_THRESHOLD,
    ) -> tuple[ListingInfo, float] | None:
        """Best listing whose name, display name or nickname resembles ``external_name``."""
        candidates = []
        for info in listings:
            for label in (info.name, info.display_name, info.nickname):
                if label:
                    candidates.append((label, info))
        return best_match(external_name, candidates, threshold)
