"""
ListingRepository -- read-only access to listing and group configuration.

Responsibility:
    Loads ``Listing`` / ``ListingGroup`` rows once and serves frozen
    ``ListingInfo`` / ``ListingGroupInfo`` views by id, owner, tag, group or
    parent.  The repository is an explicitly constructed object: its cache
    lives on the instance and is refreshed only by ``reload()``.

Architecture position:
    Kernel > Services.  Consumed by the policy resolver, the expense
    collector (child listings) and the batch driver (target selection).

Invariants enforced:
    - Never mutates listing rows.
    - No module-level state: two repositories never share a cache.
    - Inactive listings are hidden unless ``include_inactive=True``.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from statement_kernel.domain.policy import ListingGroupInfo, ListingInfo
from statement_kernel.domain.tags import has_tag
from statement_kernel.logging_config import get_logger
from statement_kernel.models.listing import Listing, ListingGroup

logger = get_logger("services.listing_repository")


class ListingRepository:
    """Cached, read-only listing configuration.

    Contract:
        ``reload()`` re-reads every listing and group from the session.
        Lookups before the first ``reload()`` trigger it lazily.

    Non-goals:
        Administrative edits; those go through the ORM directly and
        callers reload afterwards.
    """

    def __init__(self, session: Session):
        self.session = session
        self._listings: dict[int, ListingInfo] | None = None
        self._groups: dict[int, ListingGroupInfo] = {}

    def reload(self) -> None:
        listings = self.session.execute(select(Listing)).scalars().all()
        groups = self.session.execute(
            select(ListingGroup).options(selectinload(ListingGroup.listings))
        ).scalars().all()
        self._listings = {row.id: row.to_dto() for row in listings}
        self._groups = {row.id: row.to_dto() for row in groups}
        logger.debug(
            "listing_repository_reloaded",
            extra={"listing_count": len(self._listings), "group_count": len(self._groups)},
        )

    def _all(self) -> dict[int, ListingInfo]:
        if self._listings is None:
            self.reload()
        return self._listings

    def get(self, listing_id: int) -> ListingInfo | None:
        return self._all().get(listing_id)

    def get_group(self, group_id: int) -> ListingGroupInfo | None:
        self._all()
        return self._groups.get(group_id)

    def list_all(self, include_inactive: bool = False) -> list[ListingInfo]:
        return [
            info for _, info in sorted(self._all().items())
            if include_inactive or info.is_active
        ]

    def list_by_owner(self, owner_id: int, include_inactive: bool = False) -> list[ListingInfo]:
        return [
            info for info in self.list_all(include_inactive)
            if info.owner_id == owner_id
        ]

    def list_by_tag(
        self,
        tag: str,
        owner_id: int | None = None,
        include_inactive: bool = False,
    ) -> list[ListingInfo]:
        return [
            info for info in self.list_all(include_inactive)
            if has_tag(info.tags, tag) and (owner_id is None or info.owner_id == owner_id)
        ]

    def list_by_group(self, group_id: int, include_inactive: bool = False) -> list[ListingInfo]:
        return [
            info for info in self.list_all(include_inactive)
            if info.group_id == group_id
        ]

    def children_of(self, listing_id: int) -> list[ListingInfo]:
        """Listings whose ``parent_listing_id`` is ``listing_id`` (active or not)."""
        return [
            info for info in self.list_all(include_inactive=True)
            if info.parent_listing_id == listing_id
        ]
