"""
Client-local mirror of the order collections.

The cache is fed from two directions: the Reconciler overwrites it with
the authoritative remote state, and the service applies optimistic local
mutations right after a successful write so the screen does not wait for
the next poll. Remote state always wins. An optimistic change that the
next refresh contradicts is silently replaced; no conflict is reported.

The cache belongs to one client process and is mutated only through
apply_remote and apply_local_optimistic. Readers get immutable snapshots.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict

from ledger.domain import DeletedOrderRecord, OrderRecord

logger = logging.getLogger(__name__)


class ProjectionSnapshot(BaseModel):
    """Immutable view of the cache at one revision."""

    model_config = ConfigDict(frozen=True)

    active: Tuple[OrderRecord, ...] = ()
    deleted: Tuple[DeletedOrderRecord, ...] = ()
    revision: int = 0
    refreshed_at: Optional[datetime] = None


Mutation = Callable[[List[OrderRecord], List[DeletedOrderRecord]], None]
Listener = Callable[[ProjectionSnapshot], None]


class ProjectionCache:
    """Last known active and deleted collections plus a local revision.

    The revision is a local counter, unrelated to store revisions. It goes
    up by exactly one on every apply_remote and apply_local_optimistic.
    """

    def __init__(self) -> None:
        self._snapshot = ProjectionSnapshot()
        self._listeners: List[Listener] = []

    @property
    def revision(self) -> int:
        return self._snapshot.revision

    def snapshot(self) -> ProjectionSnapshot:
        return self._snapshot

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener`` with every new snapshot.

        Returns:
            A function that removes the listener. Calling it twice is safe.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self, snapshot: ProjectionSnapshot) -> None:
        self._snapshot = snapshot
        for listener in list(self._listeners):
            listener(snapshot)

    def apply_remote(
        self,
        active: Sequence[OrderRecord],
        deleted: Optional[Sequence[DeletedOrderRecord]] = None,
    ) -> ProjectionSnapshot:
        """Overwrite the cache with state fetched from the store.

        Args:
            active: The complete active collection
            deleted: The complete deleted collection, or None to keep the
                cached one
        """
        current = self._snapshot
        snapshot = ProjectionSnapshot(
            active=tuple(active),
            deleted=(
                tuple(deleted) if deleted is not None else current.deleted
            ),
            revision=current.revision + 1,
            refreshed_at=datetime.now(timezone.utc),
        )
        logger.debug(
            "Projection refreshed from store",
            extra={
                "revision": snapshot.revision,
                "active_count": len(snapshot.active),
                "deleted_count": len(snapshot.deleted),
            },
        )
        self._publish(snapshot)
        return snapshot

    def apply_local_optimistic(self, mutation: Mutation) -> ProjectionSnapshot:
        """Apply a local change before the store confirms it.

        ``mutation`` receives fresh list copies of the active and deleted
        collections and edits them in place. If it raises, the cache is
        left untouched.
        """
        current = self._snapshot
        active = list(current.active)
        deleted = list(current.deleted)
        mutation(active, deleted)
        snapshot = ProjectionSnapshot(
            active=tuple(active),
            deleted=tuple(deleted),
            revision=current.revision + 1,
            refreshed_at=current.refreshed_at,
        )
        logger.debug(
            "Optimistic change applied to projection",
            extra={
                "revision": snapshot.revision,
                "active_count": len(snapshot.active),
                "deleted_count": len(snapshot.deleted),
            },
        )
        self._publish(snapshot)
        return snapshot


def optimistic_create(order: OrderRecord) -> Mutation:
    def mutation(
        active: List[OrderRecord], deleted: List[DeletedOrderRecord]
    ) -> None:
        active[:] = [o for o in active if o.id != order.id]
        active.append(order)

    return mutation


def optimistic_update(order: OrderRecord) -> Mutation:
    def mutation(
        active: List[OrderRecord], deleted: List[DeletedOrderRecord]
    ) -> None:
        for index, existing in enumerate(active):
            if existing.id == order.id:
                active[index] = order
                return
        # Not cached yet; the next refresh decides where it belongs.
        active.append(order)

    return mutation


def optimistic_archive(archived: DeletedOrderRecord) -> Mutation:
    def mutation(
        active: List[OrderRecord], deleted: List[DeletedOrderRecord]
    ) -> None:
        active[:] = [o for o in active if o.id != archived.id]
        if all(d.id != archived.id for d in deleted):
            deleted.append(archived)

    return mutation
