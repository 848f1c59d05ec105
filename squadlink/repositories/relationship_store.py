"""Repository for friendship edges, the authoritative relationship state.

Every state change is a single conditional SQL statement keyed by the pair
or edge id together with the status it expects to find, so two callers
racing on the same relationship cannot both succeed:

* create - ``INSERT`` guarded by the ``uq_friendship_pair`` unique
  constraint, or ``UPDATE ... WHERE status = 'declined'`` for a re-request.
* resolve - ``UPDATE ... WHERE status = 'pending' AND recipient_id = :actor``.
* cancel - ``DELETE ... WHERE status = 'pending' AND requester_id = :actor``,
  recording the id in ``cancelled_friendships`` in the same transaction.

When the conditional statement matches no row, the store re-reads the edge
only to report *why*: :class:`~squadlink.errors.NotFound`,
:class:`~squadlink.errors.Conflict` or :class:`~squadlink.errors.Forbidden`.
"""
from typing import Iterator, Optional

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import IntegrityError

from ..database import CancelledFriendshipRecord, FriendshipRecord, new_id, utcnow
from ..errors import Conflict, Forbidden, NotFound
from ..models import EdgeStatus, FriendshipEdge, canonical_pair
from .base import BaseRepository


def _to_edge(row: FriendshipRecord) -> FriendshipEdge:
    return FriendshipEdge(
        id=row.id,
        requester_id=row.requester_id,
        recipient_id=row.recipient_id,
        status=EdgeStatus(row.status),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class EdgeListing:
    """Lazy, restartable sequence of one user's edges, newest first.

    Nothing is read until iteration starts, and every new iteration runs the
    query again, so a listing taken before a transition reflects it when
    iterated afterwards.
    """

    def __init__(self, store: 'RelationshipStore', user_id: str,
                 status: Optional[EdgeStatus] = None) -> None:
        self._store = store
        self._user_id = user_id
        self._status = status

    def __iter__(self) -> Iterator[FriendshipEdge]:
        return self._store._iter_edges(self._user_id, self._status)

    def __repr__(self):
        return f"EdgeListing(user_id={self._user_id!r}, status={self._status})"


class RelationshipStore(BaseRepository):
    """Holds friendship edges and performs every state change atomically.

    Schema (table ``friendships``)::

        id            <uuid str>, primary key
        user_low_id   \\ the unordered pair, low < high,
        user_high_id  /  unique together
        requester_id  <profile id>
        recipient_id  <profile id>
        status        'pending' | 'accepted' | 'declined'
        created_at    <naive UTC datetime>
        updated_at    <naive UTC datetime>
    """

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_edge(self, user_a: str, user_b: str) -> Optional[FriendshipEdge]:
        """Return the edge between *user_a* and *user_b*, or ``None``."""
        if user_a == user_b:
            return None
        low, high = canonical_pair(user_a, user_b)
        with self._session() as db:
            row = self._row_for_pair(db, low, high)
            return _to_edge(row) if row is not None else None

    def get_edge(self, edge_id: str) -> Optional[FriendshipEdge]:
        """Return the edge with id *edge_id*, or ``None``."""
        with self._session() as db:
            row = db.get(FriendshipRecord, edge_id)
            return _to_edge(row) if row is not None else None

    def list_edges_for_user(self, user_id: str,
                            status: Optional[EdgeStatus] = None) -> EdgeListing:
        """All edges where *user_id* is requester or recipient.

        Args:
            user_id: Profile whose edges to list.
            status:  Restrict to one status; ``None`` lists every status.

        Returns:
            An :class:`EdgeListing` ordered by ``updated_at`` descending.
        """
        return EdgeListing(self, user_id, EdgeStatus(status) if status else None)

    # ------------------------------------------------------------------
    # Atomic state changes
    # ------------------------------------------------------------------

    def create_pending(self, requester_id: str,
                       recipient_id: str) -> FriendshipEdge:
        """Create a pending edge, or revive the pair's declined edge.

        A declined edge keeps its id; requester, recipient, status and both
        timestamps are rewritten in the same conditional update that checks
        it is still declined.

        Raises:
            ValueError: *requester_id* equals *recipient_id*.
            Conflict:   The pair already has a pending or accepted edge.
                        ``exc.edge`` holds that edge.
        """
        if requester_id == recipient_id:
            raise ValueError('requester and recipient must differ')
        low, high = canonical_pair(requester_id, recipient_id)

        existing = None
        # A second pass only happens when the pair's edge was declined or
        # cancelled between the revive and the insert statements.
        for _attempt in range(2):
            with self._session() as db:
                revived = self._revive_declined(db, low, high,
                                                requester_id, recipient_id)
            if revived is not None:
                self._log.info("Re-requested edge %s: %s -> %s",
                               revived.id, requester_id, recipient_id)
                return revived

            try:
                with self._session() as db:
                    now = utcnow()
                    row = FriendshipRecord(
                        id=new_id(),
                        user_low_id=low,
                        user_high_id=high,
                        requester_id=requester_id,
                        recipient_id=recipient_id,
                        status=EdgeStatus.PENDING.value,
                        created_at=now,
                        updated_at=now,
                    )
                    db.add(row)
                    db.flush()
                    edge = _to_edge(row)
            except IntegrityError:
                existing = self.find_edge(requester_id, recipient_id)
                if existing is not None and existing.status is not EdgeStatus.DECLINED:
                    self._log.debug("Pair %s/%s already has edge %s (%s)",
                                    low, high, existing.id, existing.status.value)
                    raise Conflict(edge=existing)
                continue
            self._log.info("Created pending edge %s: %s -> %s",
                           edge.id, requester_id, recipient_id)
            return edge

        raise Conflict(edge=existing)

    def transition(self, edge_id: str, acting_user: str,
                   target_status) -> FriendshipEdge:
        """Resolve a pending edge to ``accepted`` or ``declined``.

        Only the edge's recipient may resolve it.

        Raises:
            ValueError: *target_status* is not accepted/declined.
            NotFound:   No edge ever had id *edge_id*.
            Conflict:   The edge is no longer pending or was cancelled.
            Forbidden:  *acting_user* is not the edge's recipient.
        """
        target = EdgeStatus(target_status)
        if target is EdgeStatus.PENDING:
            raise ValueError('a pending edge can only be resolved to accepted or declined')

        with self._session() as db:
            result = db.execute(
                update(FriendshipRecord)
                .where(FriendshipRecord.id == edge_id,
                       FriendshipRecord.status == EdgeStatus.PENDING.value,
                       FriendshipRecord.recipient_id == acting_user)
                .values(status=target.value, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                self._raise_for_failed_write(db, edge_id, acting_user,
                                             authorized='recipient_id')
            edge = _to_edge(db.get(FriendshipRecord, edge_id))

        self._log.info("Edge %s %s by %s", edge.id, target.value, acting_user)
        return edge

    def cancel(self, edge_id: str, acting_user: str) -> None:
        """Delete a pending edge on behalf of its requester.

        Raises:
            NotFound:  No edge ever had id *edge_id*.
            Conflict:  The edge is no longer pending or was already cancelled.
            Forbidden: *acting_user* is not the edge's requester.
        """
        with self._session() as db:
            result = db.execute(
                delete(FriendshipRecord)
                .where(FriendshipRecord.id == edge_id,
                       FriendshipRecord.status == EdgeStatus.PENDING.value,
                       FriendshipRecord.requester_id == acting_user)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                self._raise_for_failed_write(db, edge_id, acting_user,
                                             authorized='requester_id')
            db.add(CancelledFriendshipRecord(id=edge_id, requester_id=acting_user,
                                             cancelled_at=utcnow()))
        self._log.info("Edge %s cancelled by %s", edge_id, acting_user)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _row_for_pair(db, low: str, high: str) -> Optional[FriendshipRecord]:
        return db.execute(
            select(FriendshipRecord)
            .where(FriendshipRecord.user_low_id == low,
                   FriendshipRecord.user_high_id == high)
        ).scalar_one_or_none()

    def _revive_declined(self, db, low: str, high: str, requester_id: str,
                         recipient_id: str) -> Optional[FriendshipEdge]:
        now = utcnow()
        result = db.execute(
            update(FriendshipRecord)
            .where(FriendshipRecord.user_low_id == low,
                   FriendshipRecord.user_high_id == high,
                   FriendshipRecord.status == EdgeStatus.DECLINED.value)
            .values(requester_id=requester_id,
                    recipient_id=recipient_id,
                    status=EdgeStatus.PENDING.value,
                    created_at=now,
                    updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None
        return _to_edge(self._row_for_pair(db, low, high))

    def _raise_for_failed_write(self, db, edge_id: str, acting_user: str,
                                authorized: str) -> None:
        row = db.get(FriendshipRecord, edge_id)
        if row is None:
            if db.get(CancelledFriendshipRecord, edge_id) is not None:
                self._log.info("Edge %s was cancelled; %s lost the race",
                               edge_id, acting_user)
                raise Conflict('This request was cancelled.')
            raise NotFound()
        edge = _to_edge(row)
        if edge.is_pending and getattr(edge, authorized) != acting_user:
            raise Forbidden(edge=edge)
        self._log.info("Edge %s already resolved (%s); %s lost the race",
                       edge.id, edge.status.value, acting_user)
        raise Conflict(edge=edge)

    def _iter_edges(self, user_id: str,
                    status: Optional[EdgeStatus]) -> Iterator[FriendshipEdge]:
        stmt = (
            select(FriendshipRecord)
            .where(or_(FriendshipRecord.requester_id == user_id,
                       FriendshipRecord.recipient_id == user_id))
            .order_by(FriendshipRecord.updated_at.desc(), FriendshipRecord.id)
        )
        if status is not None:
            stmt = stmt.where(FriendshipRecord.status == status.value)
        with self._session() as db:
            for row in db.scalars(stmt):
                yield _to_edge(row)
