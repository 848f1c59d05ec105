"""Business logic for the friend request lifecycle."""
import logging
from typing import Optional

from ..errors import (
    AlreadyFriends, AlreadyIncoming, Conflict, DuplicateRequest, Forbidden,
    InvalidSelfRequest, NotFound,
)
from ..models import EdgeStatus, FriendshipEdge

logger = logging.getLogger('squadlink.services.resolver')


class RequestResolver:
    """The only entry point clients use to change a relationship.

    Validates the request, performs the transition through the
    :class:`~squadlink.repositories.RelationshipStore`, and turns the store's
    mechanical ``Conflict``/``Forbidden`` outcomes into precise, user-facing
    errors.  Nothing is retried: a lost race is reported to the caller.
    """

    def __init__(self, store, profiles=None) -> None:
        """
        Args:
            store:    A ``RelationshipStore`` (or any object exposing
                      ``create_pending``, ``transition``, ``cancel`` and
                      ``get_edge``).
            profiles: Optional profile lookup exposing ``get``; when given,
                      requests to unknown users fail with ``NotFound``.
        """
        self._store = store
        self._profiles = profiles

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def send_request(self, actor: str, target: str) -> FriendshipEdge:
        """Send a friend request from *actor* to *target*.

        Returns:
            The new (or revived) pending edge.

        Raises:
            InvalidSelfRequest: *actor* and *target* are the same user.
            NotFound:           *target* is not a known profile.
            AlreadyIncoming:    *target* already sent *actor* a pending
                                request; *actor* should accept it instead.
            AlreadyFriends:     The pair is already friends.
            DuplicateRequest:   Any other existing edge for the pair.
        """
        if actor == target:
            raise InvalidSelfRequest()
        if self._profiles is not None and self._profiles.get(target) is None:
            raise NotFound('No such user.', code='user-not-found')
        try:
            return self._store.create_pending(actor, target)
        except Conflict as exc:
            outcome = self._classify_existing(actor, exc.edge)
            logger.info("Friend request %s -> %s rejected: %s",
                        actor, target, outcome.code)
            raise outcome from exc

    def accept_request(self, actor: str, edge_id: str) -> FriendshipEdge:
        """Accept the pending request *edge_id*; only its recipient may."""
        return self._resolve(actor, edge_id, EdgeStatus.ACCEPTED)

    def decline_request(self, actor: str, edge_id: str) -> FriendshipEdge:
        """Decline the pending request *edge_id*; only its recipient may."""
        return self._resolve(actor, edge_id, EdgeStatus.DECLINED)

    def cancel_request(self, actor: str, edge_id: str) -> None:
        """Withdraw the pending request *edge_id*; only its requester may."""
        try:
            self._store.cancel(edge_id, actor)
        except Conflict as exc:
            raise Conflict('This request was already resolved by the other party.',
                           edge=exc.edge) from exc
        except Forbidden as exc:
            raise Forbidden('You did not send this request.',
                            edge=exc.edge, code='not-requester') from exc

    def get_request(self, actor: str, edge_id: str) -> FriendshipEdge:
        """Return edge *edge_id* if *actor* is one of its two parties.

        Raises:
            NotFound: The edge does not exist or *actor* is not a party.
        """
        edge = self._store.get_edge(edge_id)
        if edge is None or not edge.involves(actor):
            raise NotFound()
        return edge

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _resolve(self, actor: str, edge_id: str,
                 status: EdgeStatus) -> FriendshipEdge:
        try:
            return self._store.transition(edge_id, actor, status)
        except Conflict as exc:
            raise Conflict('This request was already resolved by the other party.',
                           edge=exc.edge) from exc
        except Forbidden as exc:
            raise Forbidden('You are not the recipient of this request.',
                            edge=exc.edge, code='not-recipient') from exc

    @staticmethod
    def _classify_existing(actor: str, edge: Optional[FriendshipEdge]):
        if edge is not None and edge.is_pending and edge.recipient_id == actor:
            return AlreadyIncoming(edge=edge)
        if edge is not None and edge.status is EdgeStatus.ACCEPTED:
            return AlreadyFriends(edge=edge)
        return DuplicateRequest(edge=edge)
