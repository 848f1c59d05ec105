"""Business logic for the friends dashboard (accepted / incoming / outgoing)."""
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..models import FriendshipEdge, Profile, Relation, relation_for

PRESENCE_FILTERS = ('online', 'offline')


@dataclass
class AcceptedFriends:
    """Accepted friends split by presence as read at request time."""

    online: List[Profile] = field(default_factory=list)
    offline: List[Profile] = field(default_factory=list)

    @property
    def all(self) -> List[Profile]:
        return self.online + self.offline

    def __len__(self) -> int:
        return len(self.online) + len(self.offline)

    def to_dict(self) -> dict:
        return {
            'online': [p.to_dict() for p in self.online],
            'offline': [p.to_dict() for p in self.offline],
        }


@dataclass(frozen=True)
class PendingRequest:
    """A pending edge paired with the profile on the other end of it."""

    edge: FriendshipEdge
    profile: Profile

    def to_dict(self) -> dict:
        return {'edge': self.edge.to_dict(), 'profile': self.profile.to_dict()}


class RelationshipView:
    """Classifies one user's edges into the buckets a friends page needs.

    Nothing here is stored: every call lists the user's edges from the store
    and reads presence fresh from the profile lookup, and all counts are
    computed from those lists.

    Rules
    -----
    * Accepted edges become friends, split into ``online`` and ``offline``
      and sorted by username within each half.
    * Pending edges go to ``incoming`` when the user is the recipient and to
      ``outgoing`` when the user is the requester, newest first.
    * Declined edges are not shown.
    * An edge whose other party has no profile is skipped.
    """

    def __init__(self, store, profiles) -> None:
        """
        Args:
            store:    Object exposing ``list_edges_for_user``.
            profiles: Profile lookup exposing ``get_many``.
        """
        self._store = store
        self._profiles = profiles

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def accepted(self, user_id: str, query: Optional[str] = None,
                 presence: Optional[str] = None) -> AcceptedFriends:
        """Return *user_id*'s friends, optionally filtered.

        Args:
            user_id:  Whose friends to list.
            query:    Case-insensitive substring matched against username
                      and display name.
            presence: ``'online'`` or ``'offline'`` to keep only that half.

        Raises:
            ValueError: *presence* is not a known filter.
        """
        _check_presence(presence)
        buckets = self._classify(user_id)
        return filter_accepted(_split_by_presence(buckets[Relation.FRIENDS]),
                               query=query, presence=presence)

    def incoming_pending(self, user_id: str) -> List[PendingRequest]:
        """Pending requests waiting for *user_id* to accept or decline."""
        return self._classify(user_id)[Relation.INCOMING_PENDING]

    def outgoing_pending(self, user_id: str) -> List[PendingRequest]:
        """Pending requests *user_id* sent that are still unanswered."""
        return self._classify(user_id)[Relation.OUTGOING_PENDING]

    def stats(self, user_id: str) -> Dict[str, int]:
        """Derived bucket counts for *user_id*."""
        return _counts(self._classify(user_id))

    def dashboard(self, user_id: str) -> dict:
        """All three buckets plus their counts from a single edge listing."""
        buckets = self._classify(user_id)
        friends = _split_by_presence(buckets[Relation.FRIENDS])
        return {
            'accepted': friends,
            'incoming': buckets[Relation.INCOMING_PENDING],
            'outgoing': buckets[Relation.OUTGOING_PENDING],
            'counts': _counts(buckets),
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _classify(self, user_id: str) -> dict:
        edges = list(self._store.list_edges_for_user(user_id))
        profiles = self._profiles.get_many(e.other_party(user_id) for e in edges)
        buckets = {
            Relation.FRIENDS: [],
            Relation.INCOMING_PENDING: [],
            Relation.OUTGOING_PENDING: [],
        }
        for edge in edges:
            relation = relation_for(edge, user_id)
            if relation not in buckets:
                continue
            profile = profiles.get(edge.other_party(user_id))
            if profile is None:
                continue
            if relation is Relation.FRIENDS:
                buckets[relation].append(profile)
            else:
                buckets[relation].append(PendingRequest(edge, profile))
        return buckets


def filter_accepted(friends: AcceptedFriends, query: Optional[str] = None,
                    presence: Optional[str] = None) -> AcceptedFriends:
    """Narrow an already-read :class:`AcceptedFriends` without another query.

    Raises:
        ValueError: *presence* is not a known filter.
    """
    _check_presence(presence)
    result = _split_by_presence(_filter_by_name(friends.all, query))
    if presence == 'online':
        result.offline = []
    elif presence == 'offline':
        result.online = []
    return result


def _check_presence(presence: Optional[str]) -> None:
    if presence is not None and presence not in PRESENCE_FILTERS:
        raise ValueError(f'presence must be one of {PRESENCE_FILTERS}')


def _filter_by_name(friends: List[Profile], query: Optional[str]) -> List[Profile]:
    needle = (query or '').strip().lower()
    if not needle:
        return friends
    return [p for p in friends
            if needle in p.username.lower()
            or needle in (p.display_name or '').lower()]


def _split_by_presence(friends: List[Profile]) -> AcceptedFriends:
    ordered = sorted(friends, key=lambda p: p.username.lower())
    return AcceptedFriends(
        online=[p for p in ordered if p.online],
        offline=[p for p in ordered if not p.online],
    )


def _counts(buckets: dict) -> Dict[str, int]:
    friends = buckets[Relation.FRIENDS]
    online = sum(1 for p in friends if p.online)
    return {
        'total': len(friends),
        'online': online,
        'offline': len(friends) - online,
        'incoming': len(buckets[Relation.INCOMING_PENDING]),
        'outgoing': len(buckets[Relation.OUTGOING_PENDING]),
    }
