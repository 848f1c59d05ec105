"""Domain values shared by repositories and services.

These are plain immutable values, independent of the ORM rows in
:mod:`squadlink.database`. Repositories convert rows into them before
returning, so nothing above the repository layer holds a live session object.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple


class EdgeStatus(str, Enum):
    PENDING = 'pending'
    ACCEPTED = 'accepted'
    DECLINED = 'declined'


class Relation(str, Enum):
    """A profile's relationship to the viewer, as rendered on an action button."""

    NONE = 'none'
    OUTGOING_PENDING = 'outgoing-pending'
    INCOMING_PENDING = 'incoming-pending'
    FRIENDS = 'friends'
    PREVIOUSLY_DECLINED = 'previously-declined'


def canonical_pair(user_a: str, user_b: str) -> Tuple[str, str]:
    """Return the unordered pair ``{user_a, user_b}`` as ``(low, high)``."""
    return (user_a, user_b) if user_a < user_b else (user_b, user_a)


@dataclass(frozen=True)
class Profile:
    """Display metadata for one user, owned by the profile service."""

    id: str
    username: str
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    bio: Optional[str] = None
    online: bool = False

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'username': self.username,
            'display_name': self.display_name,
            'avatar_url': self.avatar_url,
            'bio': self.bio,
            'online': self.online,
        }


@dataclass(frozen=True)
class FriendshipEdge:
    """The single relationship record between two distinct profiles.

    ``requester_id`` is whoever caused the edge to be (re)created and
    ``recipient_id`` is the profile that must act on it while it is pending.
    Both are always present, whatever the status.
    """

    id: str
    requester_id: str
    recipient_id: str
    status: EdgeStatus
    created_at: datetime = field(compare=False)
    updated_at: datetime = field(compare=False)

    def __post_init__(self):
        if self.requester_id == self.recipient_id:
            raise ValueError('a friendship edge needs two distinct profiles')
        if not isinstance(self.status, EdgeStatus):
            object.__setattr__(self, 'status', EdgeStatus(self.status))

    @property
    def pair(self) -> Tuple[str, str]:
        return canonical_pair(self.requester_id, self.recipient_id)

    @property
    def is_pending(self) -> bool:
        return self.status is EdgeStatus.PENDING

    def involves(self, user_id: str) -> bool:
        return user_id in (self.requester_id, self.recipient_id)

    def other_party(self, user_id: str) -> str:
        """Return the profile on the other end of the edge from *user_id*."""
        if user_id == self.requester_id:
            return self.recipient_id
        if user_id == self.recipient_id:
            return self.requester_id
        raise ValueError(f'{user_id!r} is not a party to edge {self.id!r}')

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'requester_id': self.requester_id,
            'recipient_id': self.recipient_id,
            'status': self.status.value,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
        }


def relation_for(edge: Optional[FriendshipEdge], viewer_id: str) -> Relation:
    """Classify *edge* from the point of view of *viewer_id*.

    This is the only place that decides direction; the annotator and the
    dashboard both go through it.
    """
    if edge is None:
        return Relation.NONE
    if edge.status is EdgeStatus.ACCEPTED:
        return Relation.FRIENDS
    if edge.status is EdgeStatus.DECLINED:
        return Relation.PREVIOUSLY_DECLINED
    if edge.requester_id == viewer_id:
        return Relation.OUTGOING_PENDING
    if edge.recipient_id == viewer_id:
        return Relation.INCOMING_PENDING
    return Relation.NONE
