"""Error taxonomy for the friend-relationship core.

Every failure in this package is a per-request outcome. Each error carries a
stable machine ``code`` and the HTTP ``status`` the API maps it to, so route
handlers never have to re-derive either.
"""
from typing import Optional


class RelationshipError(Exception):
    """Base class for all relationship outcomes that are not a success."""

    code = 'relationship-error'
    status = 400
    default_message = 'The relationship operation failed.'

    def __init__(self, message: Optional[str] = None, edge=None,
                 code: Optional[str] = None) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.edge = edge
        if code is not None:
            self.code = code

    def to_dict(self) -> dict:
        return {'error': self.code, 'detail': self.message}


class InvalidSelfRequest(RelationshipError):
    code = 'self-request'
    status = 400
    default_message = 'You cannot send a friend request to yourself.'


class DuplicateRequest(RelationshipError):
    code = 'duplicate'
    status = 409
    default_message = 'A friend request between you two is already pending.'


class AlreadyIncoming(RelationshipError):
    """The target already sent the actor a request; the actor should accept it."""

    code = 'already-incoming'
    status = 409
    default_message = 'This user already sent you a friend request. Accept it instead.'


class AlreadyFriends(RelationshipError):
    code = 'already-friends'
    status = 409
    default_message = 'You are already friends.'


class Conflict(RelationshipError):
    """The edge changed state since the caller last observed it."""

    code = 'already-resolved'
    status = 409
    default_message = 'This request was already resolved.'


class Forbidden(RelationshipError):
    code = 'forbidden'
    status = 403
    default_message = 'You are not allowed to act on this request.'


class NotFound(RelationshipError):
    code = 'not-found'
    status = 404
    default_message = 'No such friend request.'
