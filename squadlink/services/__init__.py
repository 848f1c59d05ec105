"""Services package - expose all concrete services from one import."""
from .request_resolver import RequestResolver
from .status_annotator import StatusAnnotator
from .relationship_view import (
    AcceptedFriends, PendingRequest, RelationshipView, filter_accepted,
)

__all__ = [
    'RequestResolver',
    'StatusAnnotator',
    'RelationshipView',
    'AcceptedFriends',
    'PendingRequest',
    'filter_accepted',
]
