"""Repository package - expose all concrete repositories from one import."""
from .relationship_store import EdgeListing, RelationshipStore
from .profile_repository import ProfileRepository

__all__ = [
    'EdgeListing',
    'RelationshipStore',
    'ProfileRepository',
]
