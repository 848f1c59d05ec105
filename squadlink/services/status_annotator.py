"""Tags profile search results with their relationship to the searcher."""
from typing import Iterable, List, Optional, Tuple

from ..models import Profile, Relation, relation_for


class StatusAnnotator:
    """Decorates candidate profiles with the viewer-relative relation.

    Reads edges from the store and never writes.  The searcher's own profile
    is dropped from every result set, since no action applies to it.
    """

    def __init__(self, store, profiles=None, search_limit: int = 10) -> None:
        """
        Args:
            store:        Object exposing ``find_edge(user_a, user_b)``.
            profiles:     Profile lookup exposing ``search``; only needed by
                          :meth:`search`.
            search_limit: Default cap on search results.
        """
        self._store = store
        self._profiles = profiles
        self._search_limit = search_limit

    def annotate(self, requesting_user: str,
                 candidates: Iterable[Profile]) -> List[Tuple[Profile, Relation]]:
        """Return ``(profile, relation)`` for every candidate except the viewer."""
        annotated = []
        for profile in candidates:
            if profile.id == requesting_user:
                continue
            edge = self._store.find_edge(requesting_user, profile.id)
            annotated.append((profile, relation_for(edge, requesting_user)))
        return annotated

    def search(self, requesting_user: str, query: str,
               limit: Optional[int] = None) -> List[Tuple[Profile, Relation]]:
        """Username search, annotated for *requesting_user*."""
        if self._profiles is None:
            raise RuntimeError('StatusAnnotator.search needs a profile lookup')
        candidates = self._profiles.search(
            query, limit=limit or self._search_limit, exclude=requesting_user)
        return self.annotate(requesting_user, candidates)
