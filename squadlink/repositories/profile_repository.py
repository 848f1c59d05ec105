"""Repository for profile display data and presence ({id: username, avatar, last_seen})."""
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from sqlalchemy import func, select

from ..database import ProfileRecord, new_id, utcnow
from ..models import Profile
from .base import BaseRepository


class ProfileRepository(BaseRepository):
    """SQL-backed profile lookup.

    The relationship core only reads profiles; :meth:`upsert` exists so the
    profile table can be seeded.  ``online`` is derived at read time from
    ``last_seen`` and is never stored.
    """

    def __init__(self, session_factory, online_threshold_minutes: int = 5) -> None:
        super().__init__(session_factory)
        self._online_window = timedelta(minutes=online_threshold_minutes)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, user_id: str) -> Optional[Profile]:
        """Return the profile for *user_id*, or ``None``."""
        with self._session() as db:
            row = db.get(ProfileRecord, user_id)
            return self._to_profile(row) if row is not None else None

    def get_by_username(self, username: str) -> Optional[Profile]:
        """Case-insensitive exact username lookup."""
        with self._session() as db:
            row = db.execute(
                select(ProfileRecord)
                .where(func.lower(ProfileRecord.username) == username.strip().lower())
            ).scalar_one_or_none()
            return self._to_profile(row) if row is not None else None

    def get_many(self, user_ids: Iterable[str]) -> Dict[str, Profile]:
        """Return ``{id: Profile}`` for every known id in *user_ids*."""
        ids = list(dict.fromkeys(user_ids))
        if not ids:
            return {}
        with self._session() as db:
            rows = db.scalars(select(ProfileRecord).where(ProfileRecord.id.in_(ids)))
            return {row.id: self._to_profile(row) for row in rows}

    def search(self, query: str, limit: int = 10,
               exclude: Optional[str] = None) -> List[Profile]:
        """Case-insensitive substring search over usernames.

        Args:
            query:   Search text; surrounding whitespace is ignored.
            limit:   Maximum number of profiles returned.
            exclude: Profile id left out of the results (the searcher).

        Returns:
            Matching profiles ordered by username.  A blank *query* matches
            nothing.
        """
        needle = (query or '').strip().lower()
        if not needle or limit <= 0:
            return []
        stmt = (
            select(ProfileRecord)
            .where(func.lower(ProfileRecord.username).contains(needle, autoescape=True))
            .order_by(ProfileRecord.username)
            .limit(limit)
        )
        if exclude is not None:
            stmt = stmt.where(ProfileRecord.id != exclude)
        with self._session() as db:
            return [self._to_profile(row) for row in db.scalars(stmt)]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def touch(self, user_id: str, at: Optional[datetime] = None) -> bool:
        """Record a presence heartbeat.  Returns ``False`` for unknown users."""
        with self._session() as db:
            row = db.get(ProfileRecord, user_id)
            if row is None:
                return False
            row.last_seen = at or utcnow()
            return True

    def upsert(self, username: str, user_id: Optional[str] = None,
               display_name: Optional[str] = None,
               avatar_url: Optional[str] = None,
               bio: Optional[str] = None,
               last_seen: Optional[datetime] = None) -> Profile:
        """Insert a profile, or update the one with *user_id*, then return it."""
        with self._session() as db:
            row = db.get(ProfileRecord, user_id) if user_id else None
            if row is None:
                row = ProfileRecord(id=user_id or new_id(), username=username)
                db.add(row)
            row.username = username
            row.display_name = display_name
            row.avatar_url = avatar_url
            row.bio = bio
            if last_seen is not None:
                row.last_seen = last_seen
            db.flush()
            return self._to_profile(row)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _is_online(self, last_seen: Optional[datetime]) -> bool:
        return last_seen is not None and utcnow() - last_seen <= self._online_window

    def _to_profile(self, row: ProfileRecord) -> Profile:
        return Profile(
            id=row.id,
            username=row.username,
            display_name=row.display_name,
            avatar_url=row.avatar_url,
            bio=row.bio,
            online=self._is_online(row.last_seen),
        )
