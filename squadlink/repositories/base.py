"""Repository base class used by all concrete repositories."""
import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.orm import Session


class BaseRepository:
    """Provides short-lived SQLAlchemy sessions for a single repository.

    Every public repository call opens its own session through
    :meth:`_session`, so no state survives between calls and a caller's next
    read always goes back to the database.  The session commits when the
    block exits normally and rolls back when it raises.
    """

    def __init__(self, session_factory) -> None:
        self._session_factory = session_factory
        self._log = logging.getLogger(f'squadlink.repository.{type(self).__name__}')

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
