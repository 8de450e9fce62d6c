"""Repository base class used by all concrete repositories."""
import contextlib
import logging
import secrets
import string
from typing import Iterator

from sqlalchemy.orm import Session

_ID_ALPHABET = string.ascii_letters + string.digits


def new_id(prefix: str, length: int = 8) -> str:
    """Return a short random identifier such as ``ev_a1B2c3D4``."""
    return prefix + '_' + ''.join(secrets.choice(_ID_ALPHABET) for _ in range(length))


class BaseRepository:
    """Provides transactional access to a SQLAlchemy ``sessionmaker``.

    Every public repository method opens its own short session through
    :meth:`_session`, commits on success and rolls back on any exception,
    which is then re-raised unchanged.  Methods return plain domain
    dataclasses (see :mod:`app.models`), never ORM rows, so callers always
    work with values read inside a single transaction.
    """

    def __init__(self, session_factory) -> None:
        self._session_factory = session_factory
        self._log = logging.getLogger(f'squashbot.repository.{type(self).__name__}')

    @contextlib.contextmanager
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
