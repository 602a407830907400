"""Transaction and locking helpers shared by the gamification services."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConflictError, GamificationError, StorageError
from ..models import db
from ..utils.logger import describe_context, get_logger

logger = get_logger(__name__)


class ProfileLocks:
    """Fixed pool of locks; a user id always hashes to the same stripe.

    Serialises read-modify-write cycles for one user inside this process
    while leaving most pairs of users on different stripes.
    """

    def __init__(self, stripes: int = 64) -> None:
        self._locks = [threading.Lock() for _ in range(max(1, int(stripes)))]

    def lock_for(self, user_id) -> threading.Lock:
        return self._locks[hash(user_id) % len(self._locks)]

    @contextmanager
    def hold(self, user_id) -> Iterator[None]:
        with self.lock_for(user_id):
            yield


def get_profile_locks() -> ProfileLocks:
    locks = current_app.extensions.get("profile_locks")
    if locks is None:
        locks = ProfileLocks(current_app.config.get("PROFILE_LOCK_STRIPES", 64))
        current_app.extensions["profile_locks"] = locks
    return locks


@contextmanager
def unit_of_work(label: str, **context) -> Iterator[None]:
    """Commit everything done inside the block, or nothing at all.

    Errors raised by the rules pass through after a rollback. Lost optimistic
    races and uniqueness clashes become ``ConflictError``; any other database
    failure becomes ``StorageError``.
    """
    try:
        yield
        db.session.commit()
    except GamificationError:
        db.session.rollback()
        raise
    except StaleDataError as exc:
        db.session.rollback()
        logger.warning("[GAMIFICATION] %s lost a concurrent update (%s)", label, describe_context(context))
        raise ConflictError(
            "The profile was modified concurrently, retry the request.", dict(context)
        ) from exc
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning(
            "[GAMIFICATION] %s hit a uniqueness conflict (%s): %s", label, describe_context(context), exc.orig
        )
        raise ConflictError("Conflicting write detected.", dict(context)) from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("[GAMIFICATION] %s failed to persist (%s)", label, describe_context(context))
        raise StorageError("The data store is unavailable.", dict(context)) from exc
