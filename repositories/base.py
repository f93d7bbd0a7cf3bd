"""
Session handling shared by the repositories.
"""

import logging
from typing import Callable, Optional, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from db_engine import get_session
from errors import PersistenceError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def run_in_session(operation: Callable[[Session], T], session: Optional[Session] = None) -> T:
    """
    Run a repository operation, reusing the caller's session when given.

    Store failures are rolled back and re-raised as PersistenceError.

    Args:
        operation: Callable receiving the session to work with
        session: Optional existing session for transaction reuse

    Returns:
        Whatever the operation returns
    """
    def _run(sess: Session) -> T:
        try:
            return operation(sess)
        except SQLAlchemyError as e:
            sess.rollback()
            logger.error(f"Database operation failed: {e}")
            raise PersistenceError(str(e)) from e

    if session is not None:
        return _run(session)
    with get_session() as session:
        return _run(session)
