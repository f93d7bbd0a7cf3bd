"""
Analysis Repository - data access layer for the AI analysis log.
"""

from typing import Optional, List
from sqlmodel import Session, select

from models import Analysis
from repositories.base import run_in_session


class AnalysisRepository:
    """Repository for Analysis CRUD operations."""

    @staticmethod
    def add(
        user_id: str,
        analysis_type: str,
        prompt_used: str,
        session: Optional[Session] = None
    ) -> Analysis:
        """Save a generated prompt with an empty result."""
        def _add(sess: Session) -> Analysis:
            analysis = Analysis(
                user_id=user_id,
                analysis_type=analysis_type,
                prompt_used=prompt_used,
                result=""
            )
            sess.add(analysis)
            sess.commit()
            sess.refresh(analysis)
            return analysis

        return run_in_session(_add, session)

    @staticmethod
    def update_result(
        analysis_id: int,
        user_id: str,
        result: str,
        session: Optional[Session] = None
    ) -> Optional[Analysis]:
        """
        Store the pasted-back response on an analysis owned by `user_id`.

        Returns:
            Updated Analysis, or None if it does not exist or belongs to another user
        """
        def _update(sess: Session) -> Optional[Analysis]:
            analysis = sess.get(Analysis, analysis_id)
            if analysis is None or analysis.user_id != user_id:
                return None
            analysis.result = result
            sess.add(analysis)
            sess.commit()
            sess.refresh(analysis)
            return analysis

        return run_in_session(_update, session)

    @staticmethod
    def get_by_user(user_id: str, session: Optional[Session] = None) -> List[Analysis]:
        """Retrieve a user's analyses, newest first."""
        def _get_by_user(sess: Session) -> List[Analysis]:
            statement = (
                select(Analysis)
                .where(Analysis.user_id == user_id)
                .order_by(Analysis.created_at.desc(), Analysis.id.desc())
            )
            return list(sess.exec(statement).all())

        return run_in_session(_get_by_user, session)
