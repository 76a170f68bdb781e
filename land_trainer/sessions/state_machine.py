"""
Session State Machine

pending -> active -> generating_feedback -> completed | failed

Every transition is a compare-and-set on the status column, so a duplicate
attempt (retried job, racing request) can never move a session twice.
Transitions out of a terminal state are no-ops; any other illegal
transition raises InvalidStateTransition without touching the row.
"""

import logging
from datetime import datetime
from typing import Dict, Optional, Set

from sqlalchemy.orm import Session

from land_trainer.db.models import SessionStatus, TrainingSession
from land_trainer.errors import AgentNotProvisioned, InvalidStateTransition

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: Dict[SessionStatus, Set[SessionStatus]] = {
    SessionStatus.PENDING: {SessionStatus.ACTIVE, SessionStatus.FAILED},
    SessionStatus.ACTIVE: {SessionStatus.GENERATING_FEEDBACK, SessionStatus.FAILED},
    SessionStatus.GENERATING_FEEDBACK: {SessionStatus.COMPLETED, SessionStatus.FAILED},
    SessionStatus.COMPLETED: set(),
    SessionStatus.FAILED: set(),
}

TERMINAL_STATES = {SessionStatus.COMPLETED, SessionStatus.FAILED}


def is_terminal(status) -> bool:
    return SessionStatus(status) in TERMINAL_STATES


class SessionStateMachine:
    """Applies lifecycle transitions to TrainingSession rows within one DB session."""

    def __init__(self, db: Session):
        self.db = db

    def transition(self, session: TrainingSession, target: SessionStatus, **fields) -> bool:
        """
        Move `session` to `target`, writing `fields` in the same update.

        Returns:
            True if the row moved, False if it was already terminal (no-op)

        Raises:
            InvalidStateTransition: target is not reachable from the current state
        """
        current = SessionStatus(session.status)
        if current in TERMINAL_STATES:
            logger.info("Session %s is already %s; ignoring move to %s", session.id, current.value, target.value)
            return False
        if target not in ALLOWED_TRANSITIONS[current]:
            raise InvalidStateTransition(current.value, target.value)

        values = dict(fields, status=target.value, updated_at=datetime.utcnow())
        moved = (
            self.db.query(TrainingSession)
            .filter(TrainingSession.id == session.id, TrainingSession.status == current.value)
            .update(values, synchronize_session=False)
        )
        self.db.refresh(session)

        if not moved:
            # Lost a race: somebody else moved the row first.
            if is_terminal(session.status):
                logger.info("Session %s became %s concurrently; no-op", session.id, session.status)
                return False
            raise InvalidStateTransition(session.status, target.value)

        logger.info("Session %s: %s -> %s", session.id, current.value, target.value)
        return True

    # ========== Named transitions ==========

    def activate(self, session: TrainingSession, conversation_token: str) -> bool:
        """
        pending -> active; the persona must already have a durable agent.

        Records the persona profile version the conversation runs against.
        """
        persona = session.persona
        if not persona.has_agent:
            raise AgentNotProvisioned(persona.name)
        return self.transition(
            session,
            SessionStatus.ACTIVE,
            conversation_token=conversation_token,
            characteristics_version=persona.characteristics_version,
        )

    def begin_feedback(
        self,
        session: TrainingSession,
        conversation_id: Optional[str] = None,
        session_duration_in_seconds: Optional[int] = None,
    ) -> bool:
        """active -> generating_feedback. Without a conversation id the feedback job will fail the session."""
        fields = {}
        if conversation_id:
            fields["conversation_id"] = conversation_id
        else:
            logger.warning("Session %s ended without a conversation id; feedback cannot be generated", session.id)
        if session_duration_in_seconds:
            fields["session_duration_in_seconds"] = session_duration_in_seconds
        return self.transition(session, SessionStatus.GENERATING_FEEDBACK, **fields)

    def attach_transcript(self, session: TrainingSession, transcript: str) -> bool:
        """Store the transcript while feedback is being generated."""
        stored = (
            self.db.query(TrainingSession)
            .filter(
                TrainingSession.id == session.id,
                TrainingSession.status == SessionStatus.GENERATING_FEEDBACK.value,
            )
            .update(
                {"conversation_transcript": transcript, "updated_at": datetime.utcnow()},
                synchronize_session=False,
            )
        )
        self.db.refresh(session)
        return bool(stored)

    def complete(self, session: TrainingSession, score: int, feedback_text: str) -> bool:
        """generating_feedback -> completed, attaching the feedback atomically."""
        return self.transition(
            session,
            SessionStatus.COMPLETED,
            feedback_score=score,
            feedback_text=feedback_text,
            feedback_generated_at=datetime.utcnow(),
        )

    def fail(self, session: TrainingSession, reason: str) -> bool:
        """Any non-terminal state -> failed. Idempotent."""
        return self.transition(session, SessionStatus.FAILED, failure_reason=reason)
