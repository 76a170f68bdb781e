"""
Training Session Service

Request-path orchestration for training sessions and persona agents.
Every caller error is raised as a TrainerError before any side effect;
remote calls are made outside of database transactions.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional

from land_trainer.agent.broker import VoiceAgentBroker
from land_trainer.agent.parcel_brief import compile_parcel_brief
from land_trainer.db.database import get_db
from land_trainer.db.models import IN_PROGRESS_STATUSES, Parcel, Persona, SessionStatus, TrainingSession, User
from land_trainer.errors import (
    AgentNotProvisioned,
    ErrorKind,
    InvalidRecord,
    InvalidStateTransition,
    PersonaInUse,
    QuotaExceeded,
    RecordNotFound,
    UpstreamServiceError,
)
from land_trainer.services.events import EventLogger
from land_trainer.sessions.state_machine import SessionStateMachine

logger = logging.getLogger(__name__)


class TrainingSessionService:
    """
    Create, start, end and read training sessions; manage persona agents.

    The feedback job is enqueued by end_conversation only after the
    active -> generating_feedback transition has committed.
    """

    def __init__(
        self,
        broker: Optional[VoiceAgentBroker] = None,
        queue=None,
        events: Optional[EventLogger] = None,
        session_factory=None,
    ):
        self.events = events or EventLogger()
        self.session_factory = session_factory
        self.broker = broker or VoiceAgentBroker(session_factory=session_factory, events=self.events)
        self.queue = queue

    # ========== Sessions ==========

    def create_session(self, user_id: str, persona_id: str, parcel_id: str) -> Dict[str, Any]:
        """New pending session; uses up one of the user's remaining sessions."""
        with get_db(self.session_factory) as db:
            if db.get(User, user_id) is None:
                raise RecordNotFound("User", user_id)
            persona = db.get(Persona, persona_id)
            if persona is None:
                raise RecordNotFound("Persona", persona_id)
            if db.get(Parcel, parcel_id) is None:
                raise RecordNotFound("Parcel", parcel_id)

            taken = (
                db.query(User)
                .filter(User.id == user_id, User.sessions_remaining > 0)
                .update({User.sessions_remaining: User.sessions_remaining - 1}, synchronize_session=False)
            )
            if not taken:
                raise QuotaExceeded("No training sessions remaining")

            session = TrainingSession(
                user_id=user_id,
                persona_id=persona_id,
                parcel_id=parcel_id,
                status=SessionStatus.PENDING.value,
                characteristics_version=persona.characteristics_version,
            )
            db.add(session)
            db.flush()
            logger.info("Created training session %s for user %s", session.id, user_id)
            return session.to_dict()

    def start_conversation(self, user_id: str, session_id: str) -> Dict[str, Any]:
        """
        pending -> active.

        Provisions the persona's agent if needed and mints a conversation
        token. A failed mint leaves the session pending so the caller can
        retry.

        Returns:
            {token, agent_id, conversation_id, dynamic_variables: {parcel_brief}}
        """
        with get_db(self.session_factory) as db:
            session = self._owned_session(db, user_id, session_id)
            if session.status != SessionStatus.PENDING.value:
                raise InvalidStateTransition(session.status, SessionStatus.ACTIVE.value)
            persona = session.persona
            parcel_brief = compile_parcel_brief(session.parcel)

        agent = self.broker.ensure_agent(persona)
        if not agent.ok:
            self.events.capture_error(
                "conversation_session_failed",
                training_session_id=session_id,
                persona=persona.name,
                error=agent.reason,
            )
            raise AgentNotProvisioned(persona.name, agent.reason)

        token = self.broker.mint_session_token(agent.value, participant_identity=user_id)
        if not token.ok:
            self.events.capture_error(
                "conversation_session_failed",
                training_session_id=session_id,
                persona=persona.name,
                error=token.reason,
            )
            raise UpstreamServiceError(token.reason, token.kind, token.retryable)

        with get_db(self.session_factory) as db:
            session = db.get(TrainingSession, session_id)
            if not SessionStateMachine(db).activate(session, token.value.token):
                raise InvalidStateTransition(session.status, SessionStatus.ACTIVE.value)

        self.events.log_info(
            "conversation_session_started",
            training_session_id=session_id,
            persona=persona.name,
            agent_id=agent.value,
        )
        return {
            "token": token.value.token,
            "agent_id": agent.value,
            "conversation_id": token.value.conversation_id,
            "dynamic_variables": {"parcel_brief": parcel_brief},
        }

    def end_conversation(
        self,
        user_id: str,
        session_id: str,
        conversation_id: Optional[str] = None,
        session_duration_in_seconds: Optional[int] = None,
    ) -> Dict[str, Any]:
        """active -> generating_feedback, then enqueue the feedback job."""
        if session_duration_in_seconds is not None and session_duration_in_seconds <= 0:
            raise InvalidRecord(["session_duration_in_seconds must be greater than 0"])

        with get_db(self.session_factory) as db:
            session = self._owned_session(db, user_id, session_id)
            if session.status != SessionStatus.ACTIVE.value:
                raise InvalidStateTransition(session.status, SessionStatus.GENERATING_FEEDBACK.value)
            if not SessionStateMachine(db).begin_feedback(session, conversation_id, session_duration_in_seconds):
                raise InvalidStateTransition(session.status, SessionStatus.GENERATING_FEEDBACK.value)
            result = session.to_dict()

        self.events.log_info(
            "feedback_generation_started",
            training_session_id=session_id,
            conversation_id=conversation_id,
        )
        if self.queue is not None:
            self.queue.enqueue(session_id)
        else:
            logger.warning("No feedback queue configured; session %s will not be graded", session_id)
        return result

    def get_session(self, user_id: str, session_id: str) -> Dict[str, Any]:
        with get_db(self.session_factory) as db:
            return self._owned_session(db, user_id, session_id).to_dict(detailed=True)

    def list_sessions(self, user_id: str) -> List[Dict[str, Any]]:
        with get_db(self.session_factory) as db:
            sessions = (
                db.query(TrainingSession)
                .filter(TrainingSession.user_id == user_id)
                .order_by(TrainingSession.created_at.desc())
                .all()
            )
            return [s.to_dict() for s in sessions]

    # ========== Persona agents ==========

    def provision_agent(self, persona_id: str) -> Dict[str, Any]:
        with get_db(self.session_factory) as db:
            persona = db.get(Persona, persona_id)
            if persona is None:
                raise RecordNotFound("Persona", persona_id)

        result = self.broker.ensure_agent(persona)
        if not result.ok:
            raise UpstreamServiceError(result.reason, result.kind, result.retryable)
        return self._persona_dict(persona_id)

    def update_persona_characteristics(self, persona_id: str, characteristics: Mapping) -> Dict[str, Any]:
        """
        Replace a persona's traits and push them to its agent.

        Raises:
            PersonaInUse: a session of this persona is active or awaiting feedback
            InvalidRecord: the traits fail validation
        """
        with get_db(self.session_factory) as db:
            persona = db.get(Persona, persona_id)
            if persona is None:
                raise RecordNotFound("Persona", persona_id)

            active = (
                db.query(TrainingSession)
                .filter(
                    TrainingSession.persona_id == persona_id,
                    TrainingSession.status.in_(IN_PROGRESS_STATUSES),
                )
                .count()
            )
            if active:
                raise PersonaInUse(persona.name)

            candidate = Persona(name=persona.name, characteristics=dict(characteristics))
            errors = candidate.validate_characteristics()
            if errors:
                raise InvalidRecord(errors)

            persona.characteristics = dict(characteristics)
            persona.characteristics_version = (persona.characteristics_version or 1) + 1
            db.flush()
            agent_id = persona.elevenlabs_agent_id

        logger.info("Updated characteristics for persona %s (v%s)", persona.name, persona.characteristics_version)

        if agent_id:
            result = self.broker.update_agent(agent_id, persona)
            if not result.ok:
                if result.kind == ErrorKind.PERSONA_IN_USE:
                    raise PersonaInUse(persona.name)
                raise UpstreamServiceError(result.reason, result.kind, result.retryable)
        return self._persona_dict(persona_id)

    # ========== Helpers ==========

    @staticmethod
    def _owned_session(db, user_id: str, session_id: str) -> TrainingSession:
        session = (
            db.query(TrainingSession)
            .filter(TrainingSession.id == session_id, TrainingSession.user_id == user_id)
            .first()
        )
        if session is None:
            raise RecordNotFound("TrainingSession", session_id)
        return session

    def _persona_dict(self, persona_id: str) -> Dict[str, Any]:
        with get_db(self.session_factory) as db:
            return db.get(Persona, persona_id).to_dict()
