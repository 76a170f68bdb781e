"""
Feedback Job Nodes

One class per step of the feedback job. Each node takes the job state and
returns the fields it updates. Upstream failures are recorded in `error`
and routed to FailSessionNode by the graph.
"""

import logging
from typing import Dict

from land_trainer.agent.broker import VoiceAgentBroker
from land_trainer.db.database import get_db
from land_trainer.db.models import SessionStatus, TrainingSession
from land_trainer.errors import RecordNotFound
from land_trainer.feedback.engine import FeedbackEngine
from land_trainer.feedback.state import FeedbackJobState
from land_trainer.feedback.transcript import count_turns, normalize_transcript
from land_trainer.services.events import EventLogger
from land_trainer.sessions.state_machine import SessionStateMachine, is_terminal

logger = logging.getLogger(__name__)


class LoadSessionNode:
    """Snapshots the session, persona and parcel data the job needs."""

    def __init__(self, session_factory=None):
        self.session_factory = session_factory

    def __call__(self, state: FeedbackJobState) -> Dict:
        session_id = state["session_id"]
        with get_db(self.session_factory) as db:
            session = db.get(TrainingSession, session_id)
            if session is None:
                raise RecordNotFound("TrainingSession", session_id)

            if is_terminal(session.status):
                logger.info("Session %s is already %s; skipping feedback job", session_id, session.status)
                return {"skipped": True, "final_status": session.status}

            if session.status != SessionStatus.GENERATING_FEEDBACK.value:
                return {"error": f"Feedback job started while session was {session.status}"}

            if not session.conversation_id:
                return {"error": "No conversation id was reported for this session"}

            return {
                "conversation_id": session.conversation_id,
                "persona_name": session.persona.name,
                "characteristics": session.persona.characteristics or {},
                "property_features": session.parcel.property_features or {},
            }


class FetchTranscriptNode:
    """Pulls the conversation transcript from the voice service."""

    def __init__(self, broker: VoiceAgentBroker):
        self.broker = broker

    def __call__(self, state: FeedbackJobState) -> Dict:
        conversation_id = state.get("conversation_id")
        logger.info("Fetching transcript for conversation %s", conversation_id)

        result = self.broker.fetch_transcript(conversation_id)
        if not result.ok:
            logger.error("Failed to fetch transcript: %s", result.reason)
            return {"error": f"Transcript fetch failed: {result.reason}"}

        turns = result.value
        logger.info("Fetched transcript with %s turns", len(turns) if isinstance(turns, list) else 0)
        return {"turns": turns}


class NormalizeTranscriptNode:
    """Normalizes the turns and stores the transcript before grading starts."""

    def __init__(self, session_factory=None):
        self.session_factory = session_factory

    def __call__(self, state: FeedbackJobState) -> Dict:
        transcript = normalize_transcript(state.get("turns"))

        with get_db(self.session_factory) as db:
            session = db.get(TrainingSession, state["session_id"])
            SessionStateMachine(db).attach_transcript(session, transcript)

        logger.info("Stored transcript (%s turns) for session %s", count_turns(transcript), state["session_id"])
        return {"transcript": transcript}


class GradeNode:
    """Runs the FeedbackEngine over the normalized transcript."""

    def __init__(self, engine: FeedbackEngine):
        self.engine = engine

    def __call__(self, state: FeedbackJobState) -> Dict:
        result = self.engine.generate(
            persona_name=state.get("persona_name", ""),
            characteristics=state.get("characteristics", {}),
            property_features=state.get("property_features", {}),
            transcript=state.get("transcript", ""),
            session_id=state["session_id"],
        )
        if not result.ok:
            return {"error": f"Feedback generation failed: {result.reason}"}
        return {"feedback": result.value}


class CompleteSessionNode:
    """Attaches score and markdown and moves the session to completed."""

    def __init__(self, session_factory=None, events: EventLogger = None):
        self.session_factory = session_factory
        self.events = events or EventLogger()

    def __call__(self, state: FeedbackJobState) -> Dict:
        feedback = state["feedback"]
        with get_db(self.session_factory) as db:
            session = db.get(TrainingSession, state["session_id"])
            SessionStateMachine(db).complete(session, feedback.score, feedback.to_markdown())
            final_status = session.status

        self.events.log_info(
            "feedback_generated",
            training_session_id=state["session_id"],
            score=feedback.score,
            grade=feedback.grade,
            degraded=feedback.degraded,
        )
        return {"final_status": final_status}


class FailSessionNode:
    """Moves the session to failed, recording why."""

    def __init__(self, session_factory=None, events: EventLogger = None):
        self.session_factory = session_factory
        self.events = events or EventLogger()

    def __call__(self, state: FeedbackJobState) -> Dict:
        reason = state.get("error") or "Feedback generation failed"
        with get_db(self.session_factory) as db:
            session = db.get(TrainingSession, state["session_id"])
            SessionStateMachine(db).fail(session, reason)
            final_status = session.status

        self.events.capture_error(
            "feedback_generation_failed", training_session_id=state["session_id"], reason=reason
        )
        return {"final_status": final_status}
