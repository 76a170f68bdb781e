"""
Feedback Job Graph

Constructs the LangGraph workflow that turns an ended conversation into
graded feedback, and the orchestrator that runs it for one session.

    load_session -> fetch_transcript -> normalize_transcript -> grade -> complete
                         |                                        |
                         +------------------> fail <--------------+
"""

import logging
from typing import Literal, Optional

from langgraph.graph import END, START, StateGraph

from land_trainer.agent.broker import VoiceAgentBroker
from land_trainer.db.database import get_db
from land_trainer.db.models import TrainingSession
from land_trainer.feedback.engine import FeedbackEngine
from land_trainer.feedback.nodes import (
    CompleteSessionNode,
    FailSessionNode,
    FetchTranscriptNode,
    GradeNode,
    LoadSessionNode,
    NormalizeTranscriptNode,
)
from land_trainer.feedback.state import FeedbackJobState
from land_trainer.services.events import EventLogger
from land_trainer.services.locks import KeyedLocks
from land_trainer.services.tracing import FeedbackTracer
from land_trainer.sessions.state_machine import SessionStateMachine, is_terminal

logger = logging.getLogger(__name__)

# One job per session at a time
_session_locks = KeyedLocks()


class FeedbackGraphBuilder:
    """Builds the feedback job graph from its node classes."""

    def __init__(
        self,
        broker: VoiceAgentBroker,
        engine: FeedbackEngine,
        session_factory=None,
        events: Optional[EventLogger] = None,
    ):
        events = events or EventLogger()
        self.load = LoadSessionNode(session_factory)
        self.fetch = FetchTranscriptNode(broker)
        self.normalize = NormalizeTranscriptNode(session_factory)
        self.grade = GradeNode(engine)
        self.complete = CompleteSessionNode(session_factory, events)
        self.fail = FailSessionNode(session_factory, events)

    def build(self):
        """
        Constructs and compiles the graph.

        Returns:
            Compiled LangGraph application
        """
        workflow = StateGraph(FeedbackJobState)

        workflow.add_node("load_session", self.load)
        workflow.add_node("fetch_transcript", self.fetch)
        workflow.add_node("normalize_transcript", self.normalize)
        workflow.add_node("grade", self.grade)
        workflow.add_node("complete", self.complete)
        workflow.add_node("fail", self.fail)

        workflow.add_edge(START, "load_session")
        workflow.add_conditional_edges("load_session", self._after_load)
        workflow.add_conditional_edges("fetch_transcript", self._on_error("normalize_transcript"))
        workflow.add_edge("normalize_transcript", "grade")
        workflow.add_conditional_edges("grade", self._on_error("complete"))
        workflow.add_edge("complete", END)
        workflow.add_edge("fail", END)

        return workflow.compile()

    @staticmethod
    def _after_load(state: FeedbackJobState) -> Literal["fetch_transcript", "fail", "__end__"]:
        if state.get("skipped"):
            return "__end__"
        if state.get("error"):
            return "fail"
        return "fetch_transcript"

    @staticmethod
    def _on_error(next_node: str):
        def route(state: FeedbackJobState) -> str:
            return "fail" if state.get("error") else next_node
        return route


class FeedbackJobOrchestrator:
    """
    Runs the feedback job for one session.

    Jobs for the same session are serialized. Any exception escaping the
    graph moves the session to failed before it is re-raised, so no session
    is left in generating_feedback.
    """

    def __init__(
        self,
        broker: Optional[VoiceAgentBroker] = None,
        engine: Optional[FeedbackEngine] = None,
        session_factory=None,
        events: Optional[EventLogger] = None,
        tracer: Optional[FeedbackTracer] = None,
    ):
        self.session_factory = session_factory
        self.events = events or EventLogger()
        self.tracer = tracer or FeedbackTracer()
        self.broker = broker or VoiceAgentBroker(session_factory=session_factory, events=self.events)
        self.engine = engine or FeedbackEngine(tracer=self.tracer)
        self.graph = FeedbackGraphBuilder(self.broker, self.engine, session_factory, self.events).build()

    def run(self, session_id: str) -> FeedbackJobState:
        with _session_locks.hold(session_id):
            logger.info("Feedback job started for session %s", session_id)
            try:
                state = self.graph.invoke(
                    {"session_id": session_id}, config=self.tracer.get_job_config(session_id)
                )
            except Exception as e:
                logger.exception("Feedback job crashed for session %s", session_id)
                self._force_fail(session_id, f"Feedback job error: {type(e).__name__}: {e}")
                raise

            logger.info("Feedback job finished for session %s: %s", session_id, state.get("final_status"))
            return state

    def _force_fail(self, session_id: str, reason: str) -> None:
        try:
            with get_db(self.session_factory) as db:
                session = db.get(TrainingSession, session_id)
                if session is None or is_terminal(session.status):
                    return
                SessionStateMachine(db).fail(session, reason)
        except Exception:
            logger.exception("Could not mark session %s as failed", session_id)
            return

        self.events.capture_error("feedback_generation_failed", training_session_id=session_id, reason=reason)
