"""
Shared route dependencies: process-wide collaborators and the mapping from
TrainerError to HTTP responses.
"""

from functools import lru_cache

from fastapi import Depends, HTTPException, status

from land_trainer.agent.broker import VoiceAgentBroker
from land_trainer.errors import (
    AgentNotProvisioned,
    InvalidRecord,
    InvalidStateTransition,
    PersonaInUse,
    QuotaExceeded,
    RecordNotFound,
    TrainerError,
    UpstreamServiceError,
)
from land_trainer.feedback.graph import FeedbackJobOrchestrator
from land_trainer.feedback.queue import ThreadPoolJobQueue
from land_trainer.services.events import EventLogger
from land_trainer.sessions.service import TrainingSessionService


@lru_cache
def get_event_logger() -> EventLogger:
    return EventLogger()


@lru_cache
def get_broker() -> VoiceAgentBroker:
    return VoiceAgentBroker(events=get_event_logger())


@lru_cache
def get_feedback_queue() -> ThreadPoolJobQueue:
    orchestrator = FeedbackJobOrchestrator(broker=get_broker(), events=get_event_logger())
    return ThreadPoolJobQueue(orchestrator)


def get_session_service(
    broker: VoiceAgentBroker = Depends(get_broker),
    queue=Depends(get_feedback_queue),
    events: EventLogger = Depends(get_event_logger),
) -> TrainingSessionService:
    return TrainingSessionService(broker=broker, queue=queue, events=events)


def http_error(e: TrainerError) -> HTTPException:
    """HTTPException for a request-path error."""
    if isinstance(e, RecordNotFound):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, InvalidStateTransition):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if isinstance(e, InvalidRecord):
        return HTTPException(status_code=422, detail=e.errors)
    if isinstance(e, AgentNotProvisioned):
        return HTTPException(status_code=422, detail=str(e))
    if isinstance(e, QuotaExceeded):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    if isinstance(e, PersonaInUse):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    if isinstance(e, UpstreamServiceError):
        return HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"message": e.reason, "kind": e.kind.value, "retryable": e.retryable},
        )
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
