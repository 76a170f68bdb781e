"""
Feedback Job Queues

end_conversation enqueues the feedback job after its transaction commits and
returns immediately; the job runs on a worker thread.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Optional

from land_trainer.config import settings
from land_trainer.feedback.graph import FeedbackJobOrchestrator
from land_trainer.services.events import EventLogger

logger = logging.getLogger(__name__)


class ThreadPoolJobQueue:
    """Runs feedback jobs on a bounded pool of worker threads."""

    def __init__(
        self,
        orchestrator: FeedbackJobOrchestrator,
        max_workers: Optional[int] = None,
        events: Optional[EventLogger] = None,
    ):
        self.orchestrator = orchestrator
        self.events = events or orchestrator.events
        self.executor = ThreadPoolExecutor(
            max_workers=max_workers or settings.FEEDBACK_WORKERS,
            thread_name_prefix="feedback-job",
        )

    def enqueue(self, session_id: str) -> Future:
        logger.info("Queued feedback job for session %s", session_id)
        return self.executor.submit(self._run, session_id)

    def _run(self, session_id: str):
        try:
            return self.orchestrator.run(session_id)
        except Exception as e:
            self.events.capture_error("feedback_job_crashed", exception=e, training_session_id=session_id)
            raise

    def shutdown(self, wait: bool = True) -> None:
        self.executor.shutdown(wait=wait)


class InlineJobQueue:
    """Runs each job on the calling thread. Used by scripts and tests."""

    def __init__(self, orchestrator: FeedbackJobOrchestrator):
        self.orchestrator = orchestrator

    def enqueue(self, session_id: str):
        return self.orchestrator.run(session_id)

    def shutdown(self, wait: bool = True) -> None:
        pass
