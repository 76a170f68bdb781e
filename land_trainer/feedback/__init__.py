"""
Post-conversation feedback: transcript normalization, grading, and the
background job that ties them to the session lifecycle.
"""

from land_trainer.feedback.engine import FeedbackEngine, FeedbackResult, parse_feedback
from land_trainer.feedback.graph import FeedbackGraphBuilder, FeedbackJobOrchestrator
from land_trainer.feedback.queue import InlineJobQueue, ThreadPoolJobQueue
from land_trainer.feedback.transcript import normalize_transcript

__all__ = [
    "FeedbackEngine",
    "FeedbackResult",
    "parse_feedback",
    "FeedbackGraphBuilder",
    "FeedbackJobOrchestrator",
    "InlineJobQueue",
    "ThreadPoolJobQueue",
    "normalize_transcript",
]
