"""
Feedback Job State Schema

Defines the state passed between the feedback job's graph nodes.
"""

from typing import Any, Dict, Optional, TypedDict

from land_trainer.feedback.engine import FeedbackResult


class FeedbackJobState(TypedDict, total=False):
    """
    State tracked across all nodes of one feedback job.

    Fields:
        session_id: Training session being graded
        conversation_id: Voice service conversation to fetch
        persona_name: Seller persona name, for the grading prompt
        characteristics: Persona trait data, for the grading prompt
        property_features: Parcel feature map, for the grading prompt
        turns: Raw transcript turns from the voice service
        transcript: Normalized transcript text
        feedback: Parsed grading result
        error: Why the job is failing the session (set by any node)
        skipped: Session was already terminal; nothing to do
        final_status: Session status when the job finished
    """
    session_id: str
    conversation_id: Optional[str]
    persona_name: str
    characteristics: Dict[str, Any]
    property_features: Dict[str, Any]
    turns: Any
    transcript: str
    feedback: Optional[FeedbackResult]
    error: Optional[str]
    skipped: bool
    final_status: str
