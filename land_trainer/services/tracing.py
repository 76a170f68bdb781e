"""
LangSmith Tracing

Tracing setup and run-config builders for the LLM calls made by the
feedback pipeline.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from land_trainer.config import settings

logger = logging.getLogger(__name__)


def init_tracing() -> bool:
    """Export LangSmith environment variables when tracing is enabled."""
    if settings.LANGCHAIN_TRACING_V2 and settings.LANGCHAIN_API_KEY:
        os.environ["LANGCHAIN_TRACING_V2"] = "true"
        os.environ["LANGCHAIN_API_KEY"] = settings.LANGCHAIN_API_KEY
        os.environ["LANGCHAIN_PROJECT"] = settings.LANGCHAIN_PROJECT
        logger.info("LangSmith tracing enabled: %s", settings.LANGCHAIN_PROJECT)
        return True
    logger.info("LangSmith tracing disabled")
    return False


class FeedbackTracer:
    """
    Run names, tags and metadata for feedback-pipeline traces.

    Format of run names: [Operation] context
    """

    def __init__(self, project_name: Optional[str] = None):
        self.project_name = project_name or settings.LANGCHAIN_PROJECT

    def _generate_run_name(self, operation: str, context: Optional[str] = None) -> str:
        return f"[{operation}] {context or 'main'}"

    def _build_base_metadata(self, session_id: Optional[str] = None, **extra) -> Dict[str, Any]:
        metadata = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "project": self.project_name,
        }
        if session_id:
            metadata["training_session_id"] = session_id
        metadata.update({k: v for k, v in extra.items() if v is not None})
        return metadata

    def get_grading_config(
        self,
        session_id: Optional[str] = None,
        persona_name: Optional[str] = None,
        model: Optional[str] = None,
        structured: bool = True,
    ) -> Dict[str, Any]:
        """Config for the grading completion call."""
        return {
            "run_name": self._generate_run_name("Feedback", "grading"),
            "tags": [
                "feedback",
                "grading",
                f"structured:{structured}",
                f"persona:{persona_name}" if persona_name else "persona:unknown",
            ],
            "metadata": self._build_base_metadata(
                session_id=session_id,
                operation="feedback_grading",
                persona=persona_name,
                model=model,
            ),
        }

    def get_job_config(self, session_id: str) -> Dict[str, Any]:
        """Config for one feedback-job graph invocation."""
        return {
            "run_name": self._generate_run_name("FeedbackJob", session_id[:8]),
            "tags": ["feedback_job"],
            "metadata": self._build_base_metadata(session_id=session_id, operation="feedback_job"),
        }
