"""
Feedback Engine

Builds the grading prompt, asks the completion model for structured
feedback, and turns the answer into a FeedbackResult plus markdown.

A well-formed API response whose content cannot be parsed yields a degraded
result (score 0) instead of an error; API failures are returned as Err.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional

import openai
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI
from pydantic import BaseModel, ValidationError, field_validator

from land_trainer.config import settings
from land_trainer.errors import ErrorKind
from land_trainer.feedback.prompts import (
    DEGRADED_SUMMARY,
    EMPTY_TRANSCRIPT_PLACEHOLDER,
    FEEDBACK_CONTEXT_PROMPT,
    FEEDBACK_SYSTEM_PROMPT,
    JSON_OBJECT_RESPONSE_FORMAT,
    STRUCTURED_RESPONSE_FORMAT,
)
from land_trainer.grades import calculate_grade
from land_trainer.result import Err, Ok, Result
from land_trainer.services.tracing import FeedbackTracer

logger = logging.getLogger(__name__)

MAX_LIST_ITEMS = 5


@dataclass
class FeedbackResult:
    score: int
    summary: str
    strengths: List[str] = field(default_factory=list)
    improvements: List[str] = field(default_factory=list)
    key_moments: List[str] = field(default_factory=list)
    coaching_tip: Optional[str] = None
    degraded: bool = False

    @property
    def grade(self) -> str:
        return calculate_grade(self.score)

    @classmethod
    def degraded_result(cls) -> "FeedbackResult":
        return cls(score=0, summary=DEGRADED_SUMMARY, degraded=True)

    def to_markdown(self) -> str:
        return render_markdown(self)


class FeedbackPayload(BaseModel):
    """Local validation of the model's JSON when the schema is not enforced remotely."""

    score: int
    strengths: List[str]
    improvements: List[str]
    key_moments: List[str]
    coaching_tip: str
    summary: str

    @field_validator("score", mode="before")
    @classmethod
    def _coerce_score(cls, value: Any) -> Any:
        if isinstance(value, bool):
            raise ValueError("score must be a number")
        if isinstance(value, float):
            return round(value)
        return value

    @field_validator("score")
    @classmethod
    def _clamp_score(cls, value: int) -> int:
        return min(max(value, 0), 100)

    @field_validator("strengths", "improvements", "key_moments", mode="before")
    @classmethod
    def _coerce_list(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return value
        items = [str(item).strip() for item in value if item is not None and str(item).strip()]
        return items[:MAX_LIST_ITEMS]

    @field_validator("coaching_tip", "summary", mode="before")
    @classmethod
    def _strip_text(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value


def _bullets(title: str, items: List[str]) -> List[str]:
    return [f"## {title}\n"] + [f"- {item}" for item in items] + [""]


def render_markdown(result: FeedbackResult) -> str:
    """
    Markdown feedback in fixed section order; empty sections are omitted.

    Summary, What You Did Well, Areas to Improve, Key Conversation Moments,
    Coaching Tip.
    """
    markdown = []
    if result.summary:
        markdown.append(f"## Summary\n\n{result.summary}\n")
    if result.strengths:
        markdown.extend(_bullets("What You Did Well", result.strengths))
    if result.improvements:
        markdown.extend(_bullets("Areas to Improve", result.improvements))
    if result.key_moments:
        markdown.extend(_bullets("Key Conversation Moments", result.key_moments))
    if result.coaching_tip:
        markdown.append(f"## Coaching Tip\n\n**{result.coaching_tip}**")
    return "\n".join(markdown).strip() + "\n"


def parse_feedback(content: str) -> FeedbackResult:
    """
    Parse the model's JSON answer. Never raises.

    Returns:
        FeedbackResult, degraded when the JSON is malformed or incomplete
    """
    try:
        data = json.loads(content)
        payload = FeedbackPayload.model_validate(data)
    except (json.JSONDecodeError, TypeError, OverflowError) as e:
        logger.error("Grading response is not valid JSON: %s", e)
        logger.debug("Response was: %s", content)
        return FeedbackResult.degraded_result()
    except ValidationError as e:
        logger.error("Grading response is missing required fields: %s", e.errors(include_url=False))
        return FeedbackResult.degraded_result()

    return FeedbackResult(
        score=payload.score,
        summary=payload.summary,
        strengths=payload.strengths,
        improvements=payload.improvements,
        key_moments=payload.key_moments,
        coaching_tip=payload.coaching_tip or None,
    )


class FeedbackEngine:
    """
    Grades a normalized transcript with the completion model.

    Tagged with '[Feedback] grading' for LangSmith tracing.
    """

    def __init__(self, llm=None, model: Optional[str] = None, tracer: Optional[FeedbackTracer] = None):
        self.model = model or settings.FEEDBACK_MODEL
        self.tracer = tracer or FeedbackTracer()
        self._llm = llm

    @property
    def llm(self):
        """Lazy initialization of LLM."""
        if self._llm is None:
            self._llm = ChatOpenAI(
                model=self.model,
                temperature=settings.FEEDBACK_TEMPERATURE,
                max_tokens=settings.FEEDBACK_MAX_TOKENS,
                timeout=settings.FEEDBACK_TIMEOUT_SECONDS,
                api_key=settings.OPENAI_API_KEY,
            )
        return self._llm

    @property
    def structured(self) -> bool:
        return settings.supports_structured_outputs(self.model)

    def response_format(self) -> dict:
        """Strict JSON schema when the model supports it, plain JSON mode otherwise."""
        return STRUCTURED_RESPONSE_FORMAT if self.structured else JSON_OBJECT_RESPONSE_FORMAT

    @staticmethod
    def build_prompt(
        persona_name: str,
        characteristics: Mapping,
        property_features: Mapping,
        transcript: str,
    ) -> str:
        return FEEDBACK_CONTEXT_PROMPT.format(
            persona_name=persona_name,
            persona_characteristics=json.dumps(characteristics, sort_keys=True),
            property_features=json.dumps(property_features, sort_keys=True),
            transcript=transcript or EMPTY_TRANSCRIPT_PLACEHOLDER,
        )

    def generate(
        self,
        persona_name: str,
        characteristics: Mapping,
        property_features: Mapping,
        transcript: str,
        session_id: Optional[str] = None,
    ) -> Result:
        """
        Grade one conversation.

        Returns:
            Ok(FeedbackResult) - possibly degraded - or Err when the
            completion service could not be reached or answered nothing
        """
        if self._llm is None and not settings.OPENAI_API_KEY:
            logger.error("OpenAI client not initialized - API key missing")
            return Err("OpenAI API key not configured", ErrorKind.NOT_CONFIGURED)

        messages = [
            SystemMessage(content=FEEDBACK_SYSTEM_PROMPT),
            HumanMessage(content=self.build_prompt(persona_name, characteristics, property_features, transcript)),
        ]
        config = self.tracer.get_grading_config(
            session_id=session_id, persona_name=persona_name, model=self.model, structured=self.structured
        )

        try:
            response = self.llm.bind(response_format=self.response_format()).invoke(messages, config=config)
        except openai.APITimeoutError as e:
            logger.error("Grading call timed out: %s", e)
            return Err("Completion service timed out", ErrorKind.TIMEOUT, retryable=True)
        except openai.RateLimitError as e:
            logger.error("OpenAI rate limit exceeded: %s", e)
            return Err("Completion service rate limit exceeded", ErrorKind.UPSTREAM, retryable=True)
        except openai.APIError as e:
            logger.error("OpenAI API error: %s", e)
            return Err(f"Completion service error: {e}", ErrorKind.COMPLETION_FAILED)
        except Exception as e:
            logger.exception("Error calling completion service")
            return Err(f"{type(e).__name__}: {e}", ErrorKind.COMPLETION_FAILED)

        content = _content_text(response)
        if not content.strip():
            logger.error("Completion service returned an empty response")
            return Err("Completion service returned an empty response", ErrorKind.EMPTY_RESPONSE, retryable=True)

        result = parse_feedback(content)
        if result.degraded:
            logger.warning("Returning degraded feedback for session %s", session_id)
        else:
            logger.info("Generated feedback for session %s: %s (%s)", session_id, result.score, result.grade)
        return Ok(result)


def _content_text(response) -> str:
    content = getattr(response, "content", response)
    if isinstance(content, list):
        return "".join(
            part.get("text", "") if isinstance(part, dict) else str(part) for part in content
        )
    return content if isinstance(content, str) else ""
