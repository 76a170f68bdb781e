"""
Grading prompts and the structured-output schema for feedback.
"""

FEEDBACK_SYSTEM_PROMPT = (
    "You are an expert land acquisition coach. You grade practice calls between a land investor "
    "and a simulated property owner. Respond only with JSON matching the requested structure."
)

FEEDBACK_CONTEXT_PROMPT = """You are an expert land acquisition coach analyzing a practice conversation between a land investor and a property owner.

CONVERSATION CONTEXT:
Property Owner (AI): {persona_name} - {persona_characteristics}
Property: {property_features}

CONVERSATION TRANSCRIPT:
{transcript}

EVALUATION CRITERIA:
Analyze this land acquisition conversation and provide feedback on:
1. Rapport Building - How well did the investor connect with the seller?
2. Information Gathering - Did they ask the right questions about the property, seller's situation, and motivation?
3. Objection Handling - How effectively did they address the seller's concerns?
4. Negotiation Skills - Price discussions, terms, creating win-win scenarios
5. Deal Progression - Moving the conversation toward a successful outcome

REQUIRED OUTPUT FORMAT:
Return a JSON object with the following structure:
{{
  "score": [0-100 overall score],
  "strengths": ["Specific thing they did well with example", "Another strength with example"],
  "improvements": ["Specific area to improve with suggestion", "Another improvement area"],
  "key_moments": ["Notable moment in the conversation (good or bad)", "Another key moment"],
  "coaching_tip": "One specific, actionable tip for their next conversation",
  "summary": "2-3 sentence overall assessment"
}}

Be specific and reference actual quotes from the conversation. Focus on actionable feedback that will help them improve their land acquisition skills."""

EMPTY_TRANSCRIPT_PLACEHOLDER = "(no conversation was recorded)"

DEGRADED_SUMMARY = (
    "Feedback generation could not be completed because the grading response was incomplete "
    "or malformed. Your transcript was saved; please try another session or contact support."
)


def _string_list(description: str) -> dict:
    return {
        "type": "array",
        "description": description,
        "items": {"type": "string"},
        "minItems": 2,
        "maxItems": 5,
    }


FEEDBACK_SCHEMA = {
    "type": "object",
    "properties": {
        "score": {
            "type": "integer",
            "description": "Overall performance score from 0-100",
            "minimum": 0,
            "maximum": 100,
        },
        "strengths": _string_list("List of things the investor did well"),
        "improvements": _string_list("Areas where the investor can improve"),
        "key_moments": _string_list("Notable moments in the conversation"),
        "coaching_tip": {
            "type": "string",
            "description": "One specific, actionable tip for improvement",
        },
        "summary": {
            "type": "string",
            "description": "2-3 sentence overall assessment",
        },
    },
    "required": ["score", "strengths", "improvements", "key_moments", "coaching_tip", "summary"],
    "additionalProperties": False,
}

STRUCTURED_RESPONSE_FORMAT = {
    "type": "json_schema",
    "json_schema": {
        "name": "training_feedback",
        "strict": True,
        "schema": FEEDBACK_SCHEMA,
    },
}

JSON_OBJECT_RESPONSE_FORMAT = {"type": "json_object"}
