"""
Trait Tables

Ordered range-to-text lookup tables that turn 0-1 trait scores into the
narrative sentences of a persona's system prompt. Each table is a list of
(inclusive upper bound, value) pairs checked in order.
"""

import logging
import math
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, TypeVar

from land_trainer.db.models import REQUIRED_TRAITS

logger = logging.getLogger(__name__)

T = TypeVar("T")

MIDPOINT = 0.5

RangeTable = Sequence[Tuple[float, T]]


def lookup(table: RangeTable, score: float) -> T:
    """Value of the first band whose upper bound is >= score."""
    for upper, value in table:
        if score <= upper:
            return value
    return table[-1][1]


def humanize(key: str) -> str:
    """`temper_level` -> `Temper level`."""
    return key.replace("_", " ").strip().capitalize()


TEMPER = [
    (0.3, "You are calm and patient, rarely getting upset"),
    (0.7, "You have a moderate temperament and can get frustrated if pressured"),
    (1.0, "You have a quick temper and get irritated easily, especially with pushy salespeople"),
]

KNOWLEDGE = [
    (0.3, "You have limited knowledge about real estate transactions and rely on gut feelings"),
    (0.7, "You have some knowledge about property sales but aren't an expert"),
    (1.0, "You're well-informed about real estate markets and know your property's value"),
]

CHATTINESS = [
    (0.3, "You tend to be quiet and give short, direct answers"),
    (0.7, "You're moderately talkative and share some personal details"),
    (1.0, "You're very talkative and love to share stories and details"),
]

DECISION_SPEED = [
    (0.3, "You take your time making decisions and don't like to be rushed"),
    (0.7, "You make decisions at a reasonable pace after considering options"),
    (1.0, "You make quick decisions and like to move fast in negotiations"),
]

MOTIVATION = [
    (0.3, "You're not in a hurry to sell and will be very selective about offers. "
          "You can afford to wait for the right buyer."),
    (0.7, "You're interested in selling but want to make sure you get a fair deal. "
          "You're open to reasonable negotiations."),
    (1.0, "You're highly motivated to sell due to financial pressures or life circumstances. "
          "You're willing to negotiate significantly to close a deal quickly."),
]

SKEPTICISM = [
    (0.3, "You're generally trusting and open to new opportunities"),
    (0.7, "You're cautious but willing to listen to reasonable proposals"),
    (1.0, "You're naturally skeptical of investors and ask lots of probing questions"),
]

EMOTIONAL_ATTACHMENT = [
    (0.3, "You view the property purely as a business transaction"),
    (0.7, "You have some attachment to the property but can be practical"),
    (1.0, "You have strong emotional ties to the property and may get sentimental"),
]

PERSONALITY_TABLES: List[Tuple[str, RangeTable]] = [
    ("temper_level", TEMPER),
    ("knowledge_level", KNOWLEDGE),
    ("chattiness_level", CHATTINESS),
    ("decision_making_speed", DECISION_SPEED),
]

STYLE_TABLES: List[Tuple[str, RangeTable]] = [
    ("skepticism_level", SKEPTICISM),
    ("emotional_attachment", EMOTIONAL_ATTACHMENT),
]


class TraitProfile:
    """
    Normalized view of a persona's characteristics.

    Accepts either `{"score": 0.4, "description": "..."}` entries or bare
    numbers. Missing or non-numeric scores fall back to the midpoint and are
    logged; out-of-range scores are clamped.
    """

    def __init__(self, characteristics: Optional[Mapping], persona_name: str = "persona"):
        self.scores: Dict[str, float] = {}
        self.descriptions: Dict[str, str] = {}
        self.defaulted: List[str] = []

        characteristics = characteristics if isinstance(characteristics, Mapping) else {}
        for key in REQUIRED_TRAITS:
            raw = characteristics.get(key)
            score, description = self._unpack(raw)

            if score is None:
                self.defaulted.append(key)
                score = MIDPOINT
            elif not 0 <= score <= 1:
                logger.warning("Trait %s=%s for %s is outside [0, 1]; clamping", key, score, persona_name)
                score = min(max(score, 0.0), 1.0)

            self.scores[key] = float(score)
            self.descriptions[key] = description

        if self.defaulted:
            logger.warning(
                "Persona %s is missing trait scores for %s; using %.1f",
                persona_name, ", ".join(self.defaulted), MIDPOINT,
            )

    @staticmethod
    def _unpack(raw):
        if isinstance(raw, Mapping):
            score, description = raw.get("score"), raw.get("description") or ""
        else:
            score, description = raw, ""
        if isinstance(score, bool) or not isinstance(score, (int, float)) or math.isnan(score):
            score = None
        return score, " ".join(str(description).split())

    def __getitem__(self, key: str) -> float:
        return self.scores[key]

    def trait_lines(self) -> List[str]:
        """One `<Trait> (<score>): <rationale>` line per trait, in REQUIRED_TRAITS order."""
        lines = []
        for key in REQUIRED_TRAITS:
            line = f"- {humanize(key)} ({self.scores[key]:.2f})"
            description = self.descriptions[key]
            lines.append(f"{line}: {description}" if description else f"{line}:")
        return lines

    def personality(self) -> str:
        return ". ".join(lookup(table, self.scores[key]) for key, table in PERSONALITY_TABLES)

    def motivation(self) -> str:
        combined = (self.scores["urgency_level"] + self.scores["financial_desperation"]) / 2
        return lookup(MOTIVATION, combined)

    def conversation_style(self) -> str:
        return ". ".join(lookup(table, self.scores[key]) for key, table in STYLE_TABLES)
