"""
Persona Config Compiler

Turns a persona's trait data into the voice agent configuration: system
prompt, opening line and voice parameters. Pure apart from the opening-line
pick, which draws from an injectable random source.
"""

import random
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from land_trainer.agent.prompts import (
    DEFAULT_OPENING_BUCKET,
    END_CALL_TOOL,
    OPENING_LINES,
    OPENING_THRESHOLDS,
    PERSONA_BASE_PROMPT,
)
from land_trainer.agent.traits import TraitProfile
from land_trainer.config import settings

VOICE_RACHEL = "21m00Tcm4TlvDq8ikWAM"
VOICE_BELLA = "EXAVITQu4vr4xnSDxMaL"
VOICE_ADAM = "pNInz6obpgDQGcFmaJgB"
VOICE_DOMI = "AZnzlk1XvdvUeBnXmlld"


@dataclass(frozen=True)
class VoiceSettings:
    stability: float
    similarity_boost: float
    style: float
    use_speaker_boost: bool

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class CompiledAgentConfig:
    name: str
    system_prompt: str
    first_message: str
    opening_bucket: str
    voice_id: str
    voice_settings: VoiceSettings
    language: str

    def to_agent_payload(self) -> Dict[str, Any]:
        """Body for the voice service's create/update agent calls."""
        return {
            "name": self.name,
            "conversation_config": {
                "agent": {
                    "prompt": {
                        "prompt": self.system_prompt,
                        "tools": [END_CALL_TOOL],
                    },
                    "first_message": self.first_message,
                    "language": self.language,
                },
                "tts": {
                    "voice_id": self.voice_id,
                    "voice_settings": self.voice_settings.to_dict(),
                },
                "conversation": {
                    "turn_detection": {"type": "server_vad"},
                },
            },
        }


def _clamp(value: float) -> float:
    return min(max(value, 0.0), 1.0)


class PersonaConfigCompiler:
    """
    Compiles persona trait data into a CompiledAgentConfig.

    Responsibilities:
    - Render the system prompt from the base template
    - Pick the opening-line bucket from temper/skepticism/chattiness
    - Derive voice parameters and a default voice from traits
    """

    def __init__(self, rng: Optional[random.Random] = None, language: Optional[str] = None):
        self.rng = rng or random.Random()
        self.language = language or settings.AGENT_LANGUAGE

    def compile(self, persona) -> CompiledAgentConfig:
        """
        Compile a Persona (or any object with name/description/characteristics).

        Args:
            persona: Persona model instance

        Returns:
            CompiledAgentConfig ready to send to the voice service
        """
        traits = TraitProfile(persona.characteristics, persona.name)
        bucket = self.opening_bucket(traits)

        return CompiledAgentConfig(
            name=f"{persona.name} - Land Seller Agent",
            system_prompt=self.build_system_prompt(persona.name, persona.description, traits),
            first_message=self.pick_opening_line(bucket, persona.name),
            opening_bucket=bucket,
            voice_id=getattr(persona, "voice_id", None) or self.select_voice(traits),
            voice_settings=self.voice_settings(traits),
            language=self.language,
        )

    @staticmethod
    def build_system_prompt(name: str, description: str, traits: TraitProfile) -> str:
        return PERSONA_BASE_PROMPT.format(
            persona_name=name,
            persona_description=description or "",
            trait_lines="\n".join(traits.trait_lines()),
            personality=traits.personality(),
            motivation=traits.motivation(),
            conversation_style=traits.conversation_style(),
        ).strip()

    @staticmethod
    def opening_bucket(traits) -> str:
        """
        Stable bucket for the opening line.

        Args:
            traits: TraitProfile or a raw characteristics mapping
        """
        if not isinstance(traits, TraitProfile):
            traits = TraitProfile(traits)
        for key, threshold, bucket in OPENING_THRESHOLDS:
            if traits[key] > threshold:
                return bucket
        return DEFAULT_OPENING_BUCKET

    def pick_opening_line(self, bucket: str, persona_name: str) -> str:
        line = self.rng.choice(OPENING_LINES[bucket])
        return line.format(persona_name=persona_name)

    @staticmethod
    def voice_settings(traits: TraitProfile) -> VoiceSettings:
        return VoiceSettings(
            stability=round(_clamp(0.5 + traits["temper_level"] * 0.3), 3),
            similarity_boost=0.7,
            style=round(_clamp(traits["emotional_attachment"] * 0.5), 3),
            use_speaker_boost=True,
        )

    @staticmethod
    def select_voice(traits: TraitProfile) -> str:
        """Default voice from temper x chattiness when the persona has none."""
        temper = traits["temper_level"]
        chattiness = traits["chattiness_level"]

        if temper > 0.7 and chattiness > 0.7:
            return VOICE_BELLA
        if temper < 0.3 and chattiness > 0.7:
            return VOICE_RACHEL
        if temper > 0.7 and chattiness < 0.3:
            return VOICE_ADAM
        if temper < 0.3 and chattiness < 0.3:
            return VOICE_DOMI
        return settings.DEFAULT_VOICE_ID
