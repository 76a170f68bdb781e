"""
Voice Agent Module

Everything needed to put a persona on the phone.

Architecture:
- traits.py: Trait normalization and range lookup tables
- prompts.py: Prompt templates, opening lines, end-call tool
- compiler.py: Persona trait data -> agent configuration
- parcel_brief.py: Parcel features -> property brief
- broker.py: External voice-agent service client
"""

from land_trainer.agent.broker import SessionToken, VoiceAgentBroker
from land_trainer.agent.compiler import CompiledAgentConfig, PersonaConfigCompiler, VoiceSettings
from land_trainer.agent.parcel_brief import compile_parcel_brief

__all__ = [
    'CompiledAgentConfig',
    'PersonaConfigCompiler',
    'SessionToken',
    'VoiceAgentBroker',
    'VoiceSettings',
    'compile_parcel_brief',
]
