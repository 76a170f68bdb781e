"""
Training session lifecycle: the state machine and request-path service.
"""

from land_trainer.sessions.service import TrainingSessionService
from land_trainer.sessions.state_machine import (
    ALLOWED_TRANSITIONS,
    TERMINAL_STATES,
    SessionStateMachine,
    is_terminal,
)

__all__ = [
    'ALLOWED_TRANSITIONS',
    'TERMINAL_STATES',
    'SessionStateMachine',
    'TrainingSessionService',
    'is_terminal',
]
