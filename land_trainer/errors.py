"""
Error kinds and caller-facing exceptions.
"""

from enum import Enum


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    BAD_REQUEST = "bad_request"
    UNAUTHORIZED = "unauthorized"
    TIMEOUT = "timeout"
    NETWORK = "network"
    UPSTREAM = "upstream"
    REJECTED = "rejected"
    MISSING_IDENTIFIER = "missing_identifier"
    PERSONA_IN_USE = "persona_in_use"
    NOT_CONFIGURED = "not_configured"
    EMPTY_RESPONSE = "empty_response"
    COMPLETION_FAILED = "completion_failed"


class TrainerError(Exception):
    """Base class for errors rejected synchronously on the request path."""


class InvalidStateTransition(TrainerError):
    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move training session from '{current}' to '{target}'")


class AgentNotProvisioned(TrainerError):
    def __init__(self, persona_name: str, reason: str = ""):
        self.persona_name = persona_name
        self.reason = reason
        message = f"Persona '{persona_name}' does not have a voice agent"
        super().__init__(f"{message}: {reason}" if reason else message)


class RecordNotFound(TrainerError):
    def __init__(self, model: str, record_id: str):
        self.model = model
        self.record_id = record_id
        super().__init__(f"{model} {record_id} not found")


class QuotaExceeded(TrainerError):
    pass


class InvalidRecord(TrainerError):
    def __init__(self, errors):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class UpstreamServiceError(TrainerError):
    def __init__(self, reason: str, kind: ErrorKind = ErrorKind.UPSTREAM, retryable: bool = False):
        self.reason = reason
        self.kind = kind
        self.retryable = retryable
        super().__init__(reason)


class PersonaInUse(TrainerError):
    def __init__(self, persona_name: str):
        self.persona_name = persona_name
        super().__init__(f"Persona '{persona_name}' has a training session in progress")
