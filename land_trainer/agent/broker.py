"""
Voice Agent Broker

Client for the external conversational voice-agent service (ElevenLabs
Conversational AI). Owns the lifecycle of each persona's durable agent and
mints per-session conversation tokens.

Every public operation returns Ok(...) or Err(...); network failures,
timeouts and error responses never escape as exceptions.
"""

import logging
import secrets
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional

import requests
from sqlalchemy.exc import SQLAlchemyError

from land_trainer.agent.compiler import CompiledAgentConfig, PersonaConfigCompiler
from land_trainer.config import settings
from land_trainer.db.database import get_db
from land_trainer.db.models import IN_PROGRESS_STATUSES, Persona, TrainingSession
from land_trainer.errors import ErrorKind
from land_trainer.result import Err, Ok, Result
from land_trainer.services.events import EventLogger
from land_trainer.services.locks import KeyedLocks

logger = logging.getLogger(__name__)

# One lock per persona id, shared by every broker in the process
_persona_locks = KeyedLocks()


@dataclass(frozen=True)
class SessionToken:
    token: str
    agent_id: str
    # Placeholder; the real id is reported by the client once it connects.
    conversation_id: str


class VoiceAgentBroker:
    """
    Manages durable agents, conversation tokens and transcripts.

    Responsibilities:
    - Create each persona's agent at most once (ensure_agent)
    - Push persona changes to the remote agent, recreating it when stale
    - Mint short-lived conversation tokens
    - Fetch conversation transcripts
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        http: Optional[requests.Session] = None,
        compiler: Optional[PersonaConfigCompiler] = None,
        session_factory=None,
        events: Optional[EventLogger] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.ELEVENLABS_API_KEY
        self.base_url = (base_url or settings.ELEVENLABS_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.VOICE_AGENT_TIMEOUT_SECONDS
        self.http = http or requests.Session()
        self.compiler = compiler or PersonaConfigCompiler()
        self.session_factory = session_factory
        self.events = events or EventLogger()

    # ========== Agent lifecycle ==========

    def ensure_agent(self, persona: Persona) -> Result:
        """
        Return the persona's durable agent id, creating the agent on first use.

        Concurrent callers for the same persona are serialized; a caller that
        finds the id already persisted returns it without creating anything.
        """
        if persona.elevenlabs_agent_id:
            return Ok(persona.elevenlabs_agent_id)

        with _persona_locks.hold(persona.id):
            try:
                with get_db(self.session_factory) as db:
                    current = db.get(Persona, persona.id)
                    if current is None:
                        return Err(f"Persona {persona.id} not found", ErrorKind.NOT_FOUND)
                    if current.elevenlabs_agent_id:
                        persona.elevenlabs_agent_id = current.elevenlabs_agent_id
                        return Ok(current.elevenlabs_agent_id)
                    config = self.compiler.compile(current)
                    persona_name = current.name
            except SQLAlchemyError as e:
                logger.exception("Could not load persona %s", persona.id)
                return Err(f"Database error loading persona: {e}", ErrorKind.UPSTREAM, retryable=True)

            created = self._create_remote_agent(config)
            if not created.ok:
                self.events.capture_error(
                    "voice_agent_create_failed", persona=persona_name, error=created.reason
                )
                return created

            agent_id = self._claim_agent_id(persona.id, created.value, config)
            if not agent_id.ok:
                return agent_id

        persona.elevenlabs_agent_id = agent_id.value
        self.events.log_info("voice_agent_created", persona=persona_name, agent_id=agent_id.value)
        return agent_id

    def update_agent(self, agent_id: str, persona: Persona) -> Result:
        """
        Push the persona's current configuration to its agent.

        A remote not-found or bad-request answer means the remote agent is
        stale: it is deleted and recreated, and the new id persisted.
        Updates are refused while a session of this persona is active or
        waiting for feedback.
        """
        if not agent_id:
            return Err("No agent id supplied", ErrorKind.MISSING_IDENTIFIER)

        with _persona_locks.hold(persona.id):
            try:
                with get_db(self.session_factory) as db:
                    current = db.get(Persona, persona.id)
                    if current is None:
                        return Err(f"Persona {persona.id} not found", ErrorKind.NOT_FOUND)
                    active = (
                        db.query(TrainingSession)
                        .filter(
                            TrainingSession.persona_id == persona.id,
                            TrainingSession.status.in_(IN_PROGRESS_STATUSES),
                        )
                        .count()
                    )
                    if active:
                        return Err(
                            f"Persona {current.name} has {active} session(s) in progress",
                            ErrorKind.PERSONA_IN_USE,
                        )
                    config = self.compiler.compile(current)
                    persona_name = current.name
            except SQLAlchemyError as e:
                logger.exception("Could not load persona %s", persona.id)
                return Err(f"Database error loading persona: {e}", ErrorKind.UPSTREAM, retryable=True)

            result = self._request("PATCH", f"/convai/agents/{agent_id}", json=config.to_agent_payload())
            if result.ok:
                self._save_compiled_config(persona.id, config)
                return Ok(agent_id)

            if result.kind not in (ErrorKind.NOT_FOUND, ErrorKind.BAD_REQUEST):
                logger.error("Updating agent %s failed: %s", agent_id, result.reason)
                return result

            logger.warning(
                "Agent %s for %s rejected update (%s); recreating", agent_id, persona_name, result.kind.value
            )
            deleted = self.delete_agent(agent_id)
            if not deleted.ok:
                logger.warning("Could not delete stale agent %s: %s", agent_id, deleted.reason)

            created = self._create_remote_agent(config)
            if not created.ok:
                # The old agent is gone either way; let ensure_agent reprovision later.
                self._release_agent_id(persona.id, agent_id)
                persona.elevenlabs_agent_id = None
                self.events.capture_error(
                    "voice_agent_recreate_failed", persona=persona_name, error=created.reason
                )
                return created

            new_id = self._replace_agent_id(persona.id, agent_id, created.value, config)
            if not new_id.ok:
                return new_id

        persona.elevenlabs_agent_id = new_id.value
        self.events.log_info(
            "voice_agent_recreated", persona=persona_name, old_agent_id=agent_id, agent_id=new_id.value
        )
        return new_id

    def delete_agent(self, agent_id: str) -> Result:
        """Delete a remote agent; an already-missing agent counts as deleted."""
        result = self._request("DELETE", f"/convai/agents/{agent_id}")
        if result.ok or result.kind == ErrorKind.NOT_FOUND:
            return Ok(agent_id)
        return result

    # ========== Conversations ==========

    def mint_session_token(self, agent_id: str, participant_identity: str) -> Result:
        """Short-lived token binding one live conversation to the agent."""
        if not agent_id:
            return Err("No agent id supplied", ErrorKind.MISSING_IDENTIFIER)

        result = self._request(
            "GET",
            "/convai/conversation/token",
            params={"agent_id": agent_id, "participant_name": participant_identity},
        )
        if not result.ok:
            logger.error("Conversation token for agent %s failed: %s", agent_id, result.reason)
            return result

        token = result.value.get("token") if isinstance(result.value, dict) else None
        if not token:
            return Err("Voice service returned no conversation token", ErrorKind.EMPTY_RESPONSE, retryable=True)

        return Ok(SessionToken(
            token=token,
            agent_id=agent_id,
            conversation_id=f"webrtc_{int(time.time())}_{secrets.token_hex(8)}",
        ))

    def fetch_transcript(self, conversation_id: Optional[str]) -> Result:
        """
        Ordered `{role, text}` turns of a finished conversation.

        A missing conversation id is a caller error and makes no remote call.
        """
        if not conversation_id:
            return Err("No conversation id supplied", ErrorKind.MISSING_IDENTIFIER)

        result = self._request("GET", f"/convai/conversations/{conversation_id}")
        if not result.ok:
            return result

        transcript = result.value.get("transcript") if isinstance(result.value, dict) else None
        if not isinstance(transcript, list):
            logger.warning("Conversation %s returned a malformed transcript", conversation_id)
            return Ok(transcript)

        turns = []
        for turn in transcript:
            if isinstance(turn, dict):
                text = turn.get("message")
                turns.append({"role": turn.get("role"), "text": text if text is not None else turn.get("text")})
            else:
                turns.append(turn)
        return Ok(turns)

    # ========== Helpers ==========

    def _create_remote_agent(self, config: CompiledAgentConfig) -> Result:
        result = self._request("POST", "/convai/agents/create", json=config.to_agent_payload())
        if not result.ok:
            return result
        agent_id = result.value.get("agent_id") if isinstance(result.value, dict) else None
        if not agent_id:
            return Err("Voice service returned no agent id", ErrorKind.EMPTY_RESPONSE, retryable=True)
        return Ok(agent_id)

    def _claim_agent_id(self, persona_id: str, agent_id: str, config: CompiledAgentConfig) -> Result:
        """Persist agent_id only if the persona still has none; otherwise keep the winner's."""
        try:
            with get_db(self.session_factory) as db:
                claimed = (
                    db.query(Persona)
                    .filter(Persona.id == persona_id, Persona.elevenlabs_agent_id.is_(None))
                    .update(self._agent_fields(agent_id, config), synchronize_session=False)
                )
                winner = None if claimed else db.query(Persona.elevenlabs_agent_id).filter(
                    Persona.id == persona_id
                ).scalar()
        except SQLAlchemyError as e:
            logger.exception("Could not persist agent %s for persona %s", agent_id, persona_id)
            self.delete_agent(agent_id)
            return Err(f"Database error saving agent id: {e}", ErrorKind.UPSTREAM, retryable=True)

        if claimed:
            return Ok(agent_id)

        logger.warning("Persona %s already has agent %s; deleting duplicate %s", persona_id, winner, agent_id)
        self.delete_agent(agent_id)
        return Ok(winner)

    def _replace_agent_id(self, persona_id: str, old_id: str, new_id: str, config: CompiledAgentConfig) -> Result:
        try:
            with get_db(self.session_factory) as db:
                db.query(Persona).filter(Persona.id == persona_id).update(
                    self._agent_fields(new_id, config), synchronize_session=False
                )
        except SQLAlchemyError as e:
            logger.exception("Could not replace agent %s with %s", old_id, new_id)
            return Err(f"Database error saving agent id: {e}", ErrorKind.UPSTREAM, retryable=True)
        return Ok(new_id)

    def _release_agent_id(self, persona_id: str, agent_id: str) -> None:
        try:
            with get_db(self.session_factory) as db:
                db.query(Persona).filter(
                    Persona.id == persona_id, Persona.elevenlabs_agent_id == agent_id
                ).update({"elevenlabs_agent_id": None}, synchronize_session=False)
        except SQLAlchemyError:
            logger.exception("Could not clear agent %s from persona %s", agent_id, persona_id)

    def _save_compiled_config(self, persona_id: str, config: CompiledAgentConfig) -> None:
        try:
            with get_db(self.session_factory) as db:
                db.query(Persona).filter(Persona.id == persona_id).update(
                    {
                        "conversation_prompt": config.system_prompt,
                        "voice_settings": config.voice_settings.to_dict(),
                    },
                    synchronize_session=False,
                )
        except SQLAlchemyError:
            logger.exception("Could not cache compiled prompt for persona %s", persona_id)

    @staticmethod
    def _agent_fields(agent_id: str, config: CompiledAgentConfig) -> dict:
        return {
            "elevenlabs_agent_id": agent_id,
            "conversation_prompt": config.system_prompt,
            "voice_settings": config.voice_settings.to_dict(),
            "agent_created_at": datetime.utcnow(),
        }

    def _headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json", "xi-api-key": self.api_key}

    def _request(self, method: str, path: str, **kwargs) -> Result:
        if not self.api_key:
            return Err("Voice agent API key not configured", ErrorKind.NOT_CONFIGURED)

        url = f"{self.base_url}{path}"
        try:
            response = self.http.request(method, url, headers=self._headers(), timeout=self.timeout, **kwargs)
        except requests.Timeout:
            logger.error("%s %s timed out after %ss", method, path, self.timeout)
            return Err(f"Voice service timed out after {self.timeout}s", ErrorKind.TIMEOUT, retryable=True)
        except requests.RequestException as e:
            logger.error("%s %s failed: %s", method, path, e)
            return Err(f"Voice service unreachable: {e}", ErrorKind.NETWORK, retryable=True)

        if response.status_code >= 400:
            return self._error_for(method, path, response)

        if response.status_code == 204 or not response.content:
            return Ok({})
        try:
            return Ok(response.json())
        except ValueError:
            logger.error("%s %s returned invalid JSON", method, path)
            return Err("Voice service returned invalid JSON", ErrorKind.UPSTREAM, retryable=True)

    @staticmethod
    def _error_for(method: str, path: str, response: requests.Response) -> Err:
        status = response.status_code
        logger.error("Voice service error: %s %s -> %s %s", method, path, status, response.text[:500])
        reason = f"API request failed: {status}"

        if status == 404:
            return Err(reason, ErrorKind.NOT_FOUND)
        if status in (400, 422):
            return Err(reason, ErrorKind.BAD_REQUEST)
        if status in (401, 403):
            return Err(reason, ErrorKind.UNAUTHORIZED)
        if status == 429 or status >= 500:
            return Err(reason, ErrorKind.UPSTREAM, retryable=True)
        return Err(reason, ErrorKind.REJECTED)
