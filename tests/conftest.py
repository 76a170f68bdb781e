"""
Shared test fixtures for unit and integration tests.
"""

import json
import os
import random
import tempfile
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from unittest.mock import Mock

# Point the app at a throwaway database before land_trainer is imported
_TEST_DIR = tempfile.mkdtemp(prefix="land_trainer_tests_")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TEST_DIR, 'test.db')}"
os.environ["ELEVENLABS_API_KEY"] = "test-elevenlabs-key"
os.environ["OPENAI_API_KEY"] = "test-openai-key"
os.environ["LANGCHAIN_TRACING_V2"] = "false"

import pytest
import requests
from jose import jwt
from langchain_core.messages import AIMessage

from land_trainer.agent.broker import VoiceAgentBroker
from land_trainer.agent.compiler import PersonaConfigCompiler
from land_trainer.config import settings
from land_trainer.db.database import engine, get_db
from land_trainer.db.models import Base, Parcel, Persona, SessionStatus, TrainingSession, User
from land_trainer.services.events import EventLogger

BASE_URL = "https://voice.test/v1"


@pytest.fixture(autouse=True)
def fresh_tables():
    """Recreate every table so each test starts from an empty database."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


# ========== Records ==========

def build_characteristics(**scores: float) -> Dict[str, Dict[str, Any]]:
    """Ten-trait characteristics; every score defaults to 0.5."""
    keys = [
        "temper_level",
        "knowledge_level",
        "chattiness_level",
        "urgency_level",
        "price_flexibility",
        "emotional_attachment",
        "financial_desperation",
        "skepticism_level",
        "detail_oriented",
        "decision_making_speed",
    ]
    return {
        key: {"score": scores.get(key, 0.5), "description": f"Test rationale for {key}."}
        for key in keys
    }


@pytest.fixture
def characteristics() -> Dict[str, Dict[str, Any]]:
    return build_characteristics(temper_level=0.2, chattiness_level=0.8, emotional_attachment=0.8)


@pytest.fixture
def property_features() -> Dict[str, Any]:
    return {
        "acres": 0.5,
        "market_value": 45000,
        "road_frontage": 120,
        "landlocked": False,
        "zoning": "R-1 residential",
    }


@pytest.fixture
def persona(characteristics) -> Persona:
    with get_db() as db:
        record = Persona(
            name="Sally Henderson",
            description="Recently widowed retiree looking to downsize.",
            characteristics=characteristics,
            voice_id="21m00Tcm4TlvDq8ikWAM",
        )
        db.add(record)
        db.flush()
        return record


@pytest.fixture
def parcel(property_features) -> Parcel:
    with get_db() as db:
        record = Parcel(
            parcel_number="AZ-MAR-2024-001",
            city="Phoenix",
            state="Arizona",
            property_features=property_features,
        )
        db.add(record)
        db.flush()
        return record


@pytest.fixture
def user() -> User:
    with get_db() as db:
        record = User(external_id="user_test_1", email_address="investor@example.com", sessions_remaining=5)
        db.add(record)
        db.flush()
        return record


@pytest.fixture
def make_session(user, persona, parcel):
    """Factory for a training session in a given state."""

    def _make(status: SessionStatus = SessionStatus.PENDING, **fields) -> str:
        with get_db() as db:
            record = TrainingSession(
                user_id=user.id,
                persona_id=persona.id,
                parcel_id=parcel.id,
                status=status.value,
                **fields,
            )
            db.add(record)
            db.flush()
            return record.id

    return _make


def load_session(session_id: str) -> TrainingSession:
    with get_db() as db:
        return db.get(TrainingSession, session_id)


def load_persona(persona_id: str) -> Persona:
    with get_db() as db:
        return db.get(Persona, persona_id)


def set_agent_id(persona_id: str, agent_id: Optional[str]) -> None:
    with get_db() as db:
        db.get(Persona, persona_id).elevenlabs_agent_id = agent_id


# ========== Identity ==========

def make_access_token(subject: str, email: Optional[str] = None, expires_in: timedelta = timedelta(minutes=30)) -> str:
    """Bearer token as the identity provider would issue it."""
    now = datetime.now(timezone.utc)
    claims = {"sub": subject, "iat": now, "exp": now + expires_in}
    if email:
        claims["email"] = email
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


# ========== Voice service ==========

def make_response(status_code: int = 200, payload: Any = None) -> requests.Response:
    """A real requests.Response carrying a JSON body."""
    response = requests.Response()
    response.status_code = status_code
    response._content = b"" if payload is None else json.dumps(payload).encode()
    response.headers["Content-Type"] = "application/json"
    response.encoding = "utf-8"
    return response


class FakeVoiceService:
    """
    Stands in for the broker's requests.Session.

    Calls are recorded; scripted answers are consumed in order (the last one
    repeats). Unscripted calls get a successful default answer.
    """

    def __init__(self):
        self.calls: List[Dict[str, Any]] = []
        self.scripts: Dict[tuple, list] = {}
        self.create_delay = 0.0
        self._agent_seq = 0
        self._lock = threading.Lock()

    def on(self, method: str, path: str, *answers) -> "FakeVoiceService":
        self.scripts[(method, path)] = list(answers)
        return self

    def calls_to(self, method: str, path_prefix: str = "") -> List[Dict[str, Any]]:
        return [c for c in self.calls if c["method"] == method and c["path"].startswith(path_prefix)]

    def request(self, method, url, headers=None, timeout=None, **kwargs):
        path = url[len(BASE_URL):]
        with self._lock:
            self.calls.append({"method": method, "path": path, "headers": headers, "timeout": timeout, **kwargs})

        answers = self.scripts.get((method, path))
        if answers:
            answer = answers.pop(0) if len(answers) > 1 else answers[0]
            if isinstance(answer, Exception):
                raise answer
            if callable(answer):
                return answer()
            return answer
        return self._default(method, path)

    def _default(self, method: str, path: str) -> requests.Response:
        if method == "POST" and path == "/convai/agents/create":
            if self.create_delay:
                time.sleep(self.create_delay)
            with self._lock:
                self._agent_seq += 1
                agent_id = f"agent_{self._agent_seq}"
            return make_response(200, {"agent_id": agent_id})
        if method == "PATCH":
            return make_response(200, {})
        if method == "DELETE":
            return make_response(204)
        if method == "GET" and path == "/convai/conversation/token":
            return make_response(200, {"token": "conv_token_123"})
        return make_response(404, {"detail": "not found"})


@pytest.fixture
def voice_service() -> FakeVoiceService:
    return FakeVoiceService()


@pytest.fixture
def events() -> Mock:
    return Mock(spec=EventLogger)


@pytest.fixture
def broker(voice_service, events) -> VoiceAgentBroker:
    return VoiceAgentBroker(
        api_key="test-key",
        base_url=BASE_URL,
        timeout=5,
        http=voice_service,
        compiler=PersonaConfigCompiler(rng=random.Random(7)),
        events=events,
    )


# ========== Completion service ==========

def make_llm(content: Any = None, error: Optional[Exception] = None) -> Mock:
    """Chat model double: `llm.bind(...).invoke(...)` answers `content` or raises `error`."""
    llm = Mock()
    bound = llm.bind.return_value
    if error is not None:
        bound.invoke.side_effect = error
    else:
        text = content if isinstance(content, str) else json.dumps(content)
        bound.invoke.return_value = AIMessage(content=text)
    return llm


@pytest.fixture
def feedback_payload() -> Dict[str, Any]:
    return {
        "score": 82,
        "strengths": ["Good opener", "Clear intent"],
        "improvements": ["Ask about motivation"],
        "key_moments": ["Opened with rapport"],
        "coaching_tip": "Ask about timeline sooner",
        "summary": "Solid opening, needs deeper discovery.",
    }


@pytest.fixture
def transcript_turns() -> List[Dict[str, str]]:
    return [
        {"role": "agent", "message": "Hello?"},
        {"role": "user", "message": "Hi, I'm calling about your land."},
    ]
