"""
Integration tests for the HTTP surface: session lifecycle end to end with a
fake voice service and a mocked completion model.
"""

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from land_trainer.db.database import get_db
from land_trainer.db.models import SessionStatus, User
from land_trainer.feedback.engine import FeedbackEngine
from land_trainer.feedback.graph import FeedbackJobOrchestrator
from land_trainer.feedback.queue import InlineJobQueue
from land_trainer.main import app
from land_trainer.routes.deps import get_broker, get_event_logger, get_feedback_queue
from tests.conftest import (
    build_characteristics,
    load_persona,
    load_session,
    make_access_token,
    make_llm,
    make_response,
    set_agent_id,
)


@pytest.fixture
def auth_headers(user):
    token = make_access_token(user.external_id, user.email_address)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(broker, events, feedback_payload):
    """TestClient with the fake voice service and an inline feedback queue."""
    orchestrator = FeedbackJobOrchestrator(
        broker=broker,
        engine=FeedbackEngine(llm=make_llm(feedback_payload), model="gpt-4o-mini"),
        events=events,
    )
    app.dependency_overrides[get_broker] = lambda: broker
    app.dependency_overrides[get_event_logger] = lambda: events
    app.dependency_overrides[get_feedback_queue] = lambda: InlineJobQueue(orchestrator)
    yield TestClient(app)
    app.dependency_overrides.clear()


def _set_sessions_remaining(user_id, remaining):
    with get_db() as db:
        db.get(User, user_id).sessions_remaining = remaining


class TestAuth:
    """Bearer token handling."""

    def test_missing_token(self, client):
        response = client.get("/training_sessions")

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_invalid_token(self, client):
        response = client.get("/training_sessions", headers={"Authorization": "Bearer not-a-jwt"})

        assert response.status_code == 401

    def test_expired_token(self, client, user):
        token = make_access_token(user.external_id, expires_in=timedelta(minutes=-1))

        response = client.get("/training_sessions", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401

    def test_new_identity_gets_a_user(self, client):
        token = make_access_token("brand_new_identity")

        response = client.get("/user", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 200
        assert response.json()["external_id"] == "brand_new_identity"
        assert response.json()["sessions_remaining"] == 5


class TestSessionLifecycle:
    """Create -> start -> end -> graded."""

    def test_full_lifecycle(self, client, auth_headers, persona, parcel, voice_service, user):
        voice_service.on("GET", "/convai/conversations/conv_real_1", make_response(200, {
            "transcript": [
                {"role": "agent", "message": "Hello?"},
                {"role": "user", "message": "Hi, I'm calling about your land."},
            ],
        }))

        created = client.post(
            "/training_sessions", json={"persona_id": persona.id, "parcel_id": parcel.id}, headers=auth_headers
        )
        assert created.status_code == 201
        session_id = created.json()["id"]
        assert created.json()["status"] == "pending"
        assert created.json()["characteristics_version"] == 1

        started = client.post(f"/training_sessions/{session_id}/start_conversation", headers=auth_headers)
        assert started.status_code == 200
        body = started.json()
        assert body["token"] == "conv_token_123"
        assert body["agent_id"] == "agent_1"
        assert body["dynamic_variables"]["parcel_brief"].startswith("Location: Phoenix, Arizona")
        assert load_session(session_id).status == "active"

        ended = client.post(
            f"/training_sessions/{session_id}/end_conversation",
            json={"conversation_id": "conv_real_1", "session_duration_in_seconds": 185},
            headers=auth_headers,
        )
        assert ended.status_code == 202
        assert ended.json()["status"] == "generating_feedback"

        fetched = client.get(f"/training_sessions/{session_id}", headers=auth_headers)
        assert fetched.status_code == 200
        session = fetched.json()
        assert session["status"] == "completed"
        assert session["feedback_score"] == 82
        assert session["grade"] == "B-"
        assert "## Areas to Improve" in session["feedback_text"]
        assert session["session_duration_in_seconds"] == 185
        assert session["conversation_id"] == "conv_real_1"

        profile = client.get("/user", headers=auth_headers).json()
        assert profile["sessions_remaining"] == 4
        assert profile["sessions_completed"] == 1
        assert profile["best_grade"] == "B-"

    def test_list_sessions(self, client, auth_headers, make_session):
        make_session()
        make_session(SessionStatus.COMPLETED, feedback_score=91)

        response = client.get("/training_sessions", headers=auth_headers)

        assert response.status_code == 200
        assert len(response.json()) == 2

    def test_end_without_conversation_id_fails_session(self, client, auth_headers, make_session):
        session_id = make_session(SessionStatus.ACTIVE)

        response = client.post(f"/training_sessions/{session_id}/end_conversation", headers=auth_headers)

        assert response.status_code == 202
        assert load_session(session_id).status == "failed"


class TestCallerErrors:
    """Rejected requests have no side effects."""

    def test_unknown_persona(self, client, auth_headers, parcel, user):
        response = client.post(
            "/training_sessions", json={"persona_id": "nope", "parcel_id": parcel.id}, headers=auth_headers
        )

        assert response.status_code == 404

    def test_quota_exhausted(self, client, auth_headers, persona, parcel, user):
        _set_sessions_remaining(user.id, 0)

        response = client.post(
            "/training_sessions", json={"persona_id": persona.id, "parcel_id": parcel.id}, headers=auth_headers
        )

        assert response.status_code == 403

    def test_end_pending_session(self, client, auth_headers, make_session):
        session_id = make_session()

        response = client.post(
            f"/training_sessions/{session_id}/end_conversation",
            json={"conversation_id": "conv_1"},
            headers=auth_headers,
        )

        assert response.status_code == 400
        session = load_session(session_id)
        assert session.status == "pending"
        assert session.conversation_id is None

    def test_start_twice(self, client, auth_headers, make_session, persona):
        set_agent_id(persona.id, "agent_1")
        session_id = make_session(SessionStatus.ACTIVE)

        response = client.post(f"/training_sessions/{session_id}/start_conversation", headers=auth_headers)

        assert response.status_code == 400

    def test_other_users_session_is_hidden(self, client, make_session):
        session_id = make_session()
        token = make_access_token("someone_else")

        response = client.get(f"/training_sessions/{session_id}", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 404

    def test_invalid_duration(self, client, auth_headers, make_session):
        session_id = make_session(SessionStatus.ACTIVE)

        response = client.post(
            f"/training_sessions/{session_id}/end_conversation",
            json={"session_duration_in_seconds": 0},
            headers=auth_headers,
        )

        assert response.status_code == 422
        assert load_session(session_id).status == "active"


class TestUpstreamErrors:
    """Voice service failures on the request path."""

    def test_agent_creation_failure(self, client, auth_headers, make_session, voice_service):
        voice_service.on("POST", "/convai/agents/create", make_response(401))
        session_id = make_session()

        response = client.post(f"/training_sessions/{session_id}/start_conversation", headers=auth_headers)

        assert response.status_code == 422
        assert load_session(session_id).status == "pending"

    def test_token_failure_leaves_session_pending(self, client, auth_headers, make_session, voice_service, persona):
        set_agent_id(persona.id, "agent_1")
        voice_service.on("GET", "/convai/conversation/token", make_response(503))
        session_id = make_session()

        response = client.post(f"/training_sessions/{session_id}/start_conversation", headers=auth_headers)

        assert response.status_code == 502
        assert response.json()["detail"]["retryable"] is True
        assert load_session(session_id).status == "pending"


class TestPersonas:
    """Persona reads and agent management."""

    def test_list_personas_and_parcels(self, client, auth_headers, persona, parcel):
        personas = client.get("/personas", headers=auth_headers).json()
        parcels = client.get("/parcels", headers=auth_headers).json()

        assert [p["name"] for p in personas] == ["Sally Henderson"]
        assert [p["parcel_number"] for p in parcels] == ["AZ-MAR-2024-001"]

    def test_provision_agent(self, client, auth_headers, persona):
        response = client.post(f"/personas/{persona.id}/agent", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["has_agent"] is True
        assert load_persona(persona.id).elevenlabs_agent_id == "agent_1"

    def test_update_characteristics(self, client, auth_headers, persona, voice_service):
        set_agent_id(persona.id, "agent_1")

        response = client.put(
            f"/personas/{persona.id}/characteristics",
            json={"characteristics": build_characteristics(temper_level=0.9)},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json()["characteristics_version"] == 2
        assert load_persona(persona.id).characteristics["temper_level"]["score"] == 0.9
        assert voice_service.calls_to("PATCH", "/convai/agents/agent_1")

    @pytest.mark.parametrize("status", [SessionStatus.ACTIVE, SessionStatus.GENERATING_FEEDBACK])
    def test_update_blocked_while_session_in_progress(
        self, client, auth_headers, persona, make_session, voice_service, status
    ):
        set_agent_id(persona.id, "agent_1")
        make_session(status)

        response = client.put(
            f"/personas/{persona.id}/characteristics",
            json={"characteristics": build_characteristics(temper_level=0.9)},
            headers=auth_headers,
        )

        assert response.status_code == 409
        assert load_persona(persona.id).characteristics_version == 1
        assert voice_service.calls == []

    def test_update_rejects_invalid_traits(self, client, auth_headers, persona):
        characteristics = build_characteristics()
        characteristics["temper_level"] = {"score": 3, "description": "too hot"}

        response = client.put(
            f"/personas/{persona.id}/characteristics",
            json={"characteristics": characteristics},
            headers=auth_headers,
        )

        assert response.status_code == 422
        assert load_persona(persona.id).characteristics_version == 1


def test_health(client):
    assert client.get("/").json()["status"] == "Land Negotiation Trainer Backend Running"
