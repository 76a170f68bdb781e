"""
Unit tests for database seeding and startup agent provisioning.
"""

import json
import logging

import pytest

from land_trainer.db.database import get_db
from land_trainer.db.models import Parcel, Persona, SessionStatus, TrainingSession
from land_trainer.startup import load_seed_data, provision_agents
from tests.conftest import build_characteristics, make_response, set_agent_id


def _persona_seed(name="Sally Henderson", **scores):
    return {
        "name": name,
        "description": f"{name} owns a parcel.",
        "voice_id": "21m00Tcm4TlvDq8ikWAM",
        "characteristics": build_characteristics(**scores),
    }


def _parcel_seed(parcel_number="AZ-MAR-2024-001", **features):
    return {
        "parcel_number": parcel_number,
        "city": "Phoenix",
        "state": "Arizona",
        "property_features": features or {"acres": 0.5, "market_value": 45000},
    }


@pytest.fixture
def write_seed(tmp_path):
    """Writes a seed file and returns its path."""
    path = tmp_path / "seed.json"

    def _write(personas, parcels):
        path.write_text(json.dumps({"personas": personas, "parcels": parcels}))
        return str(path)

    return _write


def _personas():
    with get_db() as db:
        return db.query(Persona).order_by(Persona.name).all()


def _parcels():
    with get_db() as db:
        return db.query(Parcel).all()


class TestLoadSeedData:
    """Upsert by natural key."""

    def test_first_load_creates_records(self, write_seed):
        seed_file = write_seed([_persona_seed(), _persona_seed("Robert Mitchell")], [_parcel_seed()])

        counts = load_seed_data(seed_file)

        assert counts["personas_created"] == 2
        assert counts["parcels_created"] == 1
        assert [p.name for p in _personas()] == ["Robert Mitchell", "Sally Henderson"]
        assert all(p.characteristics_version == 1 for p in _personas())

    def test_reload_updates_in_place(self, write_seed):
        load_seed_data(write_seed([_persona_seed()], [_parcel_seed()]))

        counts = load_seed_data(
            write_seed([_persona_seed(temper_level=0.9)], [_parcel_seed(acres=2, market_value=90000)])
        )

        assert counts["personas_created"] == 0
        assert counts["personas_updated"] == 1
        assert counts["parcels_updated"] == 1
        personas = _personas()
        assert len(personas) == 1
        assert personas[0].characteristics["temper_level"]["score"] == 0.9
        assert personas[0].characteristics_version == 2
        parcels = _parcels()
        assert len(parcels) == 1
        assert parcels[0].property_features["acres"] == 2

    def test_unchanged_traits_keep_version(self, write_seed):
        seed_file = write_seed([_persona_seed()], [])

        load_seed_data(seed_file)
        load_seed_data(seed_file)

        assert _personas()[0].characteristics_version == 1

    def test_invalid_records_are_loaded_with_warnings(self, write_seed, caplog):
        persona = _persona_seed()
        del persona["characteristics"]["temper_level"]
        parcel = _parcel_seed(acres=1)

        with caplog.at_level(logging.WARNING, logger="land_trainer.startup"):
            counts = load_seed_data(write_seed([persona], [parcel]))

        assert counts["personas_created"] == 1
        assert counts["parcels_created"] == 1
        assert "temper_level must be an object" in caplog.text
        assert "market_value is required" in caplog.text

    def test_missing_seed_file(self, tmp_path):
        counts = load_seed_data(str(tmp_path / "missing.json"))

        assert counts["personas_created"] == 0
        assert _personas() == []


class TestReseedPushesAgents:
    """Changed traits reach the persona's existing agent."""

    def test_changed_traits_update_agent(self, write_seed, broker, voice_service):
        load_seed_data(write_seed([_persona_seed()], []))
        set_agent_id(_personas()[0].id, "agent_1")

        counts = load_seed_data(write_seed([_persona_seed(temper_level=0.9)], []), broker=broker)

        assert counts["agents_updated"] == 1
        patch = voice_service.calls_to("PATCH", "/convai/agents/agent_1")
        assert len(patch) == 1
        assert "Temper level (0.90)" in patch[0]["json"]["conversation_config"]["agent"]["prompt"]["prompt"]

    def test_unchanged_traits_skip_agent(self, write_seed, broker, voice_service):
        seed_file = write_seed([_persona_seed()], [])
        load_seed_data(seed_file)
        set_agent_id(_personas()[0].id, "agent_1")

        counts = load_seed_data(seed_file, broker=broker)

        assert counts["agents_updated"] == 0
        assert voice_service.calls == []

    def test_failed_push_is_counted(self, write_seed, broker, voice_service):
        load_seed_data(write_seed([_persona_seed()], []))
        set_agent_id(_personas()[0].id, "agent_1")
        voice_service.on("PATCH", "/convai/agents/agent_1", make_response(503))

        counts = load_seed_data(write_seed([_persona_seed(temper_level=0.9)], []), broker=broker)

        assert counts["agents_update_failed"] == 1
        assert _personas()[0].characteristics_version == 2

    def test_persona_with_session_in_progress_keeps_traits(self, write_seed, broker, voice_service, user, parcel):
        load_seed_data(write_seed([_persona_seed()], []))
        persona = _personas()[0]
        set_agent_id(persona.id, "agent_1")
        with get_db() as db:
            db.add(TrainingSession(
                user_id=user.id,
                persona_id=persona.id,
                parcel_id=parcel.id,
                status=SessionStatus.GENERATING_FEEDBACK.value,
            ))

        load_seed_data(write_seed([_persona_seed(temper_level=0.9)], []), broker=broker)

        stored = _personas()[0]
        assert stored.characteristics["temper_level"]["score"] == 0.5
        assert stored.characteristics_version == 1
        assert voice_service.calls == []


class TestProvisionAgents:
    """Startup agent provisioning."""

    def test_every_persona_gets_an_agent(self, write_seed, broker, voice_service):
        load_seed_data(write_seed([_persona_seed(), _persona_seed("Robert Mitchell")], []))

        outcome = provision_agents(broker=broker)

        assert outcome == {"Robert Mitchell": "agent_1", "Sally Henderson": "agent_2"}
        assert all(p.elevenlabs_agent_id for p in _personas())
        assert len(voice_service.calls_to("POST", "/convai/agents/create")) == 2

    def test_existing_agents_are_kept(self, write_seed, broker, voice_service):
        load_seed_data(write_seed([_persona_seed()], []))
        set_agent_id(_personas()[0].id, "agent_existing")

        outcome = provision_agents(broker=broker)

        assert outcome == {"Sally Henderson": "agent_existing"}
        assert voice_service.calls == []

    def test_failure_is_reported_per_persona(self, write_seed, broker, voice_service):
        load_seed_data(write_seed([_persona_seed(), _persona_seed("Robert Mitchell")], []))
        voice_service.on(
            "POST",
            "/convai/agents/create",
            make_response(200, {"agent_id": "agent_robert"}),
            make_response(500, {"detail": "boom"}),
        )

        outcome = provision_agents(broker=broker)

        assert outcome["Robert Mitchell"] == "agent_robert"
        assert outcome["Sally Henderson"].startswith("error: ")
