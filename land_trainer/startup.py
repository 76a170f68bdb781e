"""
Startup Script

Initializes the database and loads personas and parcels on server startup.
"""

import json
import logging
import os
from typing import Dict, Optional

from land_trainer.agent.broker import VoiceAgentBroker
from land_trainer.config import settings
from land_trainer.db.database import get_db, init_db
from land_trainer.db.models import IN_PROGRESS_STATUSES, Parcel, Persona, TrainingSession

logger = logging.getLogger(__name__)


def load_seed_data(seed_file: Optional[str] = None, session_factory=None, broker=None) -> Dict[str, int]:
    """
    Load personas and parcels from the seed file and upsert them.

    Personas are matched by name, parcels by parcel number. Creates the
    database tables if they don't exist. Changed traits bump the persona's
    `characteristics_version` and are pushed to its voice agent; a persona
    with a session in progress keeps its current traits.

    Returns:
        Counts of created and updated records and agent updates
    """
    init_db()

    seed_file = seed_file or settings.SEED_FILE
    counts = {
        "personas_created": 0,
        "personas_updated": 0,
        "parcels_created": 0,
        "parcels_updated": 0,
        "agents_updated": 0,
        "agents_update_failed": 0,
    }

    if not os.path.exists(seed_file):
        logger.warning("Seed file not found at %s", seed_file)
        return counts

    with open(seed_file, 'r') as f:
        seed = json.load(f)

    logger.info(
        "Upserting %s personas and %s parcels...",
        len(seed.get('personas', [])),
        len(seed.get('parcels', [])),
    )

    changed_agents = []
    with get_db(session_factory) as db:
        for persona_json in seed.get('personas', []):
            persona = db.query(Persona).filter(Persona.name == persona_json['name']).first()
            characteristics = persona_json['characteristics']
            if persona:
                if persona.characteristics != characteristics:
                    in_progress = (
                        db.query(TrainingSession)
                        .filter(
                            TrainingSession.persona_id == persona.id,
                            TrainingSession.status.in_(IN_PROGRESS_STATUSES),
                        )
                        .count()
                    )
                    if in_progress:
                        logger.warning(
                            "Persona %s has %s session(s) in progress; keeping its current traits",
                            persona.name, in_progress,
                        )
                        characteristics = persona.characteristics
                    else:
                        persona.characteristics_version = (persona.characteristics_version or 1) + 1
                        if persona.elevenlabs_agent_id:
                            changed_agents.append(persona)
                counts["personas_updated"] += 1
            else:
                persona = Persona(name=persona_json['name'])
                db.add(persona)
                counts["personas_created"] += 1

            persona.description = persona_json['description']
            persona.avatar_url = persona_json.get('avatar_url')
            persona.voice_id = persona_json.get('voice_id')
            persona.characteristics = characteristics

            errors = persona.validate_characteristics()
            if errors:
                logger.warning("Persona %s has invalid characteristics: %s", persona.name, "; ".join(errors))

        for parcel_json in seed.get('parcels', []):
            parcel = db.query(Parcel).filter(Parcel.parcel_number == parcel_json['parcel_number']).first()
            if parcel:
                counts["parcels_updated"] += 1
            else:
                parcel = Parcel(parcel_number=parcel_json['parcel_number'])
                db.add(parcel)
                counts["parcels_created"] += 1

            parcel.city = parcel_json['city']
            parcel.state = parcel_json['state']
            parcel.property_features = parcel_json['property_features']

            errors = parcel.validate_features()
            if errors:
                logger.warning("Parcel %s is missing features: %s", parcel.parcel_number, "; ".join(errors))

    if changed_agents:
        broker = broker or VoiceAgentBroker(session_factory=session_factory)
        for persona in changed_agents:
            result = broker.update_agent(persona.elevenlabs_agent_id, persona)
            if result.ok:
                counts["agents_updated"] += 1
            else:
                logger.error("Agent for %s still runs its previous profile: %s", persona.name, result.reason)
                counts["agents_update_failed"] += 1

    logger.info("Database ready: %s", counts)
    return counts


def provision_agents(broker=None, session_factory=None) -> Dict[str, str]:
    """
    Make sure every persona has a voice agent.

    Returns:
        Persona name -> agent id, or the error reason when provisioning failed
    """
    broker = broker or VoiceAgentBroker(session_factory=session_factory)
    with get_db(session_factory) as db:
        personas = db.query(Persona).order_by(Persona.name).all()

    outcome = {}
    for persona in personas:
        result = broker.ensure_agent(persona)
        if result.ok:
            outcome[persona.name] = result.value
        else:
            logger.error("Could not provision agent for %s: %s", persona.name, result.reason)
            outcome[persona.name] = f"error: {result.reason}"
    return outcome


def startup():
    """
    Run all startup tasks.
    """
    logger.info("Starting Land Negotiation Trainer backend...")

    load_seed_data()
    if settings.PROVISION_AGENTS_ON_STARTUP:
        provision_agents()

    logger.info("Backend startup complete")
