"""
Database Models

SQLAlchemy models for personas, parcels, users and training sessions.
"""

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import declarative_base, relationship

from land_trainer.grades import calculate_grade

Base = declarative_base()

REQUIRED_TRAITS = [
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

REQUIRED_PARCEL_FEATURES = ["acres", "market_value"]


def _uuid() -> str:
    return str(uuid.uuid4())


def _isoformat(value):
    return value.isoformat() if value else None


class SessionStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    GENERATING_FEEDBACK = "generating_feedback"
    COMPLETED = "completed"
    FAILED = "failed"


# A persona with a session in one of these states may not be edited
IN_PROGRESS_STATUSES = (SessionStatus.ACTIVE.value, SessionStatus.GENERATING_FEEDBACK.value)


class User(Base):
    """A trainee. `external_id` is the identity supplied by the auth provider."""

    __tablename__ = 'users'

    id = Column(String, primary_key=True, default=_uuid)
    external_id = Column(String, unique=True, nullable=False)
    email_address = Column(String)
    sessions_remaining = Column(Integer, nullable=False, default=5)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    training_sessions = relationship(
        "TrainingSession", back_populates="user", cascade="all, delete-orphan"
    )

    def to_dict(self):
        """Convert to dictionary for JSON responses."""
        return {
            'id': self.id,
            'external_id': self.external_id,
            'email_address': self.email_address,
            'sessions_remaining': self.sessions_remaining,
        }


class Persona(Base):
    """Seller archetype with a ten-trait personality profile."""

    __tablename__ = 'personas'

    id = Column(String, primary_key=True, default=_uuid)
    name = Column(String, unique=True, nullable=False)
    description = Column(Text, nullable=False)
    avatar_url = Column(String)
    characteristics = Column(JSON, nullable=False)
    characteristics_version = Column(Integer, nullable=False, default=1)
    voice_id = Column(String)
    elevenlabs_agent_id = Column(String, unique=True)
    conversation_prompt = Column(Text)
    voice_settings = Column(JSON)
    agent_created_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    training_sessions = relationship("TrainingSession", back_populates="persona")

    @property
    def has_agent(self) -> bool:
        return bool(self.elevenlabs_agent_id)

    def validate_characteristics(self):
        """
        Check that all ten traits carry a score in [0, 1] and a description.

        Returns:
            List of human-readable errors (empty when valid)
        """
        if not isinstance(self.characteristics, dict):
            return ["characteristics must be an object keyed by trait name"]

        errors = []
        for key in REQUIRED_TRAITS:
            trait = self.characteristics.get(key)
            if not isinstance(trait, dict):
                errors.append(f"{key} must be an object with score and description")
                continue

            score = trait.get('score')
            if isinstance(score, bool) or not isinstance(score, (int, float)) or not 0 <= score <= 1:
                errors.append(f"{key} score must be a number between 0 and 1")

            if not trait.get('description'):
                errors.append(f"{key} description must be present")
        return errors

    def to_dict(self):
        """Convert to dictionary for JSON responses."""
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'avatar_url': self.avatar_url,
            'characteristics': self.characteristics,
            'characteristics_version': self.characteristics_version,
            'voice_id': self.voice_id,
            'has_agent': self.has_agent,
        }


class Parcel(Base):
    """Land parcel used as negotiation context."""

    __tablename__ = 'parcels'

    id = Column(String, primary_key=True, default=_uuid)
    parcel_number = Column(String, unique=True, nullable=False)
    city = Column(String, nullable=False)
    state = Column(String, nullable=False)
    property_features = Column(JSON, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    training_sessions = relationship("TrainingSession", back_populates="parcel")

    def validate_features(self):
        if not isinstance(self.property_features, dict):
            return ["property_features must be an object"]
        return [
            f"{key} is required"
            for key in REQUIRED_PARCEL_FEATURES
            if self.property_features.get(key) in (None, "")
        ]

    def to_dict(self):
        """Convert to dictionary for JSON responses."""
        return {
            'id': self.id,
            'parcel_number': self.parcel_number,
            'city': self.city,
            'state': self.state,
            'property_features': self.property_features,
        }


class TrainingSession(Base):
    """
    One roleplay conversation and its feedback.

    `status` is mutated only through SessionStateMachine; the letter grade is
    derived from `feedback_score` on read.
    """

    __tablename__ = 'training_sessions'

    id = Column(String, primary_key=True, default=_uuid)
    user_id = Column(String, ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    persona_id = Column(String, ForeignKey('personas.id'), nullable=False, index=True)
    parcel_id = Column(String, ForeignKey('parcels.id'), nullable=False, index=True)
    status = Column(String, nullable=False, default=SessionStatus.PENDING.value)
    # Persona profile version the conversation ran against
    characteristics_version = Column(Integer)
    conversation_token = Column(String)
    conversation_id = Column(String)
    conversation_transcript = Column(Text)
    feedback_score = Column(Integer)
    feedback_text = Column(Text)
    feedback_generated_at = Column(DateTime)
    session_duration_in_seconds = Column(Integer)
    failure_reason = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="training_sessions")
    persona = relationship("Persona", back_populates="training_sessions")
    parcel = relationship("Parcel", back_populates="training_sessions")

    @property
    def grade(self):
        return calculate_grade(self.feedback_score)

    def to_dict(self, detailed: bool = False):
        """Convert to dictionary for JSON responses."""
        data = {
            'id': self.id,
            'status': self.status,
            'persona_id': self.persona_id,
            'parcel_id': self.parcel_id,
            'characteristics_version': self.characteristics_version,
            'feedback_score': self.feedback_score,
            'grade': self.grade,
            'feedback_text': self.feedback_text,
            'feedback_generated_at': _isoformat(self.feedback_generated_at),
            'session_duration_in_seconds': self.session_duration_in_seconds,
            'created_at': _isoformat(self.created_at),
            'updated_at': _isoformat(self.updated_at),
        }
        if detailed:
            data.update({
                'conversation_id': self.conversation_id,
                'conversation_transcript': self.conversation_transcript,
                'failure_reason': self.failure_reason,
                'persona': self.persona.to_dict() if self.persona else None,
                'parcel': self.parcel.to_dict() if self.parcel else None,
            })
        return data
