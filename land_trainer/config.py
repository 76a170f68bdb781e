import os
from dotenv import load_dotenv

load_dotenv()

_PACKAGE_DIR = os.path.dirname(__file__)


def _csv(value: str):
    return [s.strip() for s in value.split(",") if s.strip()]


class Config:
    # App
    HOST = os.getenv("HOST", "0.0.0.0")
    PORT = int(os.getenv("PORT", 8000))
    CORS_ORIGINS = _csv(os.getenv("CORS_ORIGINS", "*"))
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Database
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./land_trainer.db")

    # Identity (the token `sub` claim is the opaque user identity)
    JWT_SECRET = os.getenv("JWT_SECRET", "your-secret-key-change-in-production")
    JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

    # Voice agent service
    ELEVENLABS_API_KEY = os.getenv("ELEVENLABS_API_KEY")
    ELEVENLABS_BASE_URL = os.getenv("ELEVENLABS_BASE_URL", "https://api.elevenlabs.io/v1")
    VOICE_AGENT_TIMEOUT_SECONDS = float(os.getenv("VOICE_AGENT_TIMEOUT_SECONDS", "15"))
    AGENT_LANGUAGE = os.getenv("AGENT_LANGUAGE", "en")
    DEFAULT_VOICE_ID = os.getenv("DEFAULT_VOICE_ID", "21m00Tcm4TlvDq8ikWAM")

    # Completion service
    OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
    FEEDBACK_MODEL = os.getenv("FEEDBACK_MODEL", "gpt-4o-mini")
    FEEDBACK_TEMPERATURE = float(os.getenv("FEEDBACK_TEMPERATURE", "0.7"))
    FEEDBACK_MAX_TOKENS = int(os.getenv("FEEDBACK_MAX_TOKENS", "2000"))
    FEEDBACK_TIMEOUT_SECONDS = float(os.getenv("FEEDBACK_TIMEOUT_SECONDS", "60"))
    STRUCTURED_OUTPUT_MODELS = _csv(
        os.getenv("STRUCTURED_OUTPUT_MODELS", "gpt-4o,gpt-4.1,gpt-5,o1,o3,o4")
    )

    # LangSmith / LangChain
    LANGCHAIN_TRACING_V2 = os.getenv("LANGCHAIN_TRACING_V2", "false").lower() == "true"
    LANGCHAIN_API_KEY = os.getenv("LANGCHAIN_API_KEY")
    LANGCHAIN_PROJECT = os.getenv("LANGCHAIN_PROJECT", "Land Negotiation Trainer")

    # Jobs / data
    FEEDBACK_WORKERS = int(os.getenv("FEEDBACK_WORKERS", "2"))
    DEFAULT_SESSIONS_REMAINING = int(os.getenv("DEFAULT_SESSIONS_REMAINING", "5"))
    SEED_FILE = os.getenv("SEED_FILE", os.path.join(_PACKAGE_DIR, "data", "seed.json"))
    PROVISION_AGENTS_ON_STARTUP = os.getenv("PROVISION_AGENTS_ON_STARTUP", "false").lower() == "true"

    def supports_structured_outputs(self, model_name: str) -> bool:
        """Whether the completion model enforces a strict JSON schema."""
        return any(model_name.startswith(prefix) for prefix in self.STRUCTURED_OUTPUT_MODELS)


settings = Config()
