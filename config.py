"""
Configuration management for the Aloud service.

Loads environment variables from .env file and provides typed access to configuration.
Backend-level settings live in infra.config.InfraConfig.
"""

import logging
import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
env_path = Path(__file__).parent / ".env"
load_dotenv(env_path)

logger = logging.getLogger(__name__)

_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class Config:
    """Configuration class for the Aloud service."""

    # API Configuration
    APP_PORT = int(os.getenv("APP_PORT", "8000"))

    # Environment
    ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    # Backend selection (details in infra.config)
    DESCRIBE_BACKEND = os.getenv("DESCRIBE_BACKEND", "ollama")
    TTS_BACKEND = os.getenv("TTS_BACKEND", "stub")

    @classmethod
    def validate(cls) -> bool:
        """Validate that configuration values are usable."""
        problems = []
        if cls.LOG_LEVEL not in _VALID_LOG_LEVELS:
            problems.append(f"LOG_LEVEL={cls.LOG_LEVEL}")
        if cls.DESCRIBE_BACKEND not in ("ollama", "stub"):
            problems.append(f"DESCRIBE_BACKEND={cls.DESCRIBE_BACKEND}")
        if cls.TTS_BACKEND not in ("http", "stub"):
            problems.append(f"TTS_BACKEND={cls.TTS_BACKEND}")
        if not 0 < cls.APP_PORT < 65536:
            problems.append(f"APP_PORT={cls.APP_PORT}")

        if problems:
            logger.warning(f"Invalid configuration values: {', '.join(problems)}")
            return False

        return True
