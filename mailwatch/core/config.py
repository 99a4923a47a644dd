"""
Configuration management for Mailwatch.

Loads configuration from:
1. .env file (secrets - never committed)
2. config.yaml (runtime settings)
"""

from dataclasses import dataclass, field
from typing import List, Optional
import logging
import os
import yaml
from dotenv import load_dotenv

from .logging_config import LOG_FORMATS


logger = logging.getLogger(__name__)


@dataclass
class GmailAPIConfig:
    """Gmail API and Google OAuth configuration."""

    client_id: str
    client_secret: str
    pubsub_topic_name: str
    token_uri: str = "https://oauth2.googleapis.com/token"
    base_url: str = "https://gmail.googleapis.com/gmail/v1"
    batch_url: str = "https://gmail.googleapis.com/batch/gmail/v1"
    scopes: List[str] = field(
        default_factory=lambda: [
            "https://www.googleapis.com/auth/gmail.modify",
        ]
    )

    @property
    def messages_path(self) -> str:
        """Resource root used for batched message GETs."""
        return "/gmail/v1/users/me/messages"


@dataclass
class DatabaseConfig:
    """Database configuration."""

    url: str = "sqlite:///mailwatch.db"

    @property
    def connection_string(self) -> str:
        return self.url


@dataclass
class LLMConfig:
    """Language-model provider configuration."""

    anthropic_api_key: str = ""
    anthropic_model: str = "claude-3-haiku-20240307"
    max_tokens: int = 2000


@dataclass
class AppConfig:
    """Runtime application configuration (from config.yaml)."""

    # HTTP
    request_timeout_seconds: int = 30

    # Watch subscriptions. Gmail watches expire after 7 days; renew a day early.
    renew_threshold_hours: int = 24

    # Search
    default_max_results: int = 50

    # LLM client cache
    client_cache_size: int = 16
    client_cache_ttl_seconds: Optional[int] = 3600

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None
    log_format: str = "standard"
    log_max_bytes: int = 10 * 1024 * 1024
    log_backup_count: int = 5


class ConfigManager:
    """Central configuration manager.

    Loads configuration from:
    - .env file for secrets (Google OAuth client, LLM keys, database URL)
    - config.yaml for runtime settings
    """

    def __init__(self, env_file: Optional[str] = None, config_file: Optional[str] = None):
        """
        Initialize configuration manager.

        Args:
            env_file: Path to .env file (default: .env in working directory)
            config_file: Path to config.yaml file (default: config.yaml in working directory)
        """
        if env_file is None:
            env_file = ".env"
        load_dotenv(env_file)

        if config_file is None:
            config_file = "config.yaml"
        self.config_file = config_file

        self._load_env_config()
        self._load_yaml_config()

    def _load_env_config(self):
        """Load secrets from .env file."""

        self.gmail_api = GmailAPIConfig(
            client_id=os.getenv("GOOGLE_CLIENT_ID", ""),
            client_secret=os.getenv("GOOGLE_CLIENT_SECRET", ""),
            pubsub_topic_name=os.getenv("GOOGLE_PUBSUB_TOPIC_NAME", ""),
            token_uri=os.getenv("GOOGLE_TOKEN_URI", "https://oauth2.googleapis.com/token"),
        )

        self.database = DatabaseConfig(
            url=os.getenv("DATABASE_URL", "sqlite:///mailwatch.db"),
        )

        self.llm = LLMConfig(
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY", ""),
            anthropic_model=os.getenv("ANTHROPIC_MODEL", "claude-3-haiku-20240307"),
            max_tokens=int(os.getenv("LLM_MAX_TOKENS", "2000")),
        )

    def _load_yaml_config(self):
        """Load runtime configuration from config.yaml."""
        if os.path.exists(self.config_file):
            try:
                with open(self.config_file, "r") as f:
                    data = yaml.safe_load(f) or {}
                self.app = AppConfig(**data)
            except (OSError, TypeError, yaml.YAMLError) as e:
                logger.warning(f"Failed to load {self.config_file}: {e}. Using default configuration")
                self.app = AppConfig()
        else:
            self.app = AppConfig()

    def validate(self) -> List[str]:
        """
        Validate configuration.

        Returns:
            List of validation error messages (empty if valid)
        """
        errors = []

        if not self.gmail_api.client_id:
            errors.append("GOOGLE_CLIENT_ID not set in .env")
        if not self.gmail_api.client_secret:
            errors.append("GOOGLE_CLIENT_SECRET not set in .env")
        if not self.gmail_api.pubsub_topic_name:
            errors.append("GOOGLE_PUBSUB_TOPIC_NAME not set in .env")

        if self.app.request_timeout_seconds < 1:
            errors.append("request_timeout_seconds must be >= 1")
        if self.app.renew_threshold_hours < 0:
            errors.append("renew_threshold_hours must be >= 0")
        if self.app.client_cache_size < 1:
            errors.append("client_cache_size must be >= 1")
        if self.app.log_format not in LOG_FORMATS:
            errors.append(f"log_format must be one of: {', '.join(LOG_FORMATS)}")

        return errors


# Global singleton instance
_config: Optional[ConfigManager] = None


def get_config(env_file: Optional[str] = None, config_file: Optional[str] = None) -> ConfigManager:
    """
    Get global configuration manager instance (singleton).

    Args:
        env_file: Path to .env file (only used on first call)
        config_file: Path to config.yaml file (only used on first call)

    Returns:
        ConfigManager instance
    """
    global _config
    if _config is None:
        _config = ConfigManager(env_file=env_file, config_file=config_file)
    return _config
