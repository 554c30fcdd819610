"""Configuration settings for speechbridge."""

import os
from pathlib import Path
from typing import Optional, Dict, Any, Union
from dataclasses import dataclass, asdict
import json
import structlog
from dotenv import load_dotenv
import threading

from .. import __version__
from ..providers.types import ProviderKind


logger = structlog.get_logger()


@dataclass
class TimeoutSettings:
    """Per-call timeouts for provider operations, in seconds."""
    request_timeout: float = 30.0
    probe_timeout: float = 10.0
    transcription_timeout: float = 120.0
    local_timeout: float = 120.0


@dataclass
class HealthSettings:
    """Health tracker thresholds and re-probe cooldown."""
    failure_threshold: int = 3
    cooldown_seconds: float = 60.0
    max_cooldown_seconds: float = 900.0


@dataclass
class EndpointSettings:
    """Base URLs of the remote providers."""
    openai_base_url: str = "https://api.openai.com/v1"
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    google_cloud_base_url: str = "https://texttospeech.googleapis.com/v1"
    elevenlabs_base_url: str = "https://api.elevenlabs.io"


@dataclass
class CredentialSettings:
    """Secure storage namespace."""
    service_name: str = "com.speechbridge.providers"


@dataclass
class LocalEngineSettings:
    """On-device engine settings."""
    whisperkit_path: str = "whisperkit-cli"
    whisperkit_model: str = "large-v3_turbo"
    whisperkit_compute_units: str = "cpuAndNeuralEngine"
    say_path: str = "say"


@dataclass
class LoggingSettings:
    """Logging configuration settings."""
    level: str = "INFO"
    format: str = "json"
    file_enabled: bool = False
    file_rotation_mb: int = 10
    file_backup_count: int = 7


_SECTIONS = ("timeouts", "health", "endpoints", "credentials", "local", "logging")

_ENV_OVERRIDES = {
    "SPEECHBRIDGE_REQUEST_TIMEOUT": ("timeouts", "request_timeout", float),
    "SPEECHBRIDGE_PROBE_TIMEOUT": ("timeouts", "probe_timeout", float),
    "SPEECHBRIDGE_TRANSCRIPTION_TIMEOUT": ("timeouts", "transcription_timeout", float),
    "SPEECHBRIDGE_LOCAL_TIMEOUT": ("timeouts", "local_timeout", float),
    "SPEECHBRIDGE_FAILURE_THRESHOLD": ("health", "failure_threshold", int),
    "SPEECHBRIDGE_COOLDOWN_SECONDS": ("health", "cooldown_seconds", float),
    "SPEECHBRIDGE_MAX_COOLDOWN_SECONDS": ("health", "max_cooldown_seconds", float),
    "OPENAI_BASE_URL": ("endpoints", "openai_base_url", str),
    "OPENROUTER_BASE_URL": ("endpoints", "openrouter_base_url", str),
    "GOOGLE_CLOUD_TTS_BASE_URL": ("endpoints", "google_cloud_base_url", str),
    "ELEVENLABS_BASE_URL": ("endpoints", "elevenlabs_base_url", str),
    "SPEECHBRIDGE_KEYRING_SERVICE": ("credentials", "service_name", str),
    "WHISPERKIT_PATH": ("local", "whisperkit_path", str),
    "WHISPERKIT_MODEL": ("local", "whisperkit_model", str),
    "WHISPERKIT_COMPUTE_UNITS": ("local", "whisperkit_compute_units", str),
    "SAY_PATH": ("local", "say_path", str),
    "LOG_LEVEL": ("logging", "level", str),
    "LOG_FORMAT": ("logging", "format", str),
    "LOG_FILE_ENABLED": ("logging", "file_enabled", lambda v: v.lower() == "true"),
}


class Settings:
    """Main settings class for speechbridge."""

    def __init__(self, config_file: Optional[Union[str, Path]] = None,
                 load_env_file: bool = True):
        self.config_file = Path(config_file) if config_file else None
        self._lock = threading.RLock()
        self._env_loaded = not load_env_file

        # Initialize sub-settings
        self.timeouts = TimeoutSettings()
        self.health = HealthSettings()
        self.endpoints = EndpointSettings()
        self.credentials = CredentialSettings()
        self.local = LocalEngineSettings()
        self.logging = LoggingSettings()

        # Load .env file first
        self._load_env_file()

        # Load from file if provided
        if self.config_file and self.config_file.exists():
            self.load_from_file()

        # Override with environment variables
        self.load_from_env()

    @property
    def client_identifier(self) -> str:
        """Value sent in the client identifier headers of every remote call."""
        return f"speechbridge/{__version__}"

    def _load_env_file(self) -> None:
        """Load environment variables from .env file."""
        if not self._env_loaded:
            # Look for .env in current directory and parent directories
            current_dir = Path.cwd()
            for parent in [current_dir] + list(current_dir.parents):
                env_file = parent / ".env"
                if env_file.exists():
                    load_dotenv(env_file)
                    logger.debug("Loaded .env file", path=str(env_file))
                    break
            self._env_loaded = True

    def load_from_file(self) -> None:
        """Load settings from configuration file."""
        if not self.config_file or not self.config_file.exists():
            return

        try:
            with self._lock:
                with open(self.config_file, 'r') as f:
                    config = json.load(f)

                for section_name in _SECTIONS:
                    section = getattr(self, section_name)
                    for key, value in config.get(section_name, {}).items():
                        if hasattr(section, key):
                            setattr(section, key, value)

                logger.info("Loaded settings from file", file=str(self.config_file))

        except (OSError, json.JSONDecodeError) as e:
            logger.error("Failed to load settings from file",
                         file=str(self.config_file),
                         error=str(e))

    def load_from_env(self) -> None:
        """Load settings from environment variables."""
        with self._lock:
            for env_name, (section_name, key, convert) in _ENV_OVERRIDES.items():
                raw = os.getenv(env_name)
                if not raw:
                    continue
                try:
                    setattr(getattr(self, section_name), key, convert(raw))
                except ValueError:
                    logger.warning("Ignoring invalid environment override",
                                   variable=env_name, value=raw)

    def save_to_file(self, file_path: Optional[Union[str, Path]] = None) -> None:
        """Save current settings to file."""
        save_path = Path(file_path) if file_path else self.config_file
        if not save_path:
            raise ValueError("No file path provided")

        try:
            with self._lock:
                save_path.parent.mkdir(parents=True, exist_ok=True)

                with open(save_path, 'w') as f:
                    json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)

                logger.info("Saved settings to file", file=str(save_path))

        except OSError as e:
            logger.error("Failed to save settings to file",
                         file=str(save_path), error=str(e))
            raise

    def get_provider_config(self, provider: ProviderKind) -> Dict[str, Any]:
        """Get constructor arguments for a provider adapter."""
        if provider is ProviderKind.LOCAL:
            return {
                "whisperkit_path": self.local.whisperkit_path,
                "whisperkit_model": self.local.whisperkit_model,
                "compute_units": self.local.whisperkit_compute_units,
                "say_path": self.local.say_path,
                "timeout": self.timeouts.local_timeout,
            }
        base_urls = {
            ProviderKind.OPENAI: self.endpoints.openai_base_url,
            ProviderKind.OPENROUTER: self.endpoints.openrouter_base_url,
            ProviderKind.GOOGLE_CLOUD: self.endpoints.google_cloud_base_url,
            ProviderKind.ELEVENLABS: self.endpoints.elevenlabs_base_url,
        }
        if provider not in base_urls:
            raise ValueError(f"Unknown provider: {provider}")
        return {
            "base_url": base_urls[provider],
            "timeout": self.timeouts.request_timeout,
            "transcription_timeout": self.timeouts.transcription_timeout,
            "client_identifier": self.client_identifier,
        }

    def reload(self) -> None:
        """Reload settings from file and environment."""
        with self._lock:
            if self.config_file and self.config_file.exists():
                self.load_from_file()
            self.load_from_env()
            logger.info("Settings reloaded")

    def validate(self) -> list[str]:
        """Validate current settings and return list of issues."""
        issues = []

        for key, value in asdict(self.timeouts).items():
            if value <= 0:
                issues.append(f"Invalid {key.replace('_', ' ')}: {value}")

        if self.health.failure_threshold < 1:
            issues.append(f"Invalid failure threshold: {self.health.failure_threshold}")
        if self.health.cooldown_seconds <= 0:
            issues.append(f"Invalid cooldown: {self.health.cooldown_seconds}")
        if self.health.max_cooldown_seconds < self.health.cooldown_seconds:
            issues.append("Max cooldown is shorter than the base cooldown")

        for key, value in asdict(self.endpoints).items():
            if not value.startswith("https://"):
                issues.append(f"Endpoint {key} must use https: {value}")

        if not self.credentials.service_name:
            issues.append("Credential service name is empty")

        return issues

    def to_dict(self) -> Dict[str, Any]:
        """Convert settings to dictionary for serialization."""
        with self._lock:
            return {name: asdict(getattr(self, name)) for name in _SECTIONS}


# Global settings instance
settings = Settings()
