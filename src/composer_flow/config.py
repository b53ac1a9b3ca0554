"""
Configuration management for the flow connector.

Supports configuration via environment variables and .env files.
Connection profiles describe how to reach a business network and can be
given inline or loaded from a JSON file.
"""

import json
from enum import Enum
from pathlib import Path
from typing import Dict, Optional

from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from composer_flow.errors import ConfigError


class ProfileType(str, Enum):
    """Supported connection profile types."""
    REST = "rest"
    EMBEDDED = "embedded"


class ConnectionProfile(BaseModel):
    """
    How to reach one business network deployment.

    A REST profile points at the network's REST gateway; an embedded profile
    runs a local network backed by a SQLite database.
    """

    type: ProfileType = Field(
        default=ProfileType.REST,
        description="Client implementation used for this profile"
    )
    url: Optional[str] = Field(
        default=None,
        description="Base URL of the REST gateway (rest profiles)"
    )
    database_url: str = Field(
        default="sqlite+aiosqlite:///composer-flow.db",
        description="SQLAlchemy database URL (embedded profiles)"
    )
    model_file: Optional[str] = Field(
        default=None,
        description="JSON file holding the type declarations (embedded profiles)"
    )
    identities: Dict[str, str] = Field(
        default_factory=dict,
        description="Participant id to secret map; empty accepts any identity (embedded profiles)"
    )
    timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="HTTP timeout for REST calls"
    )


class BridgeConfig(BaseSettings):
    """
    Configuration settings for the flow connector.

    All settings can be configured via environment variables with the
    COMPOSER_FLOW_ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="COMPOSER_FLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Default connection parameters (flow nodes carry their own)
    connection_profile: Optional[str] = Field(
        default=None,
        description="Name of the connection profile to use"
    )
    business_network_identifier: Optional[str] = Field(
        default=None,
        description="Identifier of the business network"
    )
    participant_id: Optional[str] = Field(
        default=None,
        description="Participant id used to connect"
    )
    participant_password: Optional[str] = Field(
        default=None,
        description="Participant secret used to connect"
    )

    # Connection profiles
    profiles: Dict[str, ConnectionProfile] = Field(
        default_factory=dict,
        description="Inline connection profiles keyed by name"
    )
    profiles_file: Optional[str] = Field(
        default=None,
        description="JSON file with connection profiles keyed by name"
    )

    # Operation settings
    operation_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Upper bound for a single connect + dispatch"
    )

    # Logging settings
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )
    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format"
    )

    def load_profiles(self) -> Dict[str, ConnectionProfile]:
        """All known profiles; inline entries win over file entries."""
        profiles: Dict[str, ConnectionProfile] = {}

        if self.profiles_file:
            path = Path(self.profiles_file).expanduser()
            try:
                raw = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as e:
                raise ConfigError(f"Cannot read profiles file {path}: {e}", field="profiles_file") from e
            if not isinstance(raw, dict):
                raise ConfigError(
                    f"Profiles file {path} must hold a JSON object keyed by profile name",
                    field="profiles_file",
                )
            for name, data in raw.items():
                try:
                    profiles[name] = ConnectionProfile.model_validate(data)
                except ValidationError as e:
                    raise ConfigError(
                        f"Invalid connection profile {name} in {path}: {e}",
                        field="profiles_file",
                    ) from e

        profiles.update(self.profiles)
        return profiles

    def get_profile(self, name: str) -> ConnectionProfile:
        """
        Look up a connection profile by name.

        Raises:
            ConfigError: If no profile with that name is configured
        """
        profiles = self.load_profiles()
        if name not in profiles:
            raise ConfigError(f"Unknown connection profile: {name}", field="connectionProfile")
        return profiles[name]


# Global config instance
_config: Optional[BridgeConfig] = None


def get_config() -> BridgeConfig:
    """Get or create the global configuration instance."""
    global _config
    if _config is None:
        _config = BridgeConfig()
    return _config


def set_config(config: BridgeConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
