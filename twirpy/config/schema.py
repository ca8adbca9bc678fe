"""Configuration schema using Pydantic.

Server and client settings for twirpy, persisted to ~/.twirpy/config.json and
overridable through TWIRPY_* environment variables.
"""

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from twirpy.codec import Format


def _normalize_prefix(value: str) -> str:
    value = (value or "").strip()
    if not value or value == "/":
        return ""
    return "/" + value.strip("/")


class ServerSettings(BaseModel):
    """Dispatcher behaviour."""
    path_prefix: str = "/twirp"  # Routes are served under this prefix; "" serves them at the root
    strict_decoding: bool = False  # Reject unknown JSON fields instead of ignoring them
    json_use_proto_names: bool = True  # JSON responses use .proto field names rather than lowerCamelCase
    disconnect_poll_interval: float = Field(default=0.1, gt=0)  # Seconds between client-disconnect checks

    @field_validator("path_prefix")
    @classmethod
    def normalize_prefix(cls, value: str) -> str:
        return _normalize_prefix(value)


class ClientSettings(BaseModel):
    """Client stub behaviour."""
    path_prefix: str = "/twirp"
    timeout: float | None = 30.0  # Transport timeout when the context has no deadline
    format: Format = Format.JSON
    json_use_proto_names: bool = True

    @field_validator("path_prefix")
    @classmethod
    def normalize_prefix(cls, value: str) -> str:
        return _normalize_prefix(value)


class LoggingSettings(BaseModel):
    """Log sinks used by the CLI."""
    level: str = "INFO"
    file: bool = False  # Also write a rotating log file under ~/.twirpy/logs


class Config(BaseSettings):
    """Root configuration for twirpy."""
    server: ServerSettings = Field(default_factory=ServerSettings)
    client: ClientSettings = Field(default_factory=ClientSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    model_config = SettingsConfigDict(
        env_prefix="TWIRPY_",
        env_nested_delimiter="__",
    )
