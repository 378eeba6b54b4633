"""Notification sink configuration.

All settings can be overridden via ``NOTIFICATIONS_*`` environment variables.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SinkConfig(BaseSettings):
    """Configuration for Discord webhook delivery."""

    model_config = SettingsConfigDict(
        env_prefix="NOTIFICATIONS_",
        case_sensitive=False,
        extra="ignore",
    )

    embed_color: int = Field(
        default=0x9146FF,
        ge=0,
        le=0xFFFFFF,
        description="Embed sidebar color (24-bit RGB)",
    )
    timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Timeout for a single webhook POST or probe",
    )
    thumbnail_width: int = Field(
        default=320,
        ge=1,
        description="Width substituted into the stream thumbnail template",
    )
    thumbnail_height: int = Field(
        default=180,
        ge=1,
        description="Height substituted into the stream thumbnail template",
    )
