"""Flux configuration, loaded from FLUX_* environment variables."""

from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class FluxConfig(BaseSettings):
    """Configuration for the dispatcher and the API."""

    model_config = SettingsConfigDict(env_prefix="FLUX_", extra="ignore")

    debug: bool = False
    global_group: str = "$global"           # Group every subscriber belongs to
    default_group: str = "admin"            # Audience of the default resolvers
    publish_timeout_seconds: float = Field(gt=0, default=5.0)
    required_entities: List[str] = []       # Validated against the registry at startup
    log_level: str = "INFO"
