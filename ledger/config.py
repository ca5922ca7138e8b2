import logging
from typing import Annotated, List, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_DATABASE_URL = "https://roktobij-4210b-default-rtdb.firebaseio.com"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class Settings(BaseSettings):
    """Application settings - reads from environment variables and .env"""

    # Firebase
    firebase_credentials: Optional[str] = None
    firebase_credentials_file: str = "serviceAccountKey.json"
    database_url: str = Field(
        DEFAULT_DATABASE_URL,
        validation_alias=AliasChoices("FIREBASE_DATABASE_URL", "database_url"),
    )
    store_timeout_seconds: int = 10

    # Server
    host: str = "0.0.0.0"
    port: int = 3000
    cors_origins: Annotated[List[str], NoDecode] = ["*"]
    log_level: str = "INFO"

    # Rewards
    referral_bonus: int = 100
    game_reward: int = 10

    # Journal retention for finished operations
    operations_retention_days: int = 30

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_origins(cls, v):
        if isinstance(v, str):
            return [o.strip() for o in v.split(",") if o.strip()] or ["*"]
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def upper_log_level(cls, v):
        return v.upper() if isinstance(v, str) else v

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        extra="ignore",
        case_sensitive=False,
        frozen=True,
    )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)
