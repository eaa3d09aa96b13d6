"""
Configuration and settings for the feedback service.

Values come from the environment (or `.env`), optionally overlaid by a JSON
file whose path is given in USERFEEDBACK_CONFIG_FILE. The JSON file keeps the
`{"oss": {...}, "database": {...}}` layout with camelCase keys.
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL

CONFIG_FILE_ENV = "USERFEEDBACK_CONFIG_FILE"


class DatabaseSettings(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    # A full SQLAlchemy URL wins over the individual components.
    url: Optional[str] = None
    user: Optional[str] = None
    password: Optional[str] = None
    host: Optional[str] = None
    port: Optional[int] = None
    db_name: Optional[str] = Field(default=None, alias="schema")

    def sqlalchemy_url(self) -> Optional[str]:
        if self.url:
            return self.url
        if not self.host:
            return None
        return URL.create(
            "mysql+pymysql",
            username=self.user,
            password=self.password,
            host=self.host,
            port=self.port,
            database=self.db_name,
        ).render_as_string(hide_password=False)


class OssSettings(BaseModel):
    """S3-compatible object storage and STS settings."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    # Used for the STS exchange that hands out upload credentials.
    access_key_id: Optional[str] = None
    access_key_secret: Optional[str] = None
    # Used for server-side object deletion.
    admin_access_key_id: Optional[str] = None
    admin_access_key_secret: Optional[str] = None

    oss_endpoint: Optional[str] = None
    region: Optional[str] = None
    sts_endpoint: Optional[str] = None
    feedback_role: Optional[str] = None
    role_session_name: str = "userfeedback"
    bucket_name: Optional[str] = None
    dir_feedback: str = "feedback"
    credential_ttl_seconds: int = Field(default=3600, ge=900, le=43200)
    resource_prefix: str = "arn:aws:s3:::"
    public_base_url: Optional[str] = None

    @staticmethod
    def _with_scheme(endpoint: Optional[str]) -> Optional[str]:
        if not endpoint:
            return None
        return endpoint if "://" in endpoint else f"https://{endpoint}"

    def oss_endpoint_url(self) -> Optional[str]:
        return self._with_scheme(self.oss_endpoint)

    def sts_endpoint_url(self) -> Optional[str]:
        return self._with_scheme(self.sts_endpoint)

    def resolved_public_base_url(self) -> str:
        if self.public_base_url:
            return self.public_base_url.rstrip("/")
        if not self.bucket_name or not self.oss_endpoint:
            return ""
        host = self.oss_endpoint.split("://", 1)[-1].rstrip("/")
        return f"https://{self.bucket_name}.{host}"


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    api_prefix: str = Field(default="/api")

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    oss: OssSettings = Field(default_factory=OssSettings)

    # Directory holding the `upload/` and `query/` browser pages, if any.
    static_dir: Optional[str] = None

    log_path: str = "./log/log.log"
    log_level: str = "DEBUG"

    host: str = "0.0.0.0"
    port: int = 8080

    # Development toggles
    use_in_memory_backends: bool = False


def load_settings(config_path: Optional[str] = None) -> Settings:
    """Build settings from the environment plus an optional JSON config file."""
    config_path = config_path or os.environ.get(CONFIG_FILE_ENV)
    if not config_path:
        return Settings()
    data = json.loads(Path(config_path).read_text(encoding="utf-8"))
    return Settings(**data)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return load_settings()
