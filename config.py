import os
from typing import List, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

# Environment variable -> (section, field)
ENV_FIELDS = {
    "S3_BUCKET": ("s3", "bucket_name"),
    "S3_REGION": ("s3", "region"),
    "S3_PREFIX": ("s3", "prefix"),
    "S3_ENDPOINT": ("s3", "endpoint"),
    "DISCORD_URL": ("discord", "webhook_url"),
    "MYSQL_USER": ("database", "user"),
    "MYSQL_PASSWORD": ("database", "password"),
    "MYSQL_HOST": ("database", "host"),
    "MYSQL_PORT": ("database", "port"),
    "DATABASES": ("database", "databases"),
}


class ConfigError(Exception):
    """Raised when required configuration is missing or invalid."""


class S3Config(BaseModel):
    bucket_name: str = Field(min_length=1)
    region: str = Field(min_length=1)
    prefix: str = ""
    endpoint: Optional[str] = None


class DatabaseConfig(BaseModel):
    user: str = Field(min_length=1)
    password: str = Field(min_length=1)
    host: str = Field(min_length=1)
    port: int = Field(gt=0, le=65535)
    databases: List[str] = Field(min_length=1)

    @field_validator("databases", mode="before")
    @classmethod
    def _split_databases(cls, value):
        if isinstance(value, str):
            value = value.split(",")
        if isinstance(value, (list, tuple)):
            return [str(name).strip() for name in value if str(name).strip()]
        return value


class DiscordConfig(BaseModel):
    webhook_url: str = Field(min_length=1)


class BackupConfig(BaseModel):
    s3: S3Config
    database: DatabaseConfig
    discord: DiscordConfig

    def s3_key(self, file_name: str) -> str:
        if not self.s3.prefix:
            return file_name
        return f"{self.s3.prefix.removesuffix('/')}/{file_name}"


def load_config(environ: Optional[Mapping[str, str]] = None, config_path: Optional[str] = None) -> BackupConfig:
    """Build the configuration once at startup.

    Values from the optional YAML file are used as a base and every non-empty
    environment variable from ``ENV_FIELDS`` overrides them.
    """
    if environ is None:
        environ = os.environ

    raw = {"s3": {}, "database": {}, "discord": {}}
    if config_path:
        for section, values in _read_yaml(config_path).items():
            if section in raw and isinstance(values, dict):
                raw[section].update(values)

    for var, (section, field) in ENV_FIELDS.items():
        if environ.get(var):
            raw[section][field] = environ[var]

    try:
        return BackupConfig(**raw)
    except ValidationError as e:
        fields = sorted({".".join(str(part) for part in err["loc"]) for err in e.errors()})
        raise ConfigError(
            "Required environment variables are missing or DATABASES list is empty: " + ", ".join(fields)
        ) from e


def _read_yaml(config_path: str) -> dict:
    if not os.path.exists(config_path):
        raise ConfigError(f"Config not found at {config_path}")
    try:
        with open(config_path, "r") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to read config {config_path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config {config_path} must be a mapping")
    backup = data.get("backup") or {}
    if not isinstance(backup, dict):
        raise ConfigError(f"Config {config_path}: 'backup' must be a mapping")
    return backup
