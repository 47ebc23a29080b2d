import logging
import os

import yaml
from pydantic import BaseModel, ValidationError

APP_VERSION = "1.0.0"
ENV_PREFIX = "TRAINLOG_"


class SettingsSchema(BaseModel):
    db_path: str = "train.db"
    legacy_json_path: str = "train.json"
    legacy_backup_path: str = "train.json.backup"
    static_dir: str = "public"
    host: str = "127.0.0.1"
    port: int = 3001
    log_level: str = "INFO"


class YamlConfig:
    """Load and save settings to a YAML file."""

    def __init__(self, path: str | None = None) -> None:
        self.path = path or os.environ.get(f"{ENV_PREFIX}CONFIG", "settings.yaml")

    def load(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} must contain a mapping")
        return data

    def save(self, data: dict) -> None:
        with open(self.path, "w", encoding="utf-8") as f:
            yaml.safe_dump(dict(data), f)


def _env_overrides() -> dict:
    overrides = {}
    for field in SettingsSchema.model_fields:
        value = os.environ.get(f"{ENV_PREFIX}{field.upper()}")
        if value is not None:
            overrides[field] = value
    return overrides


def load_settings(path: str | None = None) -> SettingsSchema:
    """Read the YAML file, apply ``TRAINLOG_*`` environment overrides and validate."""
    data = YamlConfig(path).load()
    data.update(_env_overrides())
    try:
        return SettingsSchema(**data)
    except ValidationError as e:
        raise ValueError(str(e))


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
