"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Environment variables  (REQUESTFLOW__DELIVERY__MAX_BYTES=1048576)
  2. requestflow.yaml       (searched in cwd, then platform config dir)
  3. Hardcoded defaults

The config file is optional; every field has a default.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

_DEFAULT_DATA_DIR = platformdirs.user_data_dir("requestflow")
_DEFAULT_DB_PATH = str(Path(_DEFAULT_DATA_DIR) / "requestflow.db")
_DEFAULT_SUMMARY_DIR = str(Path(_DEFAULT_DATA_DIR) / "summaries")


def _find_config_file() -> str | None:
    """Return the path of the first requestflow.yaml found, or None."""
    candidates = [
        Path("requestflow.yaml"),
        Path(platformdirs.user_config_dir("requestflow")) / "requestflow.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class StoreSettings(BaseModel):
    db_path: str = _DEFAULT_DB_PATH


class ResolutionSettings(BaseModel):
    confirmation_ttl_minutes: int = 10
    browse_limit: int = 10
    chapters_per_page: int = 9
    exact_match_limit: int = 10
    suggest_limit: int = 5
    list_limit: int = 15
    fuzzy_title_cutoff: int = 85


class DeliverySettings(BaseModel):
    max_bytes: int = 45 * 1024 * 1024
    transport_timeout_seconds: float = 60.0
    summary_dir: str = _DEFAULT_SUMMARY_DIR


class DedupSettings(BaseModel):
    window_seconds: float = 120.0
    max_age_hours: float = 6.0
    soft_limit: int = 2000
    target_size: int = 1500
    hard_cap: int = 3000


class ChooserSettings(BaseModel):
    step_timeout_seconds: float = 9.0


class EventSettings(BaseModel):
    webhook_url: str | None = None
    timeout_seconds: float = 5.0


class AccessSettings(BaseModel):
    owner_ids: list[str] = []


class ClassifierSettings(BaseModel):
    # JSON file with a ClassificationRules document; built-in rules when unset
    rules_file: str | None = None


class RouterSettings(BaseModel):
    prefix: str = "/"


class LoggingSettings(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: REQUESTFLOW__DEDUP__WINDOW_SECONDS=60
        env_prefix="REQUESTFLOW__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    store: StoreSettings = StoreSettings()
    resolution: ResolutionSettings = ResolutionSettings()
    delivery: DeliverySettings = DeliverySettings()
    dedup: DedupSettings = DedupSettings()
    chooser: ChooserSettings = ChooserSettings()
    events: EventSettings = EventSettings()
    access: AccessSettings = AccessSettings()
    classifier: ClassifierSettings = ClassifierSettings()
    router: RouterSettings = RouterSettings()
    logging: LoggingSettings = LoggingSettings()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
        **kwargs: Any,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,  # Constructor args (highest priority)
            env_settings,  # Environment variables
            YamlConfigSettingsSource(settings_cls),  # YAML file
        )
