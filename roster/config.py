"""
Roster Watch - configuration

YAML settings file (every key optional) and the targets list:

  acquisition:
    confidence_threshold: 5
    target_budget_s: 180
  driver:
    control_timeout_ms: 2500
  ops:
    ops_json: true
  storage:
    db_path: ./out/roster.sqlite

Environment overrides: RW_OPS_JSON=1, RW_NO_HEADLESS=1.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import List, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ConfigError
from .pipeline.fetchers.static import DEFAULT_UA
from .schemas import Target


BROWSER_UA = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/140.0.0.0 Safari/537.36"
)


class AcquisitionConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    confidence_threshold: int = Field(default=5, ge=0)
    static_timeout_s: float = Field(default=12.0, gt=0)
    target_budget_s: float = Field(default=180.0, gt=0)
    inter_target_delay_s: float = Field(default=2.0, ge=0)
    enable_dynamic: bool = True
    respect_robots: bool = True
    user_agent: str = DEFAULT_UA


class DriverConfig(BaseModel):
    """Timeouts and limits for the Dynamic Content Driver (milliseconds unless noted)."""
    model_config = ConfigDict(extra="forbid")

    headless: bool = True
    navigation_timeout_ms: int = Field(default=30000, gt=0)
    network_idle_timeout_ms: int = Field(default=5000, ge=0)
    control_timeout_ms: int = Field(default=2500, gt=0)
    grace_wait_ms: int = Field(default=600, ge=0)
    scroll_wait_ms: int = Field(default=400, ge=0)
    stable_cycles: int = Field(default=2, ge=1)
    max_scroll_iterations: int = Field(default=12, ge=1)
    max_controls: int = Field(default=24, ge=0)
    consent_timeout_ms: int = Field(default=1000, gt=0)
    viewport_width: int = 1366
    viewport_height: int = 900
    user_agent: str = BROWSER_UA


class OpsConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    ops_json: bool = False
    log_path: Optional[str] = None
    stdout: bool = False


class StorageConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    db_path: Optional[str] = None
    artifacts_dir: Optional[str] = None


class Settings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    acquisition: AcquisitionConfig = Field(default_factory=AcquisitionConfig)
    driver: DriverConfig = Field(default_factory=DriverConfig)
    ops: OpsConfig = Field(default_factory=OpsConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)


def _read_yaml(path: Path, what: str) -> dict:
    if not path.exists() or not path.is_file():
        raise ConfigError(f"{what} file not found: {path}")
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{what} file must contain a mapping: {path}")
    return data


def apply_env_overrides(settings: Settings, environ: Optional[Mapping[str, str]] = None) -> Settings:
    env = os.environ if environ is None else environ
    if env.get("RW_OPS_JSON", "0") == "1":
        settings.ops.ops_json = True
    if env.get("RW_NO_HEADLESS", "0") == "1":
        settings.acquisition.enable_dynamic = False
    return settings


def load_settings(path: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Load settings from YAML (defaults when ``path`` is None), then apply env overrides."""
    data = _read_yaml(Path(path), "config") if path is not None else {}
    try:
        settings = Settings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"invalid config {path}: {e}") from e
    return apply_env_overrides(settings, environ)


def load_targets(path: Path) -> List[Target]:
    """Read ``targets:`` from a YAML file.

    Entries are parsed leniently (URL problems are reported per target at run
    time); a missing id or URL key is a file-level error.
    """
    data = _read_yaml(Path(path), "targets")
    items = data.get("targets")
    if not isinstance(items, list):
        raise ConfigError(f"targets file must contain a 'targets' list: {path}")
    targets: List[Target] = []
    for i, item in enumerate(items):
        if not isinstance(item, dict):
            raise ConfigError(f"targets[{i}] is not a mapping")
        try:
            targets.append(Target.model_validate(item))
        except ValidationError as e:
            raise ConfigError(f"targets[{i}] invalid: {e}") from e
    return targets
