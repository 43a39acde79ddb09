"""TOML-based settings.

Loads ~/.efsctl/defaults.toml (global) and efsctl.toml (project),
merges them, and applies environment overrides for output locations.

Example efsctl.toml:

    storage_class_name = "efs-sc"
    storageclass_location = "out/storageclass.yaml"

    [backoff.volume_create]
    delay = 10.0
    steps = 20
"""

from __future__ import annotations

import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

from efsctl.constants import (
    DEFAULT_STORAGE_CLASS_NAME,
    DELETION_BACKOFF,
    INFRASTRUCTURE_NAME,
    MANIFEST_LOCATION_ENV,
    OPERATION_BACKOFF,
    OWNERSHIP_TAG_PREFIX,
    SECRET_NAME,
    SECRET_NAMESPACE,
    STORAGECLASS_LOCATION_ENV,
    VOLUME_CREATE_BACKOFF,
)
from efsctl.exceptions import ConfigurationError
from efsctl.retry import Backoff

type RawConfig = dict[str, Any]

GLOBAL_CONFIG_PATH = Path.home() / ".efsctl" / "defaults.toml"
PROJECT_CONFIG_NAME = "efsctl.toml"

_BACKOFF_SECTIONS = {
    "operation": "operation_backoff",
    "volume_create": "volume_create_backoff",
    "deletion": "deletion_backoff",
}


@dataclass(frozen=True, slots=True)
class Settings:
    """Resolved settings for one invocation.

    Attributes:
        storage_class_name: Name of the rendered StorageClass.
        storageclass_location: Where to write the StorageClass manifest.
        manifest_location: Where to write the CSI test manifest.
        secret_namespace: Namespace of the cloud credentials secret.
        secret_name: Name of the cloud credentials secret.
        infrastructure_name: Name of the cluster Infrastructure object.
        tag_prefix: Prefix of the ownership tag key.
        operation_backoff: Policy for lookups and single API calls.
        volume_create_backoff: Policy for the file system availability poll.
        deletion_backoff: Policy for each teardown deletion.
    """

    storage_class_name: str = DEFAULT_STORAGE_CLASS_NAME
    storageclass_location: Path | None = None
    manifest_location: Path | None = None
    secret_namespace: str = SECRET_NAMESPACE
    secret_name: str = SECRET_NAME
    infrastructure_name: str = INFRASTRUCTURE_NAME
    tag_prefix: str = OWNERSHIP_TAG_PREFIX
    operation_backoff: Backoff = OPERATION_BACKOFF
    volume_create_backoff: Backoff = VOLUME_CREATE_BACKOFF
    deletion_backoff: Backoff = DELETION_BACKOFF

    @classmethod
    def from_config(
        cls,
        raw: RawConfig,
        env: Mapping[str, str] | None = None,
    ) -> Settings:
        """Build settings from merged TOML data and environment variables."""
        raw = dict(raw)
        env = os.environ if env is None else env
        allowed = {f.name for f in fields(cls)} - set(_BACKOFF_SECTIONS.values())

        backoffs = _build_backoffs(raw.pop("backoff", {}))

        unknown = set(raw) - allowed
        if unknown:
            raise ConfigurationError(
                f"Unknown setting(s): {', '.join(sorted(unknown))}. "
                f"Valid: {', '.join(sorted(allowed))}"
            )

        for key in ("storageclass_location", "manifest_location"):
            if raw.get(key) is not None:
                raw[key] = Path(raw[key])

        settings = replace(cls(**raw), **backoffs)

        if location := env.get(STORAGECLASS_LOCATION_ENV):
            settings = replace(settings, storageclass_location=Path(location))
        if location := env.get(MANIFEST_LOCATION_ENV):
            settings = replace(settings, manifest_location=Path(location))
        return settings


def _build_backoffs(raw: RawConfig) -> dict[str, Backoff]:
    defaults = Settings()
    result: dict[str, Backoff] = {}
    for section, values in raw.items():
        attr = _BACKOFF_SECTIONS.get(section)
        if attr is None:
            raise ConfigurationError(
                f"Unknown backoff policy '{section}'. Valid: {', '.join(_BACKOFF_SECTIONS)}"
            )
        try:
            result[attr] = replace(getattr(defaults, attr), **values)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid backoff policy '{section}': {e}") from e
    return result


def _deep_merge(base: RawConfig, override: RawConfig) -> RawConfig:
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _read_toml(path: Path) -> RawConfig:
    if not path.is_file():
        return {}
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Invalid TOML in {path}: {e}") from e


def load_config(
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
) -> RawConfig:
    global_cfg = _read_toml(global_path or GLOBAL_CONFIG_PATH)
    project_path = (project_dir or Path.cwd()) / PROJECT_CONFIG_NAME
    project_cfg = _read_toml(project_path)
    return _deep_merge(global_cfg, project_cfg)


def load_settings(
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> Settings:
    raw = load_config(project_dir=project_dir, global_path=global_path)
    return Settings.from_config(raw, env=env)
