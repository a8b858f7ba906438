# Copyright 2025 TIER IV, INC. All rights reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""Configuration of the update repo builder.

The configuration is loaded once at process start and passed down explicitly,
    the build pipeline never reads the environment by itself.

Sources, later ones override earlier ones:
    1. the defaults of `BuilderConfig`,
    2. an optional YAML config file,
    3. environment variables prefixed with `EDGE_UPDATE_`, i.e. `EDGE_UPDATE_BUCKET_NAME`.
"""

from __future__ import annotations

from contextvars import ContextVar
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from edge_update_libs.common import StrOrPath
from edge_update_libs.common.io import DEFAULT_FILE_CHUNK_SIZE
from edge_update_libs.errors import ConfigError
from edge_update_libs.repo.ostree import DEFAULT_OSTREE_BIN

ENV_PREFIX = "EDGE_UPDATE_"

DEFAULT_WORK_ROOT = "/tmp/update"
DEFAULT_DB_PATH = "edge_update.sqlite3"
DEFAULT_REPO_STORAGE_PATH = "/var/lib/edge-update/repos"

# the YAML config file used by the `BuilderConfig` being loaded
_config_file: ContextVar[Optional[Path]] = ContextVar("_config_file", default=None)


class BuilderConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX, frozen=True, extra="forbid"
    )

    work_root: Path = Path(DEFAULT_WORK_ROOT)
    db_path: Path = Path(DEFAULT_DB_PATH)

    bucket_name: Optional[str] = None
    """Upload to this S3 bucket, or to <repo_storage_path> if not set."""
    repo_storage_path: Path = Path(DEFAULT_REPO_STORAGE_PATH)
    s3_region: Optional[str] = None
    s3_endpoint_url: Optional[str] = None

    ostree_bin: str = DEFAULT_OSTREE_BIN

    download_timeout: Optional[float] = Field(default=None, gt=0)
    """No timeout when not set."""
    download_chunk_size: int = Field(default=DEFAULT_FILE_CHUNK_SIZE, gt=0)

    max_build_workers: Optional[int] = Field(default=None, gt=0)
    """Not limited when not set."""
    log_level: str = "INFO"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            YamlConfigSettingsSource(settings_cls, yaml_file=_config_file.get()),
        )

    @field_validator(
        "bucket_name",
        "s3_region",
        "s3_endpoint_url",
        "download_timeout",
        "max_build_workers",
        mode="before",
    )
    @classmethod
    def _empty_as_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, v: str) -> str:
        _level = v.upper()
        if _level not in ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"):
            raise ValueError(f"unknown log level: {v}")
        return _level


def _check_config_file(config_file: Path) -> None:
    try:
        _raw = yaml.safe_load(config_file.read_text())
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"failed to load config file {config_file}: {e!r}") from e

    if _raw is not None and not isinstance(_raw, dict):
        raise ConfigError(f"{config_file} must contain a mapping, get {type(_raw)}")


def load_config(config_file: Optional[StrOrPath] = None) -> BuilderConfig:
    """Load the builder configuration.

    Raises:
        ConfigError if the config file cannot be loaded or any value is invalid.
    """
    _config_f = None
    if config_file:
        _config_f = Path(config_file)
        _check_config_file(_config_f)

    _token = _config_file.set(_config_f)
    try:
        return BuilderConfig()
    except ValidationError as e:
        raise ConfigError(f"invalid config: {e}") from e
    finally:
        _config_file.reset(_token)
