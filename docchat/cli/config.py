"""YAML configuration loader with env var resolution and Pydantic validation.

Loads config from (priority order):
1. --config <path> CLI flag
2. ./docchat.yaml (working directory)
3. ~/.docchat/config.yaml (user home)

Environment variables override YAML: DOCCHAT_<SECTION>_<KEY>.
${VAR} references in YAML values resolve from environment at load time.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, field_validator

from docchat.services.asset_paths import PUBLIC_PREFIX

logger = logging.getLogger(__name__)

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


def resolve_env_vars(value: str) -> str:
    """Resolve ${VAR} references in a string from environment variables.

    Missing env vars resolve to empty string.
    """
    def _replace(match: re.Match) -> str:
        return os.environ.get(match.group(1), "")

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _resolve_env_vars_recursive(data: Any) -> Any:
    if isinstance(data, str):
        return resolve_env_vars(data)
    elif isinstance(data, dict):
        return {k: _resolve_env_vars_recursive(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_resolve_env_vars_recursive(item) for item in data]
    return data


class ServerConfig(BaseModel):
    """Configuration for the HTTP server process."""

    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "info"


class AssetsConfig(BaseModel):
    """Where session images are stored and how they are exposed.

    ``root_dir`` empty means "use docchat.utils.paths.get_asset_root()".
    """

    root_dir: str | None = None
    public_prefix: str = PUBLIC_PREFIX
    retention_hours: int = 24

    @field_validator("public_prefix")
    @classmethod
    def prefix_is_absolute(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError("public_prefix must start with '/'")
        prefix = value.rstrip("/")
        if not prefix:
            raise ValueError("public_prefix must not be the site root")
        if (prefix + "/").startswith("/api/v1/"):
            raise ValueError("public_prefix must not overlap the /api/v1 routes")
        return prefix

    @field_validator("retention_hours")
    @classmethod
    def retention_is_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("retention_hours must be positive")
        return value


class DocChatConfig(BaseModel):
    """Top-level configuration for DocChat."""

    server: ServerConfig = ServerConfig()
    assets: AssetsConfig = AssetsConfig()


def _find_config_file() -> Path | None:
    candidates = [
        Path.cwd() / "docchat.yaml",
        Path.cwd() / "docchat.yml",
        Path.home() / ".docchat" / "config.yaml",
        Path.home() / ".docchat" / "config.yml",
    ]
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return None


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Apply DOCCHAT_<SECTION>_<KEY> env var overrides to config data.

    For example, ``DOCCHAT_ASSETS_RETENTION_HOURS=48`` sets
    ``assets.retention_hours``.
    """
    prefix = "DOCCHAT_"
    known_sections = sorted(DocChatConfig.model_fields.keys(), key=len, reverse=True)
    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue
        suffix = key[len(prefix):].lower()
        matched_section = None
        matched_field = None
        for section in known_sections:
            section_prefix = section + "_"
            if suffix.startswith(section_prefix):
                matched_section = section
                matched_field = suffix[len(section_prefix):]
                break
        if matched_section is None or not matched_field:
            continue
        section_data = data.setdefault(matched_section, {})
        if isinstance(section_data, dict):
            try:
                section_data[matched_field] = int(value)
            except ValueError:
                section_data[matched_field] = value
    return data


def load_config(config_path: str | None = None) -> DocChatConfig:
    """Load DocChat configuration.

    Unlike a missing explicit ``config_path``, a missing default file is not
    an error: defaults plus env overrides are returned.

    Raises:
        FileNotFoundError: If ``config_path`` is given but does not exist.
    """
    if config_path:
        path: Path | None = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        path = _find_config_file()

    raw_data: dict[str, Any] = {}
    if path is not None:
        logger.info("Loading config from %s", path)
        with open(path) as f:
            raw_data = yaml.safe_load(f) or {}

    data = _resolve_env_vars_recursive(raw_data)
    data = _apply_env_overrides(data)
    return DocChatConfig(**data)
